"""
Profile service: public user projections and the follow graph.

Following a user twice is an idempotent success, as is unfollowing a user
that is not followed; both operations return the re-projected profile so
the client always sees post-mutation state.  Self-follow is rejected by
``assert_not_self`` before storage is touched and again by the
``ck_follows_not_self`` constraint.
"""
import logging
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.dependencies import Identity
from conduit.exceptions import NotFoundError, UnauthorizedError, UnprocessableEntityError
from conduit.models import Follow, User
from conduit.policies import assert_not_self

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Projection helpers (shared with the article and comment services)
# ---------------------------------------------------------------------------

def profile_to_dict(user: User, following: bool) -> dict:
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": following,
    }


async def following_ids(
    db: AsyncSession, viewer_id: int | None, user_ids: Iterable[int]
) -> set[int]:
    """
    Return the subset of *user_ids* that *viewer_id* follows.

    One query regardless of how many ids are passed; anonymous viewers
    follow nobody.
    """
    ids = set(user_ids)
    if viewer_id is None or not ids:
        return set()
    q = select(Follow.followee_id).where(
        Follow.follower_id == viewer_id,
        Follow.followee_id.in_(ids),
    )
    return set((await db.execute(q)).scalars().all())


async def get_user_by_username(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("profile not found")
    return user


async def get_acting_user(db: AsyncSession, identity: Identity) -> User:
    """
    Load the user behind *identity*.

    A token can outlive its account; such a caller is unauthenticated, so
    every write and the feed resolve the user here before touching storage.
    """
    user = await db.get(User, identity.user_id)
    if user is None:
        logger.info("Token for missing user %s rejected", identity.user_id)
        raise UnauthorizedError()
    return user


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_profile(db: AsyncSession, username: str, viewer: Identity | None) -> dict:
    user = await get_user_by_username(db, username)
    viewer_id = viewer.user_id if viewer else None
    following = user.id in await following_ids(db, viewer_id, [user.id])
    return {"profile": profile_to_dict(user, following)}


async def follow(db: AsyncSession, identity: Identity, username: str) -> dict:
    await get_acting_user(db, identity)
    target = await get_user_by_username(db, username)
    assert_not_self(identity, target, "follow")

    existing = await db.get(Follow, (identity.user_id, target.id))
    if existing is None:
        db.add(Follow(follower_id=identity.user_id, followee_id=target.id))
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent request inserted the same pair first.
            logger.info("Follow %s -> %s lost an insert race", identity.user_id, target.id)
            raise UnprocessableEntityError("already following this user") from None

    return {"profile": profile_to_dict(target, True)}


async def unfollow(db: AsyncSession, identity: Identity, username: str) -> dict:
    await get_acting_user(db, identity)
    target = await get_user_by_username(db, username)
    assert_not_self(identity, target, "unfollow")

    await db.execute(
        delete(Follow).where(
            Follow.follower_id == identity.user_id,
            Follow.followee_id == target.id,
        )
    )
    return {"profile": profile_to_dict(target, False)}
