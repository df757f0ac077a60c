"""
User service: registration, login and the authenticated user's account.

Usernames and emails are unique.  Conflicts are detected with a lookup
before the write so the client gets a field-scoped 422; the database
constraint still backs the check if two registrations race.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.dependencies import Identity
from conduit.exceptions import UnauthorizedError, UnprocessableEntityError
from conduit.models import User, utcnow
from conduit.schemas import UserLogin, UserRegistration, UserUpdate
from conduit.security import PasswordHasher, TokenService
from conduit.services.profile_service import get_acting_user

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS = "email or password is invalid"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User, token: str) -> dict:
    return {
        "user": {
            "email": user.email,
            "token": token,
            "username": user.username,
            "bio": user.bio,
            "image": user.image,
        }
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _taken_fields(
    db: AsyncSession,
    username: str | None,
    email: str | None,
    exclude_id: int | None = None,
) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for field, column, value in (
        ("username", User.username, username),
        ("email", User.email, email),
    ):
        if value is None:
            continue
        q = select(User.id).where(column == value)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        if (await db.execute(q)).first() is not None:
            errors[field] = ["has already been taken"]
    return errors


async def _flush_user(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError:
        logger.info("User uniqueness violation on flush")
        raise UnprocessableEntityError("username or email has already been taken") from None


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def register(
    db: AsyncSession,
    hasher: PasswordHasher,
    tokens: TokenService,
    data: UserRegistration,
) -> dict:
    errors = await _taken_fields(db, data.username, data.email)
    if errors:
        raise UnprocessableEntityError("username or email has already been taken", errors)

    user = User(
        username=data.username,
        email=data.email,
        password_hash=hasher.hash(data.password),
    )
    db.add(user)
    await _flush_user(db)
    return _user_to_dict(user, tokens.issue(user.id))


async def login(
    db: AsyncSession,
    hasher: PasswordHasher,
    tokens: TokenService,
    data: UserLogin,
) -> dict:
    """
    Exchange credentials for a fresh token.

    An unknown email and a wrong password fail identically.  Hashes made
    with outdated parameters are upgraded on a successful login.
    """
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()
    if user is None or not hasher.verify(user.password_hash, data.password):
        raise UnauthorizedError(_INVALID_CREDENTIALS)

    if hasher.needs_rehash(user.password_hash):
        user.password_hash = hasher.hash(data.password)
        user.updated_at = utcnow()
        await db.flush()

    return _user_to_dict(user, tokens.issue(user.id))


async def get_current_user(db: AsyncSession, identity: Identity) -> dict:
    user = await get_acting_user(db, identity)
    return _user_to_dict(user, identity.token)


async def update_user(
    db: AsyncSession,
    hasher: PasswordHasher,
    identity: Identity,
    data: UserUpdate,
) -> dict:
    """
    Apply a partial update to the authenticated user.

    Omitted and null fields keep their stored value; a new password is
    hashed before it is stored.  The caller's token is echoed back.
    """
    user = await get_acting_user(db, identity)

    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None
    }

    errors = await _taken_fields(
        db, changes.get("username"), changes.get("email"), exclude_id=user.id
    )
    if errors:
        raise UnprocessableEntityError("username or email has already been taken", errors)

    password = changes.pop("password", None)
    if password is not None:
        user.password_hash = hasher.hash(password)
    for field, value in changes.items():
        setattr(user, field, value)

    user.updated_at = utcnow()
    await _flush_user(db)
    return _user_to_dict(user, identity.token)
