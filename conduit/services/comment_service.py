"""
Comment service: comments on an article, addressed by the article's slug.

Comments are listed newest first.  Only the author of a comment may delete
it; a comment id that exists but belongs to a different article is treated
as missing.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from conduit.dependencies import Identity
from conduit.exceptions import NotFoundError
from conduit.models import Comment
from conduit.policies import assert_owns_comment
from conduit.schemas import CommentCreate
from conduit.services.article_service import get_article_or_404
from conduit.services.profile_service import following_ids, get_acting_user, profile_to_dict


def _comment_to_dict(comment: Comment, following: bool) -> dict:
    return {
        "id": comment.id,
        "createdAt": comment.created_at.isoformat() if comment.created_at else None,
        "updatedAt": comment.updated_at.isoformat() if comment.updated_at else None,
        "body": comment.body,
        "author": profile_to_dict(comment.author, following),
    }


async def list_comments(db: AsyncSession, slug: str, viewer: Identity | None = None) -> dict:
    article = await get_article_or_404(db, slug)

    q = (
        select(Comment)
        .where(Comment.article_id == article.id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
    )
    comments = (await db.execute(q)).unique().scalars().all()

    viewer_id = viewer.user_id if viewer else None
    followed = await following_ids(db, viewer_id, {c.author_id for c in comments})
    return {"comments": [_comment_to_dict(c, c.author_id in followed) for c in comments]}


async def add_comment(
    db: AsyncSession, identity: Identity, slug: str, data: CommentCreate
) -> dict:
    """
    Append a comment by *identity* to the article at *slug*.

    The author lookup and the insert share the request transaction.
    """
    author = await get_acting_user(db, identity)
    article = await get_article_or_404(db, slug)

    comment = Comment(body=data.body, article_id=article.id, author_id=author.id)
    db.add(comment)
    await db.flush()
    comment.author = author

    # Commenters never follow themselves.
    return {"comment": _comment_to_dict(comment, following=False)}


async def delete_comment(
    db: AsyncSession, identity: Identity, slug: str, comment_id: int
) -> None:
    await get_acting_user(db, identity)
    article = await get_article_or_404(db, slug)

    result = await db.execute(
        select(Comment).where(Comment.id == comment_id, Comment.article_id == article.id)
    )
    comment = result.scalar_one_or_none()
    if comment is None:
        raise NotFoundError("comment not found")

    assert_owns_comment(identity, comment)
    await db.delete(comment)
    await db.flush()
