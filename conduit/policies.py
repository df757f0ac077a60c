"""
Ownership checks applied to mutations.

Callers load the target first (a missing resource is a 404 before any of
these run) and call the matching assertion before touching storage.
"""
from conduit.dependencies import Identity
from conduit.exceptions import UnauthorizedError, UnprocessableEntityError
from conduit.models import Article, Comment, User


def assert_owns_article(identity: Identity, article: Article, action: str = "update") -> None:
    if identity.user_id != article.author_id:
        raise UnauthorizedError(f"not authorized to {action} this article")


def assert_owns_comment(identity: Identity, comment: Comment) -> None:
    if identity.user_id != comment.author_id:
        raise UnauthorizedError("not authorized to delete this comment")


def assert_not_self(identity: Identity, target: User, action: str = "follow") -> None:
    if identity.user_id == target.id:
        raise UnprocessableEntityError(f"cannot {action} yourself")
