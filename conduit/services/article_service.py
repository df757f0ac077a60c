"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Listings are built from one SELECT for the page (author joined with
  ``joinedload``) followed by a fixed set of batched lookups in
  ``_project``: tags, favorite counts, the viewer's favorites and the
  viewer's follows.  The number of queries does not grow with the page.
- ``favoritesCount`` is absolute; ``favorited`` and ``author.following``
  are relative to the viewer and always false for anonymous reads.
- Slugs are derived from the title and must be unique.  A collision is a
  422 on the ``slug`` field, never a silent rename.
- Tag replacement deletes every association of the article and inserts the
  new set inside the request transaction owned by ``get_db``, so readers
  see either the old set or the new one.
- Service functions flush but do not commit.
"""
import logging
import re

from sqlalchemy import delete, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from conduit.config import settings
from conduit.dependencies import Identity
from conduit.exceptions import NotFoundError, UnprocessableEntityError
from conduit.models import Article, Comment, Favorite, Follow, Tag, User, article_tags, utcnow
from conduit.policies import assert_owns_article
from conduit.schemas import ArticleCreate, ArticleUpdate
from conduit.services.profile_service import following_ids, get_acting_user, profile_to_dict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

# INSERT ... ON CONFLICT DO NOTHING, per backend.
_CONFLICT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _clamp(limit: int) -> int:
    return max(0, min(limit, settings.MAX_PAGE_SIZE))


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


async def get_article_or_404(db: AsyncSession, slug: str) -> Article:
    q = select(Article).where(Article.slug == slug).options(joinedload(Article.author))
    article = (await db.execute(q)).unique().scalar_one_or_none()
    if article is None:
        raise NotFoundError("article not found")
    return article


async def _slug_for(db: AsyncSession, title: str, current: Article | None = None) -> str:
    slug = slugify(title)
    if not slug:
        raise UnprocessableEntityError(
            "title must contain at least one letter or digit",
            {"title": ["must contain at least one letter or digit"]},
        )
    q = select(Article.id).where(Article.slug == slug)
    if current is not None:
        q = q.where(Article.id != current.id)
    if (await db.execute(q)).first() is not None:
        raise UnprocessableEntityError.taken("slug")
    return slug


async def _flush_article(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError:
        # Another request claimed the slug between our check and the write.
        logger.info("Slug uniqueness violation on flush")
        raise UnprocessableEntityError.taken("slug") from None


async def _ensure_tags(db: AsyncSession, names: list[str]) -> None:
    """Insert the tags in *names* that do not exist yet; existing ones are left alone."""
    dialect_insert = _CONFLICT_INSERTS[db.get_bind().dialect.name]
    stmt = dialect_insert(Tag.__table__).on_conflict_do_nothing(index_elements=["name"])
    await db.execute(stmt, [{"name": name} for name in names])


async def _replace_tags(db: AsyncSession, article_id: int, tag_names: list[str]) -> None:
    """
    Replace the article's tag set with *tag_names*, creating unknown tags.

    Duplicates in *tag_names* collapse to one association.  Two writers
    introducing the same new tag both succeed.
    """
    names = list(dict.fromkeys(tag_names))
    await db.execute(delete(article_tags).where(article_tags.c.article_id == article_id))
    if not names:
        return

    await _ensure_tags(db, names)
    await db.execute(
        insert(article_tags),
        [{"article_id": article_id, "tag_name": name} for name in names],
    )


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _article_to_dict(
    article: Article,
    tag_list: list[str],
    favorited: bool,
    favorites_count: int,
    following: bool,
) -> dict:
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": tag_list,
        "createdAt": _isoformat(article.created_at),
        "updatedAt": _isoformat(article.updated_at),
        "favorited": favorited,
        "favoritesCount": favorites_count,
        "author": profile_to_dict(article.author, following),
    }


async def _project(
    db: AsyncSession, articles: list[Article], viewer_id: int | None
) -> list[dict]:
    """Build article views for *articles* with a fixed number of queries."""
    if not articles:
        return []
    ids = [a.id for a in articles]

    tags: dict[int, list[str]] = {i: [] for i in ids}
    tag_rows = await db.execute(
        select(article_tags.c.article_id, article_tags.c.tag_name)
        .where(article_tags.c.article_id.in_(ids))
        .order_by(article_tags.c.tag_name)
    )
    for article_id, name in tag_rows:
        tags[article_id].append(name)

    count_rows = await db.execute(
        select(Favorite.article_id, func.count())
        .where(Favorite.article_id.in_(ids))
        .group_by(Favorite.article_id)
    )
    counts = {article_id: count for article_id, count in count_rows}

    favorited: set[int] = set()
    if viewer_id is not None:
        fav_rows = await db.execute(
            select(Favorite.article_id).where(
                Favorite.user_id == viewer_id,
                Favorite.article_id.in_(ids),
            )
        )
        favorited = set(fav_rows.scalars().all())

    followed = await following_ids(db, viewer_id, {a.author_id for a in articles})

    return [
        _article_to_dict(
            a,
            tag_list=tags[a.id],
            favorited=a.id in favorited,
            favorites_count=counts.get(a.id, 0),
            following=a.author_id in followed,
        )
        for a in articles
    ]


async def _single_view(db: AsyncSession, article: Article, viewer_id: int | None) -> dict:
    (view,) = await _project(db, [article], viewer_id)
    return {"article": view}


async def _page(db: AsyncSession, q, viewer_id: int | None, limit: int, offset: int) -> dict:
    q = (
        q.options(joinedload(Article.author))
        .order_by(Article.created_at.desc(), Article.id.desc())
        .offset(max(offset, 0))
        .limit(_clamp(limit))
    )
    articles = list((await db.execute(q)).unique().scalars().all())
    views = await _project(db, articles, viewer_id)
    # articlesCount is the size of this page, not a total over all matches.
    return {"articles": views, "articlesCount": len(views)}


# ---------------------------------------------------------------------------
# Public service functions: queries
# ---------------------------------------------------------------------------

async def list_articles(
    db: AsyncSession,
    viewer: Identity | None = None,
    tag: str | None = None,
    author: str | None = None,
    favorited: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """
    Return a page of articles, newest first.

    *tag*, *author* and *favorited* (a username) combine with AND.
    """
    q = select(Article)
    if tag is not None:
        q = q.where(
            Article.id.in_(
                select(article_tags.c.article_id).where(article_tags.c.tag_name == tag)
            )
        )
    if author is not None:
        q = q.where(Article.author_id.in_(select(User.id).where(User.username == author)))
    if favorited is not None:
        q = q.where(
            Article.id.in_(
                select(Favorite.article_id)
                .join(User, User.id == Favorite.user_id)
                .where(User.username == favorited)
            )
        )
    return await _page(db, q, viewer.user_id if viewer else None, limit, offset)


async def feed_articles(
    db: AsyncSession, identity: Identity, limit: int = 20, offset: int = 0
) -> dict:
    """Return a page of articles written by authors *identity* follows."""
    await get_acting_user(db, identity)
    q = select(Article).where(
        Article.author_id.in_(
            select(Follow.followee_id).where(Follow.follower_id == identity.user_id)
        )
    )
    return await _page(db, q, identity.user_id, limit, offset)


async def get_article(db: AsyncSession, slug: str, viewer: Identity | None = None) -> dict:
    article = await get_article_or_404(db, slug)
    return await _single_view(db, article, viewer.user_id if viewer else None)


# ---------------------------------------------------------------------------
# Public service functions: mutations
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, identity: Identity, data: ArticleCreate) -> dict:
    author = await get_acting_user(db, identity)

    slug = await _slug_for(db, data.title)
    article = Article(
        slug=slug,
        title=data.title,
        description=data.description,
        body=data.body,
        author_id=author.id,
    )
    db.add(article)
    await _flush_article(db)
    article.author = author

    await _replace_tags(db, article.id, data.tag_list)
    return await _single_view(db, article, identity.user_id)


async def update_article(
    db: AsyncSession, identity: Identity, slug: str, data: ArticleUpdate
) -> dict:
    """
    Partially update the article at *slug*.

    Fields that are omitted or null keep their stored value.  A new title
    regenerates the slug; ``tagList``, when present, replaces the tag set.
    """
    await get_acting_user(db, identity)
    article = await get_article_or_404(db, slug)
    assert_owns_article(identity, article, "update")

    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True, exclude={"tag_list"}).items()
        if value is not None
    }
    if "title" in changes:
        article.slug = await _slug_for(db, changes["title"], current=article)
    for field, value in changes.items():
        setattr(article, field, value)
    article.updated_at = utcnow()
    await _flush_article(db)

    if data.tag_list is not None:
        await _replace_tags(db, article.id, data.tag_list)

    return await _single_view(db, article, identity.user_id)


async def delete_article(db: AsyncSession, identity: Identity, slug: str) -> None:
    """Delete the article at *slug* together with its favorites, tags and comments."""
    await get_acting_user(db, identity)
    article = await get_article_or_404(db, slug)
    assert_owns_article(identity, article, "delete")

    await db.execute(delete(Favorite).where(Favorite.article_id == article.id))
    await db.execute(delete(article_tags).where(article_tags.c.article_id == article.id))
    await db.execute(delete(Comment).where(Comment.article_id == article.id))
    await db.delete(article)
    await db.flush()


async def favorite_article(db: AsyncSession, identity: Identity, slug: str) -> dict:
    await get_acting_user(db, identity)
    article = await get_article_or_404(db, slug)

    if await db.get(Favorite, (identity.user_id, article.id)) is not None:
        raise UnprocessableEntityError("article already favorited")

    db.add(Favorite(user_id=identity.user_id, article_id=article.id))
    try:
        await db.flush()
    except IntegrityError:
        raise UnprocessableEntityError("article already favorited") from None

    return await _single_view(db, article, identity.user_id)


async def unfavorite_article(db: AsyncSession, identity: Identity, slug: str) -> dict:
    """Remove the favorite if present; removing a missing favorite is a no-op."""
    await get_acting_user(db, identity)
    article = await get_article_or_404(db, slug)
    await db.execute(
        delete(Favorite).where(
            Favorite.user_id == identity.user_id,
            Favorite.article_id == article.id,
        )
    )
    return await _single_view(db, article, identity.user_id)
