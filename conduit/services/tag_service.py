from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import Tag, article_tags


async def list_tags(db: AsyncSession) -> dict:
    """
    Return every tag name, most used first.

    Ties are broken alphabetically; tags no article uses any more come last.
    """
    usage = func.count(article_tags.c.article_id)
    q = (
        select(Tag.name)
        .outerjoin(article_tags, article_tags.c.tag_name == Tag.name)
        .group_by(Tag.name)
        .order_by(usage.desc(), Tag.name.asc())
    )
    return {"tags": list((await db.execute(q)).scalars().all())}
