from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from conduit.database import get_db
from conduit.dependencies import Identity, PaginationParams, optional_identity, require_identity
from conduit.schemas import CreateArticleRequest, CreateCommentRequest, UpdateArticleRequest
from conduit.services import article_service, comment_service

router = APIRouter(prefix="/api/articles", tags=["articles"])

@router.get("")
async def list_articles(
    tag: str | None = None,
    author: str | None = None,
    favorited: str | None = None,
    pagination: PaginationParams = Depends(),
    viewer: Identity | None = Depends(optional_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.list_articles(
        db, viewer, tag, author, favorited, pagination.limit, pagination.offset
    )

# Declared before "/{slug}" so "feed" is not captured as a slug.
@router.get("/feed")
async def feed_articles(
    pagination: PaginationParams = Depends(),
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.feed_articles(db, identity, pagination.limit, pagination.offset)

@router.post("", status_code=201)
async def create_article(
    payload: CreateArticleRequest,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.create_article(db, identity, payload.article)

@router.get("/{slug}")
async def get_article(
    slug: str,
    viewer: Identity | None = Depends(optional_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_article(db, slug, viewer)

@router.put("/{slug}")
async def update_article(
    slug: str,
    payload: UpdateArticleRequest,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.update_article(db, identity, slug, payload.article)

@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, identity, slug)
    return Response(status_code=204)

@router.post("/{slug}/favorite")
async def favorite_article(
    slug: str,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.favorite_article(db, identity, slug)

@router.delete("/{slug}/favorite")
async def unfavorite_article(
    slug: str,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.unfavorite_article(db, identity, slug)

@router.get("/{slug}/comments")
async def list_comments(
    slug: str,
    viewer: Identity | None = Depends(optional_identity),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.list_comments(db, slug, viewer)

@router.post("/{slug}/comments", status_code=201)
async def add_comment(
    slug: str,
    payload: CreateCommentRequest,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.add_comment(db, identity, slug, payload.comment)

@router.delete("/{slug}/comments/{comment_id}", status_code=204)
async def delete_comment(
    slug: str,
    comment_id: int,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, identity, slug, comment_id)
    return Response(status_code=204)
