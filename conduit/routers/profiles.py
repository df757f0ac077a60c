from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from conduit.database import get_db
from conduit.dependencies import Identity, optional_identity, require_identity
from conduit.services import profile_service

router = APIRouter(prefix="/api/profiles", tags=["profiles"])

@router.get("/{username}")
async def get_profile(
    username: str,
    viewer: Identity | None = Depends(optional_identity),
    db: AsyncSession = Depends(get_db),
):
    return await profile_service.get_profile(db, username, viewer)

@router.post("/{username}/follow")
async def follow(
    username: str,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await profile_service.follow(db, identity, username)

@router.delete("/{username}/follow")
async def unfollow(
    username: str,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await profile_service.unfollow(db, identity, username)
