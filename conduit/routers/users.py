from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from conduit.database import get_db
from conduit.dependencies import Identity, get_password_hasher, get_token_service, require_identity
from conduit.schemas import LoginRequest, RegisterRequest, UpdateUserRequest
from conduit.security import PasswordHasher, TokenService
from conduit.services import user_service

router = APIRouter(prefix="/api", tags=["users"])

@router.post("/users", status_code=201)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    return await user_service.register(db, hasher, tokens, payload.user)

@router.post("/users/login")
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    return await user_service.login(db, hasher, tokens, payload.user)

@router.get("/user")
async def current_user(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_current_user(db, identity)

@router.put("/user")
async def update_user(
    payload: UpdateUserRequest,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    return await user_service.update_user(db, hasher, identity, payload.user)
