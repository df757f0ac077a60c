import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from conduit.config import settings
from conduit.database import engine, init_models
from conduit.exceptions import register_exception_handlers
from conduit.middleware import RateLimitMiddleware, TimingMiddleware
from conduit.routers import articles, profiles, tags, users
from conduit.security import PasswordHasher, TokenService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.CREATE_TABLES:
        await init_models()
    logger.info("Conduit API started (%s, jwt=%s)", settings.APP_ENV, settings.JWT_ALGORITHM)
    yield
    # Shutdown
    await engine.dispose()

app = FastAPI(
    title="Conduit API",
    description="Social blogging API: articles, comments, profiles, follows, favorites and tags",
    version="1.0.0",
    lifespan=lifespan,
)

# Process-wide collaborators, read-only after construction
app.state.token_service = TokenService.from_settings(settings)
app.state.password_hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)

register_exception_handlers(app)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    rate_per_second=lambda: settings.RATE_LIMIT_PER_SECOND,
    burst=lambda: settings.RATE_LIMIT_BURST,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(articles.router)
app.include_router(tags.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
