from dataclasses import dataclass

from fastapi import Depends, Header, Query, Request

from conduit.config import settings
from conduit.exceptions import UnauthorizedError
from conduit.security import PasswordHasher, TokenService

AUTH_SCHEME = "Token"


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset`` query
    parameters for article listings.

    Attributes
    ----------
    limit:
        Maximum number of items to return, clamped to
        ``settings.MAX_PAGE_SIZE`` regardless of the value supplied by the
        caller (a request for 500 silently becomes 100).
    offset:
        Number of items to skip (minimum 0).
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of articles to return (clamped to the server maximum).",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of articles to skip.",
        ),
    ) -> None:
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


# ---------------------------------------------------------------------------
# Process-wide collaborators, built once in main.py and kept on app.state
# ---------------------------------------------------------------------------

def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


# ---------------------------------------------------------------------------
# Authorization gate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as resolved from a bearer token."""

    user_id: int
    token: str


class AuthGate:
    """
    Resolves an ``Authorization`` header to an :class:`Identity`.

    ``require_auth`` fails hard with ``UnauthorizedError``; ``optional_auth``
    runs the same checks but degrades every failure to ``None`` so anonymous
    reads still work.  Which one an endpoint uses is decided per route.
    """

    def __init__(self, token_service: TokenService) -> None:
        self._tokens = token_service

    @staticmethod
    def _extract_token(header: str | None) -> str:
        if not header:
            raise UnauthorizedError()
        parts = header.split()
        if len(parts) != 2 or parts[0] != AUTH_SCHEME:
            raise UnauthorizedError()
        return parts[1]

    def require_auth(self, header: str | None) -> Identity:
        token = self._extract_token(header)
        return Identity(user_id=self._tokens.verify(token), token=token)

    def optional_auth(self, header: str | None) -> Identity | None:
        try:
            return self.require_auth(header)
        except UnauthorizedError:
            return None


def get_auth_gate(token_service: TokenService = Depends(get_token_service)) -> AuthGate:
    return AuthGate(token_service)


async def require_identity(
    authorization: str | None = Header(None),
    gate: AuthGate = Depends(get_auth_gate),
) -> Identity:
    return gate.require_auth(authorization)


async def optional_identity(
    authorization: str | None = Header(None),
    gate: AuthGate = Depends(get_auth_gate),
) -> Identity | None:
    return gate.optional_auth(authorization)
