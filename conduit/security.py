"""
Credential primitives: password hashing and signed identity tokens.

Both classes are constructed once from ``Settings`` at application startup
and handed to the request handlers through ``app.state``; they hold no
mutable state after construction.
"""
import logging
from datetime import datetime, timedelta, timezone

from jose import JOSEError, jwt
from passlib.context import CryptContext

from conduit.config import Settings
from conduit.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

_HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
_RSA_ALGORITHMS = frozenset({"RS256", "RS384", "RS512"})


class PasswordHasher:
    """Salted one-way hashing backed by a passlib bcrypt context."""

    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
            # Hashes made with a lower cost are upgraded on the next login.
            bcrypt__min_rounds=rounds,
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        """
        Return True when *password* matches *password_hash*.

        A hash passlib cannot identify (corrupt row, foreign format) is a
        failed verification rather than an error.
        """
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        try:
            return self._context.needs_update(password_hash)
        except (ValueError, TypeError):
            return True


class TokenService:
    """
    Issues and verifies expiring JWTs carrying a ``user_id`` claim.

    Every verification failure (malformed token, bad signature, algorithm
    other than the configured one, expiry, unexpected payload) surfaces as
    the same ``UnauthorizedError`` so callers cannot tell the causes apart.
    """

    def __init__(
        self,
        signing_key: str,
        verifying_key: str,
        algorithm: str = "HS256",
        expire_days: int = 30,
    ) -> None:
        if algorithm not in _HMAC_ALGORITHMS | _RSA_ALGORITHMS:
            raise ValueError(f"Unsupported JWT algorithm: {algorithm}")
        self._signing_key = signing_key
        self._verifying_key = verifying_key
        self.algorithm = algorithm
        self.lifetime = timedelta(days=expire_days)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        algorithm = settings.JWT_ALGORITHM.upper()
        if algorithm in _RSA_ALGORITHMS:
            if not settings.JWT_PRIVATE_KEY or not settings.JWT_PUBLIC_KEY:
                raise ValueError(f"{algorithm} requires JWT_PRIVATE_KEY and JWT_PUBLIC_KEY")
            return cls(
                settings.JWT_PRIVATE_KEY,
                settings.JWT_PUBLIC_KEY,
                algorithm,
                settings.JWT_EXPIRE_DAYS,
            )
        return cls(settings.SECRET_KEY, settings.SECRET_KEY, algorithm, settings.JWT_EXPIRE_DAYS)

    def issue(self, user_id: int, now: datetime | None = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            "user_id": user_id,
            "exp": int((issued_at + self.lifetime).timestamp()),
        }
        return jwt.encode(claims, self._signing_key, algorithm=self.algorithm)

    def verify(self, token: str) -> int:
        try:
            payload = jwt.decode(
                token,
                self._verifying_key,
                algorithms=[self.algorithm],
                options={"require_exp": True},
            )
        except JOSEError as exc:
            logger.debug("Token rejected: %s", exc)
            raise UnauthorizedError() from None

        user_id = payload.get("user_id")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            logger.debug("Token rejected: missing or non-integer user_id claim")
            raise UnauthorizedError()
        return user_id
