import json
import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL statement counter, scoped to the current request
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Count every statement *engine* sends to the database, eager loads and
    bulk writes included, into ``query_count_var``.

    The article projection is expected to cost a fixed number of queries
    per page; the count makes that observable.  Install once per engine.
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


# ---------------------------------------------------------------------------
# Middleware. Written against raw ASGI so the query counter set by the
# handler stays visible to the header writer.
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Stamp each HTTP response with ``X-Response-Time-Ms`` and
    ``X-Query-Count`` and log the same figures at debug level.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # Fresh count for this request.
        query_count_var.set(0)
        start = time.perf_counter()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                queries = query_count_var.get()
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(queries).encode()))
                message["headers"] = headers
                logger.debug(
                    "%s %s -> %s in %sms (%d queries)",
                    scope["method"], scope["path"], message["status"], duration_ms, queries,
                )
            await send(message)

        await self.app(scope, receive, send_wrapper)


class TokenBucket:
    """Single shared bucket: refills at *rate* tokens per second up to *capacity*."""

    def __init__(self, rate: float, capacity: int) -> None:
        self.rate = rate
        self.capacity = float(capacity)
        self.tokens = float(capacity)
        self.last_update = time.monotonic()

    def consume(self) -> bool:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_update) * self.rate)
        self.last_update = now
        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False


class RateLimitMiddleware:
    """
    Fixed, process-wide request limit.

    All clients share one bucket; a request that finds it empty gets 429
    ``{"error": "Too Many Requests"}``.  Settings are read per request so a
    ``rate_per_second`` callable returning 0 or less turns the limit off.
    """

    def __init__(self, app: ASGIApp, rate_per_second, burst) -> None:
        self.app = app
        self._rate = rate_per_second
        self._burst = burst
        self._bucket: TokenBucket | None = None

    def _current_bucket(self) -> TokenBucket | None:
        rate, burst = self._rate(), self._burst()
        if rate <= 0:
            return None
        if self._bucket is None or self._bucket.rate != rate or self._bucket.capacity != burst:
            self._bucket = TokenBucket(rate, burst)
        return self._bucket

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        bucket = self._current_bucket() if scope["type"] == "http" else None
        if bucket is None or bucket.consume():
            await self.app(scope, receive, send)
            return

        logger.warning("Rate limit exceeded: %s %s", scope["method"], scope["path"])
        body = json.dumps({"error": "Too Many Requests"}).encode()
        await send({
            "type": "http.response.start",
            "status": 429,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
                (b"retry-after", b"1"),
            ],
        })
        await send({"type": "http.response.body", "body": body})
