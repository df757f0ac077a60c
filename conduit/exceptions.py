"""
API error hierarchy and the FastAPI handlers that render it.

Every error response is JSON with one of two shapes::

    {"error": "<message>"}
    {"errors": {"<field>": ["<message>", ...]}}

Internal failures are logged server-side and rendered as an opaque 500.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map to a client-visible HTTP status."""

    status_code = 500

    def __init__(self, message: str, errors: dict[str, list[str]] | None = None):
        self.message = message
        self.errors = errors
        super().__init__(message)

    def to_body(self) -> dict:
        if self.errors:
            return {"errors": self.errors}
        return {"error": self.message}


class UnauthorizedError(ApiError):
    """401 Unauthorized"""
    status_code = 401

    def __init__(self, message: str = "Unauthorized", errors: dict[str, list[str]] | None = None):
        super().__init__(message, errors)


class NotFoundError(ApiError):
    """404 Not Found"""
    status_code = 404


class UnprocessableEntityError(ApiError):
    """422 Unprocessable Entity"""
    status_code = 422

    @classmethod
    def taken(cls, field: str) -> "UnprocessableEntityError":
        return cls(f"{field} has already been taken", {field: ["has already been taken"]})


_LOCATION_SOURCES = ("body", "query", "path", "header", "cookie")


def _validation_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        # Only the leading element names the request part; a field may itself be called "body".
        if loc and loc[0] in _LOCATION_SOURCES:
            source, loc = loc[0], loc[1:]
        else:
            source = "body"
        field = loc[-1] if loc else source
        errors.setdefault(field, []).append(err.get("msg", "is invalid"))
    return errors


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing errors (unknown path, wrong method) in the API's error shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"errors": _validation_errors(exc)})


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
