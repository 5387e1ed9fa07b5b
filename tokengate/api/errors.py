"""Exception handlers rendering errors as standard response bodies."""

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from tokengate.api.responses import ErrorResponse, ValidationDetail, format_error
from tokengate.core.errors import AuthError

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_ERROR = 500

_LOCATION_PREFIXES = frozenset({"body", "query", "path", "header", "cookie"})

_HTTP_ERROR_DEFAULTS = {
    401: ("Unauthorized", "Authentication required"),
    403: ("Forbidden", "Access denied"),
    404: ("Not Found", "Resource not found"),
    429: ("Too Many Requests", "Rate limit exceeded"),
}


def _json(body: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        body.model_dump(exclude_none=True),
        status_code=body.status,
        headers=headers,
    )


def _field_name(loc: tuple[int | str, ...]) -> str:
    parts = list(loc)
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(str(p) for p in parts) or "unknown"


def install_error_handlers(app: FastAPI, debug: bool = False) -> None:
    """Register handlers for auth, validation, HTTP and unexpected errors."""

    async def handle_auth_error(request: Request, exc: Exception) -> JSONResponse:
        assert isinstance(exc, AuthError)
        if exc.status_code >= HTTP_INTERNAL_ERROR:
            logger.error(
                "Token configuration error on %s %s: %s",
                request.method,
                request.url.path,
                exc.describe(True),
            )
        else:
            logger.warning(
                "Authentication failed on %s %s: %s",
                request.method,
                request.url.path,
                exc.kind,
            )
        return _json(format_error(exc.status_code, exc.title, exc.describe(debug)))

    async def handle_validation_error(
        request: Request, exc: Exception
    ) -> JSONResponse:
        assert isinstance(exc, RequestValidationError)
        logger.info("Request validation failed on %s %s", request.method, request.url.path)
        details = [
            ValidationDetail(
                field=_field_name(tuple(error.get("loc", ()))),
                message=error.get("msg") or "Validation failed",
            )
            for error in exc.errors()
        ]
        return _json(
            format_error(
                HTTP_BAD_REQUEST,
                "Validation Error",
                "Request validation failed",
                details,
            )
        )

    async def handle_http_error(request: Request, exc: Exception) -> JSONResponse:
        assert isinstance(exc, StarletteHTTPException)
        logger.info(
            "HTTP %d on %s %s", exc.status_code, request.method, request.url.path
        )
        title, default_message = _HTTP_ERROR_DEFAULTS.get(
            exc.status_code, (HTTPStatus(exc.status_code).phrase, "")
        )
        message = exc.detail if isinstance(exc.detail, str) else ""
        if not message or message == HTTPStatus(exc.status_code).phrase:
            message = default_message or message or title
        return _json(
            format_error(exc.status_code, title, message),
            headers=exc.headers,
        )

    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error on %s %s", request.method, request.url.path
        )
        return _json(
            format_error(
                HTTP_INTERNAL_ERROR,
                "Internal Server Error",
                "An unexpected error occurred",
            )
        )

    app.add_exception_handler(AuthError, handle_auth_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected)
