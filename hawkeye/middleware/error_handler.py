"""Error handlers: consistent JSON error bodies for domain and HTTP errors."""

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import (
    AlertNotFoundError,
    AssetNotFoundError,
    HawkeyeError,
    InvalidTransitionError,
    UserNotFoundError,
)
from ..utils.logging import get_logger

logger = get_logger("middleware.error_handler")


def _error_body(status_code: int, detail, **extra) -> dict:
    return {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


def status_for(exc: HawkeyeError) -> int:
    if isinstance(exc, (AlertNotFoundError, AssetNotFoundError, UserNotFoundError)):
        return 404
    if isinstance(exc, InvalidTransitionError):
        return 409
    return 500


def register_error_handlers(app: FastAPI) -> None:
    """Register standard error handlers on the app."""

    @app.exception_handler(HawkeyeError)
    async def hawkeye_error_handler(request: Request, exc: HawkeyeError):
        status_code = status_for(exc)
        if status_code == 500:
            logger.error("hawkeye_error", error=str(exc), path=str(request.url.path))
        return JSONResponse(status_code=status_code, content=_error_body(status_code, str(exc)))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=_error_body(400, str(exc)))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.status_code, exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=_error_body(422, "Validation error", errors=exc.errors()),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=str(request.url.path),
            exc_info=True,
        )
        return JSONResponse(status_code=500, content=_error_body(500, "Internal server error"))
