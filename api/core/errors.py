"""
Exception handlers that give every error response the same JSON shape:

    {"error": "<message>"}

Validation failures add a `details` list. Unhandled errors are logged and,
in development, carry the formatted traceback under `stack`.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import settings

logger = logging.getLogger(__name__)


def _validation_message(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    message = str(error.get("msg") or "Invalid value")
    return f"{location}: {message}" if location else message


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = "Route not found"
    else:
        message = exc.detail if exc.detail is not None else "Error"

    if exc.status_code >= 500:
        logger.error(
            "http_error status=%s method=%s path=%s detail=%s",
            exc.status_code,
            request.method,
            request.url.path,
            message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [_validation_message(err) for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details},
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_error method=%s path=%s ip=%s error=%s",
        request.method,
        request.url.path,
        request.client.host if request.client else None,
        exc,
        exc_info=exc,
    )
    content: dict = {"error": "Internal Server Error"}
    if settings.is_development():
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
