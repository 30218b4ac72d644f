"""FastAPI exception handlers rendering ``{"error": message, "code": CODE, ...}``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...services.agent_tokens import AgentAccessError

logger = logging.getLogger(__name__)

DEFAULT_ERRORS: Dict[int, Tuple[str, str]] = {
    status.HTTP_400_BAD_REQUEST: ("VALIDATION_ERROR", "Invalid request payload"),
    status.HTTP_401_UNAUTHORIZED: ("UNAUTHORIZED", "Authorization required"),
    status.HTTP_403_FORBIDDEN: ("FORBIDDEN", "Forbidden"),
    status.HTTP_404_NOT_FOUND: ("NOT_FOUND", "Resource not found"),
    status.HTTP_405_METHOD_NOT_ALLOWED: ("METHOD_NOT_ALLOWED", "Method not allowed"),
    status.HTTP_409_CONFLICT: ("VERSION_CONFLICT", "Resource version conflict"),
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: (
        "CONTENT_TOO_LARGE",
        "Payload exceeds allowed size",
    ),
    status.HTTP_429_TOO_MANY_REQUESTS: ("RATE_LIMIT_EXCEEDED", "Too many requests"),
    status.HTTP_500_INTERNAL_SERVER_ERROR: ("INTERNAL_ERROR", "Internal server error"),
}


def _normalize_error(
    status_code: int, detail: Any
) -> Tuple[str, str, Dict[str, Any]]:
    default_code, default_message = DEFAULT_ERRORS.get(
        status_code, DEFAULT_ERRORS[status.HTTP_500_INTERNAL_SERVER_ERROR]
    )
    if isinstance(detail, dict):
        code = detail.get("code", default_code)
        message = detail.get("error", default_message)
        extra = {k: v for k, v in detail.items() if k not in {"error", "code"}}
        return code, message, extra
    if isinstance(detail, str) and detail:
        return default_code, detail, {}
    return default_code, default_message, {}


def _response(
    status_code: int, detail: Any, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    code, message, extra = _normalize_error(status_code, detail)
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "code": code, **extra},
        headers=headers,
    )


def agent_error_response(exc: AgentAccessError) -> JSONResponse:
    """Render an :class:`AgentAccessError`, adding ``Retry-After`` on 429."""
    headers = None
    retry_after = exc.detail.get("retry_after")
    if exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS and retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    detail = {"error": exc.message, "code": exc.code.value, **exc.detail}
    return _response(exc.status_code, detail, headers)


async def agent_access_exception_handler(
    request: Request, exc: AgentAccessError
) -> JSONResponse:
    return agent_error_response(exc)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    detail = {"details": {"errors": jsonable_encoder(exc.errors())}}
    return _response(status.HTTP_400_BAD_REQUEST, detail)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return _response(exc.status_code, exc.detail, getattr(exc, "headers", None))


async def internal_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return _response(status.HTTP_500_INTERNAL_SERVER_ERROR, None)


def register_error_handlers(app: FastAPI) -> None:
    """Attach shared exception handlers to the FastAPI application."""
    app.add_exception_handler(AgentAccessError, agent_access_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, internal_exception_handler)


__all__ = [
    "register_error_handlers",
    "agent_error_response",
    "agent_access_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "internal_exception_handler",
]
