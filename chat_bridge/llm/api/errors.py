"""Exception handlers rendering OpenAI or Anthropic error envelopes."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...core.exceptions import (
    BridgeError,
    ExternalServiceError,
    InvalidRequestError,
    RouteNotFoundError,
)
from ...core.logging_config import get_logger

logger = get_logger(__name__)

ANTHROPIC_PREFIX = "/v1/messages"


def uses_anthropic_envelope(path: str) -> bool:
    return path == ANTHROPIC_PREFIX or path.startswith(ANTHROPIC_PREFIX + "/")


def error_body(exc: BridgeError, *, anthropic: bool) -> dict[str, Any]:
    if anthropic:
        return {"type": "error", "error": {"type": exc.anthropic_type, "message": exc.message}}
    error: dict[str, Any] = {
        "message": exc.message,
        "type": exc.error_type,
        "code": exc.error_code,
    }
    if exc.reason:
        error["reason"] = exc.reason
    return {"error": error}


def render_error(request: Request, exc: BridgeError) -> JSONResponse:
    anthropic = uses_anthropic_envelope(request.url.path)
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.error_code,
        reason=exc.reason,
        message=exc.message,
    )
    return JSONResponse(
        error_body(exc, anthropic=anthropic),
        status_code=exc.status_code,
        headers=exc.headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BridgeError)
    async def _bridge_error(request: Request, exc: BridgeError) -> JSONResponse:
        return render_error(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (404, 405):
            return render_error(request, RouteNotFoundError())
        wrapped: BridgeError
        if exc.status_code < 500:
            wrapped = InvalidRequestError(str(exc.detail))
        else:
            wrapped = ExternalServiceError(str(exc.detail))
        wrapped.status_code = exc.status_code
        return render_error(request, wrapped)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = str(errors[0].get("msg", "invalid request")) if errors else "invalid request"
        return render_error(request, InvalidRequestError(message))

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", path=request.url.path)
        return render_error(request, ExternalServiceError(str(exc) or None))
