"""Request-scoped dependencies: bridge context lookup and shared-token auth."""

from __future__ import annotations

import hmac

from fastapi import Depends, Request

from ...core.exceptions import AuthenticationError
from ...core.logging_config import get_logger
from ..services.context import BridgeContext
from ..services.dispatcher import RequestDispatcher

logger = get_logger(__name__)

_BEARER_PREFIX = "bearer "


def get_context(request: Request) -> BridgeContext:
    return request.app.state.bridge


def get_dispatcher(context: BridgeContext = Depends(get_context)) -> RequestDispatcher:
    return RequestDispatcher(context)


def presented_tokens(request: Request) -> list[str]:
    """Credentials from both headers; either one may carry the shared token."""

    tokens: list[str] = []
    authorization = request.headers.get("authorization", "")
    if authorization[: len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        tokens.append(authorization[len(_BEARER_PREFIX):].strip())
    api_key = request.headers.get("x-api-key")
    if api_key is not None:
        tokens.append(api_key.strip())
    return [token for token in tokens if token]


async def require_token(request: Request, context: BridgeContext = Depends(get_context)) -> None:
    """Reject the request unless it carries the configured shared token.

    An empty configured token rejects everything.
    """

    expected = context.settings.token.get_secret_value()
    supplied = presented_tokens(request)
    if not expected or not supplied:
        logger.info("auth_rejected", path=request.url.path, token_configured=bool(expected))
        raise AuthenticationError()
    expected_bytes = expected.encode("utf-8")
    matches = [hmac.compare_digest(token.encode("utf-8"), expected_bytes) for token in supplied]
    if not any(matches):
        logger.info("auth_rejected", path=request.url.path, token_configured=True)
        raise AuthenticationError()
