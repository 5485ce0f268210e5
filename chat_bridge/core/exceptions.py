"""Custom exception hierarchy for the bridge service.

Every ``BridgeError`` knows how it is reported over HTTP: the status code, the
OpenAI-style ``type``/``code`` pair, the Anthropic error ``type`` and an optional
machine-readable ``reason``. The front door renders whichever envelope matches
the route that raised it.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for bridge-level issues."""

    status_code: int = 500
    error_type: str = "server_error"
    error_code: str = "internal_error"
    anthropic_type: str = "api_error"
    default_message: str = "internal_error"

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.reason = reason

    @property
    def headers(self) -> dict[str, str] | None:
        return None


class ConfigurationError(BridgeError):
    """Raised when configuration is invalid or missing."""


class InvalidRequestError(BridgeError):
    """Raised when a request body does not decode into the route's request model."""

    status_code = 400
    error_type = "invalid_request_error"
    error_code = "invalid_payload"
    anthropic_type = "invalid_request_error"
    default_message = "invalid request"


class AuthenticationError(BridgeError):
    """Raised when the shared token is missing or does not match."""

    status_code = 401
    error_type = "invalid_request_error"
    error_code = "unauthorized"
    anthropic_type = "authentication_error"
    default_message = "unauthorized"


class RouteNotFoundError(BridgeError):
    status_code = 404
    error_type = "invalid_request_error"
    error_code = "route_not_found"
    anthropic_type = "not_found_error"
    default_message = "not found"


class ModelNotFoundError(BridgeError):
    """Raised when a specific model was requested and the backing API has no match."""

    status_code = 404
    error_type = "invalid_request_error"
    error_code = "model_not_found"
    anthropic_type = "not_found_error"
    default_message = "model not found"

    def __init__(self, message: str | None = None, *, reason: str | None = "not_found") -> None:
        super().__init__(message, reason=reason)


class RateLimitExceeded(BridgeError):
    """Raised when the admission ceiling is reached."""

    status_code = 429
    error_type = "rate_limit_error"
    error_code = "rate_limit_exceeded"
    anthropic_type = "rate_limit_error"
    default_message = "too many requests"

    @property
    def headers(self) -> dict[str, str] | None:
        return {"Retry-After": "1"}


class ModelUnavailableError(BridgeError):
    """Raised when the backing API is absent or offers no usable model."""

    status_code = 503
    error_type = "server_error"
    error_code = "copilot_unavailable"
    anthropic_type = "api_error"
    default_message = "Copilot unavailable"


class ExternalServiceError(BridgeError):
    """Raised when the backing model endpoint responds with an error."""
