"""Configuration management for the bridge service."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_ROOT = Path(__file__).resolve().parents[2]
_PACKAGE_DIR = Path(__file__).resolve().parents[1]
# Repository .env first, then the package directory, then the current working directory.
_ENV_FILE_CANDIDATES: tuple[str, ...] = (
    str(_REPO_ROOT / ".env"),
    str(_PACKAGE_DIR / ".env"),
    ".env",
)

LOOPBACK_HOSTS: frozenset[str] = frozenset({"127.0.0.1", "localhost", "::1"})


class BridgeSettings(BaseSettings):
    """Centralised configuration derived from ``BRIDGE_*`` environment variables."""

    enabled: bool = Field(True, description="Serve the HTTP gateway when the entry point runs")
    host: str = Field("127.0.0.1", description="Bind host, loopback only")
    port: int = Field(0, ge=0, le=65535, description="Bind port, 0 picks a free port")
    token: SecretStr = Field(
        SecretStr(""),
        description="Shared secret for Authorization/x-api-key; empty rejects every protected route",
    )
    history_window: int = Field(3, ge=1, description="Conversation turns forwarded to the model")
    verbose: bool = Field(False, description="Log per-request diagnostics at DEBUG level")
    max_concurrent: int = Field(1, ge=1, description="In-flight chat requests before 429")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: str | None = Field(
        None,
        description="Log file path; None or empty string disables file output",
    )

    backend_base_url: AnyHttpUrl | None = Field(
        None, description="OpenAI-compatible endpoint serving the backing model"
    )
    backend_api_key: SecretStr | None = Field(None, description="API key for the backing endpoint")
    backend_default_model: str | None = Field(
        None, description="Model used when a request names none; first listed model otherwise"
    )
    backend_timeout_seconds: float = Field(600.0, gt=0, description="HTTP timeout for backing calls")
    model_owner: str = Field("chat-bridge", description="owned_by value reported by /v1/models")

    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_",
        env_file=_ENV_FILE_CANDIDATES,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("host")
    @classmethod
    def _require_loopback(cls, value: str) -> str:
        host = value.strip().lower()
        if host not in LOOPBACK_HOSTS:
            raise ValueError(f"host must be a loopback address, got {value!r}")
        return host

    @field_validator("token", mode="before")
    @classmethod
    def _strip_token(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.verbose else self.log_level

    @property
    def token_configured(self) -> bool:
        return bool(self.token.get_secret_value())


@lru_cache
def get_settings() -> BridgeSettings:
    """Return a cached BridgeSettings instance."""

    return BridgeSettings()


def resolved_env_file() -> str | None:
    """Return the first readable .env file from the candidate list."""

    for candidate in _ENV_FILE_CANDIDATES:
        path = Path(candidate).expanduser()
        if path.is_file():
            return str(path)
    return None


def env_file_candidates() -> tuple[str, ...]:
    """Expose configured env file search order for diagnostics."""

    return _ENV_FILE_CANDIDATES
