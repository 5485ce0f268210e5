"""Structlog logging configuration with plain-text output.

Request handlers bind ``request_id`` and ``dialect`` through structlog's
contextvars so every line logged while serving a request carries them, including
lines from the formatters and the backing provider.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

from .config import BridgeSettings, env_file_candidates, get_settings, resolved_env_file

_CONFIGURED = False

# Third-party loggers that only matter when diagnosing the backing connection.
_TRANSPORT_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")
_CONTEXT_KEYS = ("request_id", "dialect")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _render_plain_text(_: Any, event_name: str, event_dict: dict[str, Any]) -> str:
    """Render ``<ts> [LEVEL] <request_id> event key=value ...``."""

    timestamp = event_dict.pop("timestamp", None) or datetime.now(tz=timezone.utc).isoformat()
    level = str(event_dict.pop("level", "info")).upper()
    event = event_dict.pop("event", "") or event_dict.pop("message", "") or event_name
    event_dict.pop("logger", None)
    request_id = event_dict.pop("request_id", None)
    exception = event_dict.pop("exception", None)

    extras = " ".join(f"{key}={value}" for key, value in event_dict.items() if value is not None)
    line = " ".join(part for part in (timestamp, f"[{level}]", request_id, event, extras) if part)
    if exception:
        line = f"{line}\n{exception}"
    return line


def _formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _render_plain_text,
        ],
    )


def _build_handlers(level: str, log_file: str) -> list[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    handlers: list[logging.Handler] = [console]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(_formatter())
        handler.setLevel(level)
    return handlers


def configure_logging(settings: BridgeSettings | None = None, *, force: bool = False) -> None:
    """Configure application-wide logging once; ``force`` re-applies new settings."""

    global _CONFIGURED
    if _CONFIGURED and not force and logging.getLogger().handlers:
        return

    settings = settings or get_settings()
    level = settings.effective_log_level
    log_file = (settings.log_file or "").strip()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        handlers=_build_handlers(level, log_file),
        level=level,
        format="%(message)s",
        force=force,
    )

    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if settings.verbose else logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        level=level,
        verbose=settings.verbose,
        log_file=log_file or "stdout-only",
        env_file=resolved_env_file() or "not-found",
        env_candidates=list(env_file_candidates()),
    )

    _CONFIGURED = True


def bind_request_context(request_id: str, dialect: str) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id, dialect=dialect)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(*_CONTEXT_KEYS)


def get_logger(*args: Any, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Return a configured structlog logger."""

    configure_logging()
    return structlog.get_logger(*args, **kwargs)
