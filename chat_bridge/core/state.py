"""Process-wide bridge state, admission leases and the status sink."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

from .logging_config import get_logger
from .types import ModelHandle

logger = get_logger(__name__)

StatusKind = Literal["start", "success", "error", "disabled"]


@dataclass(slots=True)
class BridgeState:
    server_handle: Any | None = None
    model_handle: ModelHandle | None = None
    running: bool = False
    active_requests: int = 0
    last_reason: str | None = None
    model_attempted: bool = False

    def try_acquire(self, ceiling: int) -> "RequestLease | None":
        """Admit one request unless ``ceiling`` requests are already in flight."""

        # No await between the check and the increment: atomic on the event loop.
        if self.active_requests >= ceiling:
            return None
        self.active_requests += 1
        return RequestLease(self)

    def _release(self) -> None:
        if self.active_requests <= 0:
            logger.warning("active_request_counter_underflow", active=self.active_requests)
            self.active_requests = 0
            return
        self.active_requests -= 1


class RequestLease:
    """One admitted request. ``release`` is idempotent."""

    __slots__ = ("_state", "_released")

    def __init__(self, state: BridgeState) -> None:
        self._state = state
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._state._release()


class StatusSink(Protocol):
    def update(self, kind: StatusKind, state: BridgeState) -> None:
        ...


class LoggingStatusSink:
    """Reports availability transitions through the structured log."""

    def __init__(self) -> None:
        self._last: tuple[StatusKind, str | None] | None = None

    def update(self, kind: StatusKind, state: BridgeState) -> None:
        snapshot = (kind, state.last_reason)
        if snapshot == self._last:
            return
        self._last = snapshot

        if kind == "start":
            availability = "ok" if state.model_handle else (
                "unavailable" if state.model_attempted else "pending"
            )
            logger.info("bridge_status", status="started", copilot=availability)
        elif kind == "success":
            model_id = state.model_handle.id if state.model_handle else None
            logger.info("bridge_status", status="ok", model=model_id)
        elif kind == "error":
            logger.warning("bridge_status", status="unavailable", reason=state.last_reason)
        else:
            logger.info("bridge_status", status="disabled")
