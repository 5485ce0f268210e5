"""Shared type definitions."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol, Union, runtime_checkable

UnavailabilityReason = Literal[
    "missing_language_model_api",
    "copilot_model_unavailable",
    "not_found",
    "rate_limited",
    "consent_required",
]


@dataclass(slots=True, frozen=True)
class TextFragment:
    """A piece of assistant text produced by the backing model."""

    value: str


@dataclass(slots=True, frozen=True)
class ToolCallFragment:
    """A complete tool invocation requested by the backing model."""

    call_id: str
    name: str
    input: Mapping[str, Any]


StreamPart = Union[TextFragment, ToolCallFragment]


@dataclass(slots=True, frozen=True)
class Tool:
    """Provider-neutral tool definition both request dialects collapse into."""

    name: str
    description: str | None
    input_schema: Mapping[str, Any] | None


@dataclass(slots=True, frozen=True)
class BackingTool:
    name: str
    description: str
    input_schema: Mapping[str, Any]


@dataclass(slots=True, frozen=True)
class BackingMessage:
    role: Literal["user", "assistant"]
    content: str

    @classmethod
    def user(cls, content: str) -> "BackingMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "BackingMessage":
        return cls(role="assistant", content=content)


@dataclass(slots=True, frozen=True)
class ResponseContext:
    """Per-request values threaded through response formatting."""

    request_id: str
    model_name: str
    created_at: int
    is_streaming: bool
    uses_function_call: bool = False


@dataclass(slots=True, frozen=True)
class ModelInfo:
    id: str
    created: int
    owned_by: str | None = None


@dataclass(slots=True, frozen=True)
class Unavailable:
    """Structured reason a model could not be resolved."""

    reason: UnavailabilityReason
    detail: str | None = None


class CancellationToken:
    """Cooperative cancellation signal shared by a request and its backing stream."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@runtime_checkable
class ModelHandle(Protocol):
    """A resolved backing model that can stream parts for a conversation."""

    id: str

    async def invoke(
        self,
        messages: Sequence[BackingMessage],
        tools: Sequence[BackingTool],
        token: CancellationToken,
    ) -> AsyncIterator[StreamPart]:
        ...


@runtime_checkable
class ModelProvider(Protocol):
    """Host capability the resolver selects models from."""

    @property
    def available(self) -> bool:
        ...

    async def list_models(self) -> list[ModelInfo]:
        ...

    def handle_for(self, model_id: str) -> ModelHandle:
        ...
