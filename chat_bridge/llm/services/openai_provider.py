"""Backing model provider for OpenAI-compatible endpoints, built on the OpenAI SDK."""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from openai import APIError as OpenAIError
from openai import (
    AsyncOpenAI,
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)

from ...core.config import BridgeSettings
from ...core.exceptions import ExternalServiceError
from ...core.http_client import build_async_http_client
from ...core.logging_config import get_logger
from ...core.types import (
    BackingMessage,
    BackingTool,
    CancellationToken,
    ModelInfo,
    StreamPart,
    TextFragment,
    ToolCallFragment,
)

logger = get_logger(__name__)


def _reason_for(exc: OpenAIError) -> str:
    if isinstance(exc, RateLimitError):
        return "rate_limited"
    if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        return "consent_required"
    if isinstance(exc, NotFoundError):
        return "not_found"
    return "copilot_model_unavailable"


def _wrap(exc: OpenAIError, action: str) -> ExternalServiceError:
    logger.error(
        "backend_sdk_error",
        action=action,
        error_type=type(exc).__name__,
        message=str(exc),
    )
    return ExternalServiceError(f"Backend error during {action}: {exc}", reason=_reason_for(exc))


@dataclass(slots=True)
class _PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: list[str] = field(default_factory=list)

    def to_part(self, fallback_id: str) -> ToolCallFragment:
        raw = "".join(self.arguments).strip()
        try:
            parsed = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            logger.warning("tool_call_arguments_not_json", name=self.name, preview=raw[:200])
            parsed = {"raw_arguments": raw}
        if not isinstance(parsed, dict):
            parsed = {"value": parsed}
        return ToolCallFragment(call_id=self.id or fallback_id, name=self.name, input=parsed)


def _flush(pending: dict[int, _PendingToolCall], prefix: str) -> list[ToolCallFragment]:
    parts = [pending[index].to_part(f"{prefix}_{index}") for index in sorted(pending)]
    pending.clear()
    return parts


async def iter_stream_parts(
    stream: Any, token: CancellationToken, *, model_id: str = ""
) -> AsyncIterator[StreamPart]:
    """Translate ``ChatCompletionChunk`` objects into text and tool-call parts.

    Tool-call deltas arrive in fragments keyed by index; they are assembled and
    released as whole calls once the choice finishes or the stream ends.
    """

    pending: dict[int, _PendingToolCall] = {}
    prefix = f"call_{int(time.time() * 1000)}"
    try:
        async for chunk in stream:
            if token.is_cancelled:
                logger.debug("backend_stream_cancelled", model=model_id)
                return
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if delta is not None:
                if delta.content:
                    yield TextFragment(delta.content)
                for fragment in delta.tool_calls or []:
                    call = pending.setdefault(fragment.index, _PendingToolCall())
                    if fragment.id:
                        call.id = fragment.id
                    if fragment.function is not None:
                        if fragment.function.name:
                            call.name += fragment.function.name
                        if fragment.function.arguments:
                            call.arguments.append(fragment.function.arguments)
            if choice.finish_reason:
                for part in _flush(pending, prefix):
                    yield part
        for part in _flush(pending, prefix):
            yield part
    except OpenAIError as exc:
        raise _wrap(exc, "stream") from exc
    finally:
        await stream.close()


class OpenAIModelHandle:
    """One model on the backing endpoint."""

    def __init__(self, client: AsyncOpenAI, model_id: str) -> None:
        self._client = client
        self.id = model_id

    async def invoke(
        self,
        messages: Sequence[BackingMessage],
        tools: Sequence[BackingTool],
        token: CancellationToken,
    ) -> AsyncIterator[StreamPart]:
        payload_messages = [{"role": m.role, "content": m.content} for m in messages]
        kwargs: dict[str, Any] = {
            "model": self.id,
            "messages": payload_messages,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": dict(tool.input_schema),
                    },
                }
                for tool in tools
            ]

        logger.debug(
            "backend_chat_request",
            model=self.id,
            message_count=len(payload_messages),
            tool_count=len(tools),
        )
        try:
            stream = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            raise _wrap(exc, "chat request") from exc
        return iter_stream_parts(stream, token, model_id=self.id)


class OpenAIModelProvider:
    """Backing capability over an OpenAI-compatible HTTP endpoint."""

    def __init__(self, settings: BridgeSettings, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client
        if client is None and settings.backend_api_key is not None and settings.backend_base_url:
            api_key = settings.backend_api_key.get_secret_value()
            masked_key = f"{api_key[:4]}***{api_key[-4:]}" if len(api_key) > 8 else "***"
            base_url = str(settings.backend_base_url).rstrip("/")
            logger.info("backend_client_init", base_url=base_url, api_key_masked=masked_key)
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                http_client=build_async_http_client(settings.backend_timeout_seconds),
            )

    @property
    def available(self) -> bool:
        return self._client is not None

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise ExternalServiceError(
                "backing endpoint is not configured", reason="missing_language_model_api"
            )
        return self._client

    async def list_models(self) -> list[ModelInfo]:
        client = self._require_client()
        models: list[ModelInfo] = []
        try:
            async for model in client.models.list():
                models.append(
                    ModelInfo(
                        id=model.id,
                        created=int(getattr(model, "created", 0) or 0),
                        owned_by=getattr(model, "owned_by", None),
                    )
                )
        except OpenAIError as exc:
            raise _wrap(exc, "model listing") from exc
        return models

    def handle_for(self, model_id: str) -> OpenAIModelHandle:
        return OpenAIModelHandle(self._require_client(), model_id)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
