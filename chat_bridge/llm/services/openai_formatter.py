"""Render backing-model part streams as OpenAI ``chat.completion`` payloads."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

from ...core.logging_config import get_logger
from ...core.types import ResponseContext, StreamPart, TextFragment, ToolCallFragment

logger = get_logger(__name__)

FinishReason = Literal["stop", "tool_calls"]

DONE_SENTINEL = "data: [DONE]\n\n"


@dataclass(slots=True)
class CompletionResult:
    """Drained part stream: accumulated text, ordered tool calls and finish reason."""

    content: str = ""
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    finish_reason: FinishReason = "stop"


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def build_tool_call(part: ToolCallFragment) -> dict[str, Any]:
    return {
        "id": part.call_id,
        "type": "function",
        "function": {
            "name": part.name,
            "arguments": _dumps(dict(part.input)),
        },
    }


def format_sse(payload: dict[str, Any]) -> str:
    return f"data: {_dumps(payload)}\n\n"


async def collect_completion(parts: AsyncIterator[StreamPart]) -> CompletionResult:
    result = CompletionResult()
    text: list[str] = []
    async for part in parts:
        if isinstance(part, ToolCallFragment):
            result.tool_calls.append(build_tool_call(part))
        elif isinstance(part, TextFragment):
            text.append(part.value)
    result.content = "".join(text)
    result.finish_reason = "tool_calls" if result.tool_calls else "stop"
    return result


def render_completion(result: CompletionResult, context: ResponseContext) -> dict[str, Any]:
    message: dict[str, Any] = {
        "role": "assistant",
        "content": None if result.tool_calls else result.content,
    }
    if result.tool_calls:
        message["tool_calls"] = result.tool_calls
        if len(result.tool_calls) == 1 and context.uses_function_call:
            message["function_call"] = dict(result.tool_calls[0]["function"])

    logger.debug(
        "completion_rendered",
        request_id=context.request_id,
        content_length=len(result.content),
        tool_calls=len(result.tool_calls),
    )
    return {
        "id": context.request_id,
        "object": "chat.completion",
        "created": context.created_at,
        "model": context.model_name,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": result.finish_reason,
            }
        ],
        "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
    }


def build_chunk(
    context: ResponseContext,
    delta: dict[str, Any],
    finish_reason: FinishReason | None = None,
) -> dict[str, Any]:
    return {
        "id": context.request_id,
        "object": "chat.completion.chunk",
        "created": context.created_at,
        "model": context.model_name,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


async def stream_completion(
    parts: AsyncIterator[StreamPart], context: ResponseContext
) -> AsyncIterator[str]:
    """Yield SSE frames: role chunk, one chunk per part, final chunk, ``[DONE]``."""

    sent_role = False
    tool_call_count = 0

    async for part in parts:
        if not sent_role:
            yield format_sse(build_chunk(context, {"role": "assistant"}))
            sent_role = True

        if isinstance(part, ToolCallFragment):
            # Streaming clients key partial tool calls by index.
            call = {"index": tool_call_count, **build_tool_call(part)}
            tool_call_count += 1
            yield format_sse(build_chunk(context, {"tool_calls": [call]}))
        elif isinstance(part, TextFragment) and part.value:
            yield format_sse(build_chunk(context, {"content": part.value}))

    if not sent_role:
        yield format_sse(build_chunk(context, {"role": "assistant"}))

    yield format_sse(build_chunk(context, {}, "tool_calls" if tool_call_count else "stop"))
    yield DONE_SENTINEL
