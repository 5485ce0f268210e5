"""Render backing-model part streams as Anthropic Messages payloads and events."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterator
from typing import Any, Literal

from ...core.logging_config import get_logger
from ...core.types import ResponseContext, StreamPart, TextFragment, ToolCallFragment

logger = get_logger(__name__)

StopReason = Literal["end_turn", "tool_use"]
BlockType = Literal["text", "tool_use"]

_ZERO_USAGE = {"input_tokens": 0, "output_tokens": 0}


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def format_event(payload: dict[str, Any]) -> str:
    return f"event: {payload['type']}\ndata: {_dumps(payload)}\n\n"


def error_event(message: str, error_type: str = "api_error") -> str:
    return format_event({"type": "error", "error": {"type": error_type, "message": message}})


async def collect_message(
    parts: AsyncIterator[StreamPart], context: ResponseContext
) -> dict[str, Any]:
    """Drain ``parts`` into a single ``message`` object."""

    content: list[dict[str, Any]] = []
    pending_text: list[str] = []
    saw_tool_call = False

    def flush_text() -> None:
        text = "".join(pending_text)
        pending_text.clear()
        if text:
            content.append({"type": "text", "text": text})

    async for part in parts:
        if isinstance(part, ToolCallFragment):
            flush_text()
            saw_tool_call = True
            content.append(
                {"type": "tool_use", "id": part.call_id, "name": part.name, "input": dict(part.input)}
            )
        elif isinstance(part, TextFragment):
            pending_text.append(part.value)
    flush_text()

    logger.debug("anthropic_message_collected", request_id=context.request_id, blocks=len(content))
    return {
        "id": context.request_id,
        "type": "message",
        "role": "assistant",
        "content": content,
        "model": context.model_name,
        "stop_reason": "tool_use" if saw_tool_call else "end_turn",
        "stop_sequence": None,
        "usage": dict(_ZERO_USAGE),
    }


class ContentBlockTracker:
    """Content-block state machine for one streamed message.

    Text parts extend an open text block (opening one if needed). A tool call
    closes any open text block and is emitted as a complete start/delta/stop
    triple, so tool_use blocks never stay open across parts.
    """

    def __init__(self) -> None:
        self.index = 0
        self.current: BlockType | None = None
        self.saw_tool_call = False

    def _close(self) -> Iterator[dict[str, Any]]:
        if self.current is not None:
            yield {"type": "content_block_stop", "index": self.index}
            self.index += 1
            self.current = None

    def on_text(self, text: str) -> Iterator[dict[str, Any]]:
        if not text:
            return
        if self.current != "text":
            yield {
                "type": "content_block_start",
                "index": self.index,
                "content_block": {"type": "text", "text": ""},
            }
            self.current = "text"
        yield {
            "type": "content_block_delta",
            "index": self.index,
            "delta": {"type": "text_delta", "text": text},
        }

    def on_tool_call(self, part: ToolCallFragment) -> Iterator[dict[str, Any]]:
        self.saw_tool_call = True
        yield from self._close()
        yield {
            "type": "content_block_start",
            "index": self.index,
            "content_block": {"type": "tool_use", "id": part.call_id, "name": part.name, "input": {}},
        }
        self.current = "tool_use"
        yield {
            "type": "content_block_delta",
            "index": self.index,
            "delta": {"type": "input_json_delta", "partial_json": _dumps(dict(part.input))},
        }
        yield from self._close()

    def finish(self) -> Iterator[dict[str, Any]]:
        yield from self._close()

    @property
    def stop_reason(self) -> StopReason:
        return "tool_use" if self.saw_tool_call else "end_turn"


async def stream_message(
    parts: AsyncIterator[StreamPart], context: ResponseContext
) -> AsyncIterator[str]:
    """Yield the Anthropic SSE event sequence for ``parts``."""

    yield format_event(
        {
            "type": "message_start",
            "message": {
                "id": context.request_id,
                "type": "message",
                "role": "assistant",
                "content": [],
                "model": context.model_name,
                "stop_reason": None,
                "stop_sequence": None,
                "usage": dict(_ZERO_USAGE),
            },
        }
    )

    tracker = ContentBlockTracker()
    async for part in parts:
        if isinstance(part, ToolCallFragment):
            events = tracker.on_tool_call(part)
        elif isinstance(part, TextFragment):
            events = tracker.on_text(part.value)
        else:
            continue
        for event in events:
            yield format_event(event)

    for event in tracker.finish():
        yield format_event(event)

    yield format_event(
        {
            "type": "message_delta",
            "delta": {"stop_reason": tracker.stop_reason, "stop_sequence": None},
            "usage": {"output_tokens": 0},
        }
    )
    yield format_event({"type": "message_stop"})
