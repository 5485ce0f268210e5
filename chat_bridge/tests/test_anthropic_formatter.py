import json

import pytest

from chat_bridge.core.types import ResponseContext, TextFragment, ToolCallFragment
from chat_bridge.llm.services.anthropic_formatter import (
    collect_message,
    error_event,
    stream_message,
)


def _context(**overrides):
    values = {
        "request_id": "msg_test",
        "model_name": "claude-sonnet",
        "created_at": 1700000000,
        "is_streaming": True,
    }
    values.update(overrides)
    return ResponseContext(**values)


async def _parts(*items):
    for item in items:
        yield item


def _events(frames):
    events = []
    for frame in frames:
        head, data = frame.rstrip("\n").split("\n", 1)
        payload = json.loads(data[len("data: "):])
        assert head == f"event: {payload['type']}"
        events.append(payload)
    return events


@pytest.mark.asyncio
async def test_collect_merges_text_and_tool_use():
    parts = _parts(
        TextFragment("a"),
        TextFragment("b"),
        ToolCallFragment(call_id="tu_1", name="search", input={"q": "x"}),
        TextFragment("c"),
    )

    message = await collect_message(parts, _context(is_streaming=False))

    assert message["content"] == [
        {"type": "text", "text": "ab"},
        {"type": "tool_use", "id": "tu_1", "name": "search", "input": {"q": "x"}},
        {"type": "text", "text": "c"},
    ]
    assert message["stop_reason"] == "tool_use"
    assert message["usage"] == {"input_tokens": 0, "output_tokens": 0}


@pytest.mark.asyncio
async def test_collect_text_only_ends_turn():
    message = await collect_message(_parts(TextFragment("hello")), _context(is_streaming=False))

    assert message["type"] == "message"
    assert message["role"] == "assistant"
    assert message["stop_reason"] == "end_turn"


@pytest.mark.asyncio
async def test_stream_single_tool_call_sequence():
    part = ToolCallFragment(call_id="tu_1", name="search", input={"q": "x"})

    events = _events([frame async for frame in stream_message(_parts(part), _context())])

    assert [event["type"] for event in events] == [
        "message_start",
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
        "message_stop",
    ]
    assert events[1]["content_block"] == {"type": "tool_use", "id": "tu_1", "name": "search", "input": {}}
    assert events[2]["delta"]["type"] == "input_json_delta"
    assert json.loads(events[2]["delta"]["partial_json"]) == {"q": "x"}
    assert events[4]["delta"]["stop_reason"] == "tool_use"


@pytest.mark.asyncio
async def test_stream_text_then_tool_uses_increasing_indices():
    parts = _parts(
        TextFragment("Hi"),
        TextFragment(" there"),
        ToolCallFragment(call_id="tu_1", name="search", input={}),
    )

    events = _events([frame async for frame in stream_message(parts, _context())])
    block_events = [event for event in events if event["type"].startswith("content_block")]

    assert [(event["type"], event["index"]) for event in block_events] == [
        ("content_block_start", 0),
        ("content_block_delta", 0),
        ("content_block_delta", 0),
        ("content_block_stop", 0),
        ("content_block_start", 1),
        ("content_block_delta", 1),
        ("content_block_stop", 1),
    ]


@pytest.mark.asyncio
async def test_stream_without_parts_ends_turn():
    events = _events([frame async for frame in stream_message(_parts(), _context())])

    assert [event["type"] for event in events] == ["message_start", "message_delta", "message_stop"]
    assert events[0]["message"]["model"] == "claude-sonnet"
    assert events[1]["delta"]["stop_reason"] == "end_turn"


def test_error_event_shape():
    assert _events([error_event("boom")]) == [
        {"type": "error", "error": {"type": "api_error", "message": "boom"}}
    ]
