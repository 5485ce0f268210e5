import json

import pytest

from chat_bridge.core.types import ResponseContext, TextFragment, ToolCallFragment
from chat_bridge.llm.services.openai_formatter import (
    DONE_SENTINEL,
    collect_completion,
    render_completion,
    stream_completion,
)


def _context(**overrides):
    values = {
        "request_id": "chatcmpl-test",
        "model_name": "gpt-4o",
        "created_at": 1700000000,
        "is_streaming": False,
    }
    values.update(overrides)
    return ResponseContext(**values)


async def _parts(*items):
    for item in items:
        yield item


def _chunks(frames):
    assert frames[-1] == DONE_SENTINEL
    return [json.loads(frame[len("data: "):]) for frame in frames[:-1]]


@pytest.mark.asyncio
async def test_collect_concatenates_text():
    result = await collect_completion(_parts(TextFragment("Hi"), TextFragment(" there")))

    assert result.content == "Hi there"
    assert result.tool_calls == []
    assert result.finish_reason == "stop"


@pytest.mark.asyncio
async def test_render_tool_calls_nulls_content():
    part = ToolCallFragment(call_id="call_1", name="lookup", input={"q": "ü"})
    result = await collect_completion(_parts(TextFragment("ignored"), part))

    payload = render_completion(result, _context())
    message = payload["choices"][0]["message"]

    assert payload["object"] == "chat.completion"
    assert payload["choices"][0]["finish_reason"] == "tool_calls"
    assert message["content"] is None
    assert message["tool_calls"][0]["id"] == "call_1"
    assert json.loads(message["tool_calls"][0]["function"]["arguments"]) == {"q": "ü"}
    assert "function_call" not in message
    assert payload["usage"] == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


@pytest.mark.asyncio
async def test_render_plain_text_omits_tool_calls():
    result = await collect_completion(_parts(TextFragment("ok")))

    message = render_completion(result, _context())["choices"][0]["message"]

    assert message == {"role": "assistant", "content": "ok"}


@pytest.mark.asyncio
async def test_single_call_mirrored_as_function_call_when_requested():
    part = ToolCallFragment(call_id="call_1", name="lookup", input={})
    result = await collect_completion(_parts(part))

    message = render_completion(result, _context(uses_function_call=True))["choices"][0]["message"]

    assert message["function_call"] == {"name": "lookup", "arguments": "{}"}


@pytest.mark.asyncio
async def test_stream_text_sequence():
    frames = [
        frame
        async for frame in stream_completion(
            _parts(TextFragment("Hi"), TextFragment(" there")), _context(is_streaming=True)
        )
    ]
    chunks = _chunks(frames)

    assert [chunk["choices"][0]["delta"] for chunk in chunks] == [
        {"role": "assistant"},
        {"content": "Hi"},
        {"content": " there"},
        {},
    ]
    assert chunks[-1]["choices"][0]["finish_reason"] == "stop"
    assert all(chunk["object"] == "chat.completion.chunk" for chunk in chunks)


@pytest.mark.asyncio
async def test_stream_tool_call_chunk():
    part = ToolCallFragment(call_id="call_9", name="search", input={"q": "x"})

    frames = [frame async for frame in stream_completion(_parts(part), _context(is_streaming=True))]
    chunks = _chunks(frames)

    call = chunks[1]["choices"][0]["delta"]["tool_calls"][0]
    assert call["index"] == 0
    assert call["id"] == "call_9"
    assert json.loads(call["function"]["arguments"]) == {"q": "x"}
    assert chunks[-1]["choices"][0]["finish_reason"] == "tool_calls"


@pytest.mark.asyncio
async def test_empty_stream_still_sends_role_and_done():
    frames = [frame async for frame in stream_completion(_parts(), _context(is_streaming=True))]
    chunks = _chunks(frames)

    assert [chunk["choices"][0]["delta"] for chunk in chunks] == [{"role": "assistant"}, {}]
