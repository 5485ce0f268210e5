import json

import pytest

from chat_bridge.core.types import TextFragment, ToolCallFragment

_BODY = {
    "model": "gpt-4o",
    "max_tokens": 256,
    "messages": [{"role": "user", "content": "hi"}],
}


@pytest.mark.asyncio
async def test_non_streaming_message(client_factory, provider, bridge_state):
    provider.parts = [TextFragment("Hello"), ToolCallFragment(call_id="tu_1", name="search", input={"q": "x"})]

    async with client_factory() as client:
        response = await client.post("/v1/messages", json=_BODY)

    assert response.status_code == 200
    payload = response.json()
    assert payload["id"].startswith("msg_")
    assert payload["type"] == "message"
    assert payload["model"] == "gpt-4o"
    assert payload["stop_reason"] == "tool_use"
    assert payload["content"] == [
        {"type": "text", "text": "Hello"},
        {"type": "tool_use", "id": "tu_1", "name": "search", "input": {"q": "x"}},
    ]
    assert bridge_state.active_requests == 0


@pytest.mark.asyncio
async def test_streaming_message_events(client_factory, provider, bridge_state, parse_sse):
    provider.parts = [TextFragment("Hi")]

    async with client_factory(
        headers={"x-api-key": "test-token", "anthropic-version": "2023-06-01"}
    ) as client:
        response = await client.post("/v1/messages", json={**_BODY, "stream": True})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [event for event, _ in parse_sse(response.text)]
    assert events == [
        "message_start",
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
        "message_stop",
    ]
    assert bridge_state.active_requests == 0


@pytest.mark.asyncio
async def test_missing_max_tokens_uses_anthropic_envelope(client_factory, bridge_state):
    body = {key: value for key, value in _BODY.items() if key != "max_tokens"}

    async with client_factory() as client:
        response = await client.post("/v1/messages", json=body)

    assert response.status_code == 400
    assert response.json() == {
        "type": "error",
        "error": {
            "type": "invalid_request_error",
            "message": "max_tokens is required and must be positive",
        },
    }
    assert bridge_state.active_requests == 0


@pytest.mark.asyncio
async def test_unavailable_backend_uses_anthropic_envelope(client_factory, provider):
    provider._available = False

    async with client_factory() as client:
        response = await client.post("/v1/messages", json=_BODY)

    assert response.status_code == 503
    assert response.json() == {
        "type": "error",
        "error": {"type": "api_error", "message": "Copilot unavailable"},
    }


@pytest.mark.asyncio
async def test_mid_stream_failure_emits_error_event(client_factory, provider, bridge_state, parse_sse):
    provider.parts = [TextFragment("partial")]
    provider.fail_after = RuntimeError("lost connection")

    async with client_factory() as client:
        response = await client.post("/v1/messages", json={**_BODY, "stream": True})

    frames = parse_sse(response.text)
    event, data = frames[-1]
    assert event == "error"
    assert json.loads(data)["error"] == {"type": "api_error", "message": "lost connection"}
    assert "message_stop" not in [name for name, _ in frames]
    assert bridge_state.active_requests == 0


@pytest.mark.asyncio
async def test_system_prompt_is_folded_into_first_turn(client_factory, provider):
    provider.parts = [TextFragment("ok")]

    async with client_factory() as client:
        await client.post("/v1/messages", json={**_BODY, "system": "be brief"})

    assert provider.calls[0]["messages"][0].content == "[SYSTEM]\nbe brief\n\nhi"


@pytest.mark.asyncio
async def test_unrendered_blocks_are_skipped(client_factory, provider):
    provider.parts = [TextFragment("a cat")]
    body = {
        **_BODY,
        "system": [
            {"type": "text", "text": "be brief", "cache_control": {"type": "ephemeral"}},
            {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"}},
        ],
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "what is this?"},
                    {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"}},
                    {"type": "document", "source": {"type": "text", "data": "notes"}},
                ],
            }
        ],
    }

    async with client_factory() as client:
        response = await client.post("/v1/messages", json=body)

    assert response.status_code == 200
    assert response.json()["content"] == [{"type": "text", "text": "a cat"}]
    assert provider.calls[0]["messages"][0].content == "[SYSTEM]\nbe brief\n\nwhat is this?"
