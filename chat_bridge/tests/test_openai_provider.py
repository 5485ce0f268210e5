from types import SimpleNamespace

import httpx
import pytest
from openai import NotFoundError, RateLimitError

from chat_bridge.core.exceptions import ExternalServiceError
from chat_bridge.core.types import (
    BackingMessage,
    BackingTool,
    CancellationToken,
    TextFragment,
    ToolCallFragment,
)
from chat_bridge.llm.services.openai_provider import (
    OpenAIModelHandle,
    OpenAIModelProvider,
    iter_stream_parts,
)

from conftest import make_settings


def _chunk(content=None, tool_calls=None, finish_reason=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


def _tool_delta(index, call_id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class FakeStream:
    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self):
        self.closed = True


def _api_error(cls, status):
    request = httpx.Request("POST", "http://backend.test/v1/chat/completions")
    return cls("backend said no", response=httpx.Response(status, request=request), body=None)


@pytest.mark.asyncio
async def test_stream_parts_assemble_tool_call_fragments():
    stream = FakeStream(
        [
            _chunk(content="Let me check."),
            _chunk(tool_calls=[_tool_delta(0, call_id="call_a", name="get_", arguments='{"ci')]),
            _chunk(tool_calls=[_tool_delta(0, name="weather", arguments='ty":"Oslo"}')]),
            _chunk(finish_reason="tool_calls"),
        ]
    )

    parts = [part async for part in iter_stream_parts(stream, CancellationToken())]

    assert parts == [
        TextFragment("Let me check."),
        ToolCallFragment(call_id="call_a", name="get_weather", input={"city": "Oslo"}),
    ]
    assert stream.closed


@pytest.mark.asyncio
async def test_unparseable_arguments_are_preserved():
    stream = FakeStream([_chunk(tool_calls=[_tool_delta(0, call_id="c", name="f", arguments="{oops")])])

    parts = [part async for part in iter_stream_parts(stream, CancellationToken())]

    assert parts == [ToolCallFragment(call_id="c", name="f", input={"raw_arguments": "{oops"})]


@pytest.mark.asyncio
async def test_cancelled_token_stops_stream():
    token = CancellationToken()
    token.cancel()
    stream = FakeStream([_chunk(content="never")])

    parts = [part async for part in iter_stream_parts(stream, token)]

    assert parts == []
    assert stream.closed


@pytest.mark.asyncio
async def test_handle_invoke_sends_messages_and_tools():
    captured = {}
    stream = FakeStream([_chunk(content="hi", finish_reason="stop")])

    async def create(**kwargs):
        captured.update(kwargs)
        return stream

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    handle = OpenAIModelHandle(client, "gpt-4o")

    parts = await handle.invoke(
        [BackingMessage.user("hello")],
        [BackingTool(name="t", description="", input_schema={"type": "object", "properties": {}})],
        CancellationToken(),
    )

    assert [part async for part in parts] == [TextFragment("hi")]
    assert captured["model"] == "gpt-4o"
    assert captured["stream"] is True
    assert captured["messages"] == [{"role": "user", "content": "hello"}]
    assert captured["tools"][0]["function"]["name"] == "t"


@pytest.mark.asyncio
async def test_handle_invoke_maps_sdk_errors():
    async def create(**kwargs):
        raise _api_error(RateLimitError, 429)

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    with pytest.raises(ExternalServiceError) as excinfo:
        await OpenAIModelHandle(client, "gpt-4o").invoke([], [], CancellationToken())

    assert excinfo.value.reason == "rate_limited"


@pytest.mark.asyncio
async def test_provider_lists_models():
    class FakeModels:
        def list(self):
            async def _pages():
                yield SimpleNamespace(id="gpt-4o", created=123, owned_by="org")

            return _pages()

    provider = OpenAIModelProvider(make_settings(), client=SimpleNamespace(models=FakeModels()))

    models = await provider.list_models()

    assert provider.available
    assert [(m.id, m.created, m.owned_by) for m in models] == [("gpt-4o", 123, "org")]


@pytest.mark.asyncio
async def test_provider_listing_not_found_is_classified():
    class FakeModels:
        def list(self):
            async def _pages():
                raise _api_error(NotFoundError, 404)
                yield

            return _pages()

    provider = OpenAIModelProvider(make_settings(), client=SimpleNamespace(models=FakeModels()))

    with pytest.raises(ExternalServiceError) as excinfo:
        await provider.list_models()

    assert excinfo.value.reason == "not_found"


@pytest.mark.asyncio
async def test_provider_without_backend_is_unavailable():
    provider = OpenAIModelProvider(make_settings(backend_base_url=None, backend_api_key=None))

    assert not provider.available
    with pytest.raises(ExternalServiceError) as excinfo:
        await provider.list_models()
    assert excinfo.value.reason == "missing_language_model_api"
