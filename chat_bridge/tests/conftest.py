import asyncio

import httpx
import pytest

from chat_bridge.core.config import BridgeSettings
from chat_bridge.core.types import ModelInfo
from chat_bridge.llm.main import create_app

TOKEN = "test-token"


class FakeHandle:
    def __init__(self, model_id, provider):
        self.id = model_id
        self._provider = provider

    async def invoke(self, messages, tools, token):
        self._provider.calls.append(
            {"model": self.id, "messages": list(messages), "tools": list(tools), "token": token}
        )
        if self._provider.fail_on_invoke is not None:
            raise self._provider.fail_on_invoke
        return self._stream(token)

    async def _stream(self, token):
        try:
            for part in self._provider.parts:
                if self._provider.part_delay:
                    await asyncio.sleep(self._provider.part_delay)
                yield part
            if self._provider.fail_after is not None:
                raise self._provider.fail_after
        finally:
            self._provider.streams_closed += 1


class FakeProvider:
    def __init__(self, models=("gpt-4o",), parts=(), *, available=True):
        self.models = list(models)
        self.parts = list(parts)
        self._available = available
        self.fail_on_invoke = None
        self.fail_after = None
        self.part_delay = 0.0
        self.streams_closed = 0
        self.list_error = None
        self.list_calls = 0
        self.calls = []

    @property
    def available(self):
        return self._available

    async def list_models(self):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return [ModelInfo(id=model_id, created=1700000000) for model_id in self.models]

    def handle_for(self, model_id):
        return FakeHandle(model_id, self)


def make_settings(**overrides):
    values = {"token": TOKEN, "history_window": 3, "max_concurrent": 1}
    values.update(overrides)
    return BridgeSettings(**values)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, provider):
    return create_app(settings, provider=provider)


@pytest.fixture
def bridge_state(app):
    return app.state.bridge.state


@pytest.fixture
def client_factory(app):
    def _factory(headers=None):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
            headers={"Authorization": f"Bearer {TOKEN}"} if headers is None else headers,
        )

    return _factory


def sse_payloads(body):
    """Split an SSE body into (event, data) pairs."""

    frames = []
    for raw in body.strip().split("\n\n"):
        event = None
        data = None
        for line in raw.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data = line[len("data: "):]
        frames.append((event, data))
    return frames


@pytest.fixture
def parse_sse():
    return sse_payloads
