"""Helpers shared by the SSE response paths."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, TypeVar

import anyio
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from ...core.types import CancellationToken

T = TypeVar("T")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def close_iterator(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def observe_cancellation(
    source: AsyncIterator[T], token: CancellationToken
) -> AsyncIterator[T]:
    """Pull from ``source`` until it is exhausted or ``token`` is cancelled.

    The token is checked before every pull, not only when the stream starts.
    """

    try:
        while not token.is_cancelled:
            try:
                item = await source.__anext__()
            except StopAsyncIteration:
                return
            yield item
    finally:
        await close_iterator(source)


class EventStreamResponse(StreamingResponse):
    """``text/event-stream`` response that always closes its body iterator.

    A disconnect can stop the server mid-``send`` with the generator parked at
    ``yield``; closing it here runs its cleanup before the request task ends.
    """

    media_type = "text/event-stream"

    def __init__(self, content: AsyncIterator[str]) -> None:
        super().__init__(content, media_type=self.media_type, headers=SSE_HEADERS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await close_iterator(self.body_iterator)
