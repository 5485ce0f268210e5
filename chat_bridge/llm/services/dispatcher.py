"""Per-request orchestration: decode, admit, resolve, invoke, respond.

Each request moves through ``received → validated → model-resolving →
invoking → streaming|collecting → complete``; any step may fail. The
admission lease taken before resolution is released exactly once, either when
a non-streaming response is built or when the SSE generator finishes.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from ...core.exceptions import (
    BridgeError,
    ExternalServiceError,
    InvalidRequestError,
    ModelNotFoundError,
    ModelUnavailableError,
    RateLimitExceeded,
)
from ...core.logging_config import bind_request_context, clear_request_context, get_logger
from ...core.state import RequestLease
from ...core.types import (
    BackingMessage,
    BackingTool,
    CancellationToken,
    ModelHandle,
    ResponseContext,
    StreamPart,
    Unavailable,
)
from ..schemas.anthropic import MessagesRequest
from ..schemas.chat import ChatCompletionRequest
from . import anthropic_formatter, openai_formatter
from .context import BridgeContext
from .normalizer import normalize_anthropic_messages, normalize_openai_messages
from .streaming import EventStreamResponse, close_iterator, observe_cancellation
from .tool_bridge import merge_anthropic_tools, merge_openai_tools, to_backing_tools

logger = get_logger(__name__)

RequestModel = TypeVar("RequestModel", bound=BaseModel)


async def _render_openai(parts: AsyncIterator[StreamPart], context: ResponseContext) -> dict[str, Any]:
    result = await openai_formatter.collect_completion(parts)
    return openai_formatter.render_completion(result, context)


@dataclass(slots=True, frozen=True)
class Dialect:
    """How one wire protocol names, collects, streams and aborts responses."""

    name: str
    id_prefix: str
    fallback_model: str
    collect: Callable[[AsyncIterator[StreamPart], ResponseContext], Awaitable[dict[str, Any]]]
    stream: Callable[[AsyncIterator[StreamPart], ResponseContext], AsyncIterator[str]]
    abort_frame: Callable[[str], str] | None = None


OPENAI = Dialect(
    name="openai",
    id_prefix="chatcmpl-",
    fallback_model="copilot",
    collect=_render_openai,
    stream=openai_formatter.stream_completion,
)

ANTHROPIC = Dialect(
    name="anthropic",
    id_prefix="msg_",
    fallback_model="claude",
    collect=anthropic_formatter.collect_message,
    stream=anthropic_formatter.stream_message,
    abort_frame=anthropic_formatter.error_event,
)


@dataclass(slots=True, frozen=True)
class Invocation:
    """Everything decoded from a request that the backing model needs."""

    requested_model: str | None
    messages: Sequence[BackingMessage]
    tools: Sequence[BackingTool]
    is_streaming: bool
    uses_function_call: bool = False


def _describe(exc: ValidationError) -> str:
    error = exc.errors()[0]
    message = str(error.get("msg", "invalid request")).removeprefix("Value error, ")
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {message}" if location else message


def decode_body(model: type[RequestModel], body: Any) -> RequestModel:
    """Validate a parsed JSON body into ``model`` or raise a 400."""

    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequestError(_describe(exc)) from exc


async def read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise InvalidRequestError("request body is not valid JSON") from exc


class RequestDispatcher:
    """Runs chat and messages requests against the backing model."""

    def __init__(self, context: BridgeContext) -> None:
        self._context = context

    async def chat_completions(self, request: Request) -> JSONResponse | StreamingResponse:
        payload = decode_body(ChatCompletionRequest, await read_json(request))
        logger.info(
            "chat_request_received",
            model=payload.model,
            messages=len(payload.messages),
            stream=payload.stream,
        )
        invocation = Invocation(
            requested_model=payload.model,
            messages=normalize_openai_messages(payload.messages, self._context.settings.history_window),
            tools=to_backing_tools(merge_openai_tools(payload)),
            is_streaming=payload.stream,
            uses_function_call=payload.function_call is not None,
        )
        return await self.dispatch(request, invocation, OPENAI)

    async def messages(self, request: Request) -> JSONResponse | StreamingResponse:
        payload = decode_body(MessagesRequest, await read_json(request))
        logger.info(
            "messages_request_received",
            model=payload.model,
            messages=len(payload.messages),
            stream=payload.stream,
        )
        invocation = Invocation(
            requested_model=payload.model,
            messages=normalize_anthropic_messages(payload, self._context.settings.history_window),
            tools=to_backing_tools(merge_anthropic_tools(payload)),
            is_streaming=payload.stream,
        )
        return await self.dispatch(request, invocation, ANTHROPIC)

    def _admit(self) -> RequestLease:
        state = self._context.state
        ceiling = self._context.settings.max_concurrent
        lease = state.try_acquire(ceiling)
        if lease is None:
            logger.info("request_throttled", active=state.active_requests, max=ceiling)
            raise RateLimitExceeded()
        logger.debug("request_started", active=state.active_requests)
        return lease

    async def _resolve(self, requested: str | None) -> ModelHandle:
        resolver = self._context.resolver
        resolved = await resolver.resolve(requested)
        if not isinstance(resolved, Unavailable):
            return resolved
        if requested and resolver.backing_available and resolved.reason == "not_found":
            raise ModelNotFoundError()
        raise ModelUnavailableError(reason=resolved.reason)

    def _invalidate(self, exc: Exception) -> None:
        logger.error("invocation_failed", error_type=type(exc).__name__, message=str(exc))
        self._context.resolver.invalidate()

    async def dispatch(
        self, request: Request, invocation: Invocation, dialect: Dialect
    ) -> JSONResponse | StreamingResponse:
        lease = self._admit()
        token = CancellationToken()
        parts: AsyncIterator[StreamPart] | None = None
        handed_off = False
        try:
            handle = await self._resolve(invocation.requested_model)
            context = ResponseContext(
                request_id=f"{dialect.id_prefix}{uuid.uuid4().hex[:24]}",
                model_name=invocation.requested_model or handle.id or dialect.fallback_model,
                created_at=int(time.time()),
                is_streaming=invocation.is_streaming,
                uses_function_call=invocation.uses_function_call,
            )
            bind_request_context(context.request_id, dialect.name)
            logger.debug("backend_invoke", model=handle.id, tools=len(invocation.tools))
            parts = observe_cancellation(
                await handle.invoke(invocation.messages, invocation.tools, token), token
            )

            if context.is_streaming:
                frames = self._guarded_stream(request, dialect, parts, context, lease, token)
                handed_off = True
                return EventStreamResponse(frames)

            body = await dialect.collect(parts, context)
            logger.info("request_completed")
            return JSONResponse(body)
        except BridgeError as exc:
            if isinstance(exc, ExternalServiceError):
                self._invalidate(exc)
            raise
        except Exception as exc:
            self._invalidate(exc)
            raise ExternalServiceError(str(exc) or "internal_error") from exc
        finally:
            if not handed_off:
                token.cancel()
                if parts is not None:
                    await close_iterator(parts)
                lease.release()
                logger.debug("request_finished", active=self._context.state.active_requests)
                clear_request_context()

    async def _guarded_stream(
        self,
        request: Request,
        dialect: Dialect,
        parts: AsyncIterator[StreamPart],
        context: ResponseContext,
        lease: RequestLease,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        """Write SSE frames until the stream ends, fails or the client goes away.

        Headers are already sent once this runs, so a failure can only end the
        connection (after the dialect's abort frame, if it has one).
        """

        bind_request_context(context.request_id, dialect.name)
        frames = dialect.stream(parts, context)
        logger.debug("sse_stream_started")
        completed = False
        try:
            async for frame in frames:
                if await request.is_disconnected():
                    logger.info("client_disconnected")
                    return
                yield frame
            completed = True
        except asyncio.CancelledError:
            logger.info("client_disconnected")
            raise
        except Exception as exc:
            self._invalidate(exc)
            if dialect.abort_frame is not None:
                yield dialect.abort_frame(str(exc) or "internal_error")
        finally:
            if not completed:
                token.cancel()
            await close_iterator(frames)
            await close_iterator(parts)
            lease.release()
            logger.debug(
                "sse_stream_finished",
                completed=completed,
                active=self._context.state.active_requests,
            )
            clear_request_context()
