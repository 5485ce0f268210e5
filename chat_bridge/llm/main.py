"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from ..core.config import BridgeSettings, env_file_candidates, get_settings, resolved_env_file
from ..core.logging_config import configure_logging, get_logger
from ..core.state import StatusSink
from ..core.types import ModelProvider
from .api import (
    chat_router,
    health_router,
    messages_router,
    models_router,
    register_exception_handlers,
)
from .services.context import build_context

configure_logging()
logger = get_logger(__name__)

APP_VERSION = "0.1.0"


def create_app(
    settings: BridgeSettings | None = None,
    provider: ModelProvider | None = None,
    status: StatusSink | None = None,
) -> FastAPI:
    """Build the gateway application around one bridge context."""

    settings = settings or get_settings()
    context = build_context(settings, provider=provider, status=status)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "bridge_startup",
            host=settings.host,
            port=settings.port,
            verbose=settings.verbose,
            max_concurrent=settings.max_concurrent,
            history_window=settings.history_window,
            token_configured=settings.token_configured,
            backend_available=context.provider.available,
        )
        logger.info(
            "environment_loaded",
            log_file=settings.log_file or "stdout-only",
            env_file=resolved_env_file() or "not-found",
            env_candidates=list(env_file_candidates()),
        )
        if not settings.token_configured:
            logger.warning("bridge_token_missing", detail="protected routes will answer 401")
        yield
        context.state.running = False
        context.state.server_handle = None
        aclose = getattr(context.provider, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("bridge_shutdown")

    app = FastAPI(
        title="Chat Bridge",
        version=APP_VERSION,
        description="Local OpenAI- and Anthropic-compatible gateway over a backing language model.",
        lifespan=lifespan,
    )
    app.state.bridge = context

    @app.middleware("http")
    async def log_incoming_requests(request: Request, call_next):
        logger.info(
            "http_request_received",
            method=request.method,
            path=request.url.path,
            client=str(request.client[0]) if request.client else "unknown",
        )
        response = await call_next(request)
        logger.info(
            "http_request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(models_router)
    app.include_router(chat_router)
    app.include_router(messages_router)
    return app
