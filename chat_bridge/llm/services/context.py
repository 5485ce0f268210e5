"""Per-process wiring shared by the routers and the dispatcher."""

from __future__ import annotations

from dataclasses import dataclass

from ...core.config import BridgeSettings
from ...core.state import BridgeState, LoggingStatusSink, StatusSink
from ...core.types import ModelProvider
from .model_resolver import ModelResolver
from .openai_provider import OpenAIModelProvider


@dataclass(slots=True)
class BridgeContext:
    settings: BridgeSettings
    state: BridgeState
    provider: ModelProvider
    resolver: ModelResolver
    status: StatusSink


def build_context(
    settings: BridgeSettings,
    provider: ModelProvider | None = None,
    status: StatusSink | None = None,
) -> BridgeContext:
    """Create the bridge context once at process start."""

    state = BridgeState()
    status = status or LoggingStatusSink()
    provider = provider or OpenAIModelProvider(settings)
    resolver = ModelResolver(
        provider,
        state,
        status,
        default_model=settings.backend_default_model,
    )
    return BridgeContext(
        settings=settings,
        state=state,
        provider=provider,
        resolver=resolver,
        status=status,
    )
