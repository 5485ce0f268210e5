"""Service layer exports."""

from .context import BridgeContext, build_context
from .dispatcher import RequestDispatcher
from .model_resolver import ModelResolver
from .openai_provider import OpenAIModelProvider

__all__ = [
    "BridgeContext",
    "build_context",
    "ModelResolver",
    "OpenAIModelProvider",
    "RequestDispatcher",
]
