"""HTTP API routers."""

from .chat import router as chat_router
from .errors import register_exception_handlers
from .health import router as health_router
from .messages import router as messages_router
from .models import router as models_router

__all__ = [
    "chat_router",
    "health_router",
    "messages_router",
    "models_router",
    "register_exception_handlers",
]
