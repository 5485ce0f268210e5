"""Run the chat bridge gateway locally.

The listening socket is bound here rather than by uvicorn so that ``port=0``
can report the port the operating system actually picked.
"""

from __future__ import annotations

import socket

import uvicorn

from chat_bridge.core.config import BridgeSettings, get_settings
from chat_bridge.core.exceptions import ConfigurationError
from chat_bridge.core.logging_config import configure_logging, get_logger
from chat_bridge.core.state import BridgeState, LoggingStatusSink
from chat_bridge.llm.main import create_app

logger = get_logger(__name__)


def bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        raise ConfigurationError(f"cannot bind {host}:{port}: {exc}") from exc
    sock.set_inheritable(True)
    return sock


def build_server(settings: BridgeSettings) -> tuple[uvicorn.Server, socket.socket]:
    app = create_app(settings)
    context = app.state.bridge

    sock = bind_socket(settings.host, settings.port)
    bound_port = sock.getsockname()[1]
    config = uvicorn.Config(
        app,
        log_config=None,
        log_level=settings.effective_log_level.lower(),
        access_log=settings.verbose,
    )
    server = uvicorn.Server(config)

    context.state.server_handle = server
    context.state.running = True
    logger.info("bridge_listening", host=settings.host, port=bound_port)
    context.status.update("start", context.state)
    return server, sock


def main() -> None:
    settings = get_settings()
    configure_logging(settings, force=True)

    if not settings.enabled:
        LoggingStatusSink().update("disabled", BridgeState())
        return

    server, sock = build_server(settings)
    state = server.config.app.state.bridge.state
    try:
        server.run(sockets=[sock])
    finally:
        state.running = False
        state.server_handle = None
        sock.close()


if __name__ == "__main__":
    main()
