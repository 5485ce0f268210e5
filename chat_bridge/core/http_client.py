"""Reusable HTTP client utilities."""

import httpx

# Streaming completions can pause between tokens; only connecting is kept short.
_CONNECT_TIMEOUT = 10.0


def build_async_http_client(timeout: float) -> httpx.AsyncClient:
    """Return an AsyncClient tuned for long-lived streaming calls to the backing model."""

    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=min(_CONNECT_TIMEOUT, timeout)),
        follow_redirects=True,
    )
