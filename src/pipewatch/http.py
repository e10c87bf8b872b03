"""Shared HTTP client factory for the REST and stream clients."""

from __future__ import annotations

import httpx

from pipewatch.settings import Settings


def create_http_client(
    *,
    base_url: str = "",
    token: str = "",
    proxy_url: str | None = None,
    user_agent: str = "pipewatch/0.1.0",
    timeout: float | httpx.Timeout = 30.0,
    **kwargs,
) -> httpx.Client:
    """Create an httpx.Client with User-Agent, optional bearer token and proxy."""
    headers = {"User-Agent": user_agent}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if "headers" in kwargs:
        headers.update(kwargs.pop("headers"))
    return httpx.Client(
        base_url=base_url,
        headers=headers,
        timeout=timeout,
        proxy=proxy_url or None,
        **kwargs,
    )


def client_from_settings(settings: Settings, *, streaming: bool = False, **kwargs) -> httpx.Client:
    """Build a client for the configured API; streaming clients get the long read timeout."""
    timeout: float | httpx.Timeout = settings.request_timeout
    if streaming:
        timeout = httpx.Timeout(settings.request_timeout, read=settings.stream_read_timeout)
    return create_http_client(
        base_url=settings.api_base_url,
        token=settings.api_token,
        proxy_url=settings.proxy_url,
        user_agent=settings.user_agent,
        timeout=timeout,
        **kwargs,
    )
