"""Shared fixtures: fake clock, mock loggers and in-memory HTTP servers."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from pipewatch.events import _BaseEvent

BASE_URL = "http://pipewatch.test"


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sse_body(*frames: _BaseEvent | str) -> bytes:
    """Encode events (or raw SSE frames) into one stream body."""
    return "".join(f.to_sse() if isinstance(f, _BaseEvent) else f for f in frames).encode()


def sse_response(*frames: _BaseEvent | str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, headers={"content-type": "text/event-stream"}, content=sse_body(*frames))


def mock_client(handler: Callable[[httpx.Request], httpx.Response], base_url: str = BASE_URL) -> httpx.Client:
    return httpx.Client(base_url=base_url, transport=httpx.MockTransport(handler))


@pytest.fixture
def log() -> MagicMock:
    return MagicMock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_sse() -> Callable[..., httpx.Response]:
    return sse_response


@pytest.fixture
def make_client() -> Callable[..., httpx.Client]:
    return mock_client
