"""Transport adapter: one server-sent-events connection per run.

The connection delivers events through an ``EventHandle`` rather than straight to
a reducer, so the consumer behind the handle can be swapped without reconnecting.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol

import httpx
import structlog
from httpx_sse import EventSource, SSEError
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from pipewatch.errors import CONNECTION_FAILED, EventParseError, TransportError, network_error
from pipewatch.events import StreamEvent, parse_event
from pipewatch.models import ProcessingError
from pipewatch.statuses import ConnectionStatus

RETRY_STATUSES = frozenset({502, 503, 504})
DEFAULT_MESSAGE_EVENT = "message"


class Subscriber(Protocol):
    """What a connection needs from whoever consumes its events."""

    @property
    def is_terminal(self) -> bool: ...

    def apply(self, event: StreamEvent) -> bool: ...

    def fail(self, error: ProcessingError) -> bool: ...


Listener = Callable[[StreamEvent | None], None]


class EventHandle:
    """Forwards events to the currently registered subscriber and notifies listeners."""

    def __init__(self, subscriber: Subscriber, listeners: list[Listener] | None = None) -> None:
        self.subscriber = subscriber
        self.listeners: list[Listener] = list(listeners or [])

    def replace(self, subscriber: Subscriber) -> None:
        self.subscriber = subscriber

    @property
    def is_terminal(self) -> bool:
        return self.subscriber.is_terminal

    def dispatch(self, event: StreamEvent) -> bool:
        applied = self.subscriber.apply(event)
        if applied:
            self._notify(event)
        return applied

    def fail(self, error: ProcessingError) -> bool:
        failed = self.subscriber.fail(error)
        if failed:
            self._notify(None)
        return failed

    def _notify(self, event: StreamEvent | None) -> None:
        for listener in self.listeners:
            listener(event)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRY_STATUSES
    return isinstance(exc, httpx.TransportError)


class StreamTransport:
    """Owns a single streaming GET and pumps its events into an ``EventHandle``.

    ``run()`` blocks until the stream ends, the run turns terminal, or ``close()``
    is called (from a signal handler or another thread). Closing is idempotent.
    """

    def __init__(
        self,
        client: httpx.Client,
        url: str,
        handle: EventHandle,
        log: structlog.stdlib.BoundLogger,
        *,
        connect_attempts: int = 3,
        retry_wait: wait_base | None = None,
    ) -> None:
        self.client = client
        self.url = url
        self.handle = handle
        self.log = log.bind(url=url)
        self.connect_attempts = max(1, connect_attempts)
        self.retry_wait = retry_wait if retry_wait is not None else wait_exponential(multiplier=0.5, max=8)
        self.status = ConnectionStatus.CONNECTING

        self._lock = threading.Lock()
        self._response: httpx.Response | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> bool:
        """Stop listening. Returns True only for the call that actually closed the stream."""
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            response, self._response = self._response, None

        if response is not None:
            response.close()
        if self.status != ConnectionStatus.ERROR:
            self.status = ConnectionStatus.DISCONNECTED
        self.log.info("transport.closed")
        return True

    def _open(self) -> httpx.Response:
        """GET the stream, retrying transient failures before anything reaches the run."""
        retrying = Retrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.connect_attempts),
            wait=self.retry_wait,
            reraise=True,
            before_sleep=lambda state: self.log.warning(
                "transport.reconnecting",
                attempt=state.attempt_number,
                error=str(state.outcome.exception()) if state.outcome else None,
            ),
        )
        for attempt in retrying:
            with attempt:
                request = self.client.build_request(
                    "GET",
                    self.url,
                    headers={"Accept": "text/event-stream", "Cache-Control": "no-store"},
                )
                response = self.client.send(request, stream=True)
                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError:
                    response.close()
                    raise
                return response
        raise TransportError(f"could not open {self.url}")  # pragma: no cover

    def run(self) -> None:
        if self._closed:
            raise TransportError("transport already closed; start a new run instead")

        self.log.info("transport.connecting")
        try:
            response = self._open()
        except (httpx.HTTPError, TransportError) as exc:
            self._lost(exc, CONNECTION_FAILED)
            self.close()
            return

        with self._lock:
            if self._closed:
                response.close()
                return
            self._response = response

        self.status = ConnectionStatus.CONNECTED
        self.log.info("transport.connected")
        try:
            self._pump(response)
        except (httpx.HTTPError, httpx.StreamError, SSEError) as exc:
            if not self._closed:
                self._lost(exc)
        finally:
            self.close()

    def _pump(self, response: httpx.Response) -> None:
        for sse in EventSource(response).iter_sse():
            if self._closed:
                return
            if sse.event != DEFAULT_MESSAGE_EVENT or not sse.data:
                self.log.debug("transport.skipped_frame", sse_event=sse.event)
                continue

            try:
                event = parse_event(sse.data)
            except EventParseError as exc:
                self.log.warning("transport.malformed_event", error=str(exc), payload=(exc.payload or "")[:200])
                continue

            self.handle.dispatch(event)
            if self.handle.is_terminal:
                return

        if not self._closed and not self.handle.is_terminal:
            self._lost(TransportError("stream ended before the run finished"), raised=False)

    def _lost(self, exc: BaseException, message: str | None = None, *, raised: bool = True) -> None:
        """Report a dead connection to the run, unless the run already finished.

        Called from an ``except`` block when ``raised`` is true, so the traceback goes to the log.
        """
        if self.handle.is_terminal:
            self.log.debug("transport.lost_after_terminal", error=str(exc))
            return
        self.status = ConnectionStatus.ERROR
        if raised:
            self.log.exception("transport.connection_lost", error=str(exc))
        else:
            self.log.warning("transport.connection_lost", error=str(exc))
        if message is None:
            self.handle.fail(network_error(details=str(exc)))
        else:
            self.handle.fail(network_error(message, details=str(exc)))
