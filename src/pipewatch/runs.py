"""Processing runs: a transport + reducer pair per operation, and the retry flows over them."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping

import httpx
import structlog
from tenacity.wait import wait_base

from pipewatch.models import RunSnapshot
from pipewatch.reducer import EventReducer
from pipewatch.stages import placeholder_stages
from pipewatch.statuses import ContentType, ProcessingStep, RunMode
from pipewatch.transport import EventHandle, Listener, StreamTransport
from pipewatch.urls import stream_url


class ProcessingRun:
    """One execution of the pipeline for one content item, watched from start to finish."""

    def __init__(
        self,
        client: httpx.Client,
        recording_id: str,
        log: structlog.stdlib.BoundLogger,
        *,
        mode: RunMode = RunMode.REPROCESS,
        step: ProcessingStep = ProcessingStep.ALL,
        content_type: ContentType | None = None,
        pipelines: Mapping[ContentType, list[str]] | None = None,
        start_processing: bool = True,
        auto_advance: bool = True,
        connect_attempts: int = 3,
        retry_wait: wait_base | None = None,
        listeners: list[Listener] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.recording_id = recording_id
        self.mode = mode
        self.step = ProcessingStep(step)
        self.log = log.bind(recording_id=recording_id, mode=str(mode), step=str(self.step))
        self.url = stream_url(mode, recording_id, self.step, start_processing=start_processing)

        self.reducer = EventReducer(
            self.log,
            placeholder_stages(mode, content_type, pipelines),
            auto_advance=auto_advance,
            clock=clock,
        )
        self.handle = EventHandle(self.reducer, listeners)
        self.transport = StreamTransport(
            client,
            self.url,
            self.handle,
            self.log,
            connect_attempts=connect_attempts,
            retry_wait=retry_wait,
        )

    @property
    def succeeded(self) -> bool:
        return self.reducer.completed

    @property
    def failed(self) -> bool:
        return self.reducer.error is not None

    def run(self) -> RunSnapshot:
        """Listen until the run completes, fails, or is cancelled."""
        self.log.info("run.started", url=self.url)
        self.transport.run()
        snapshot = self.reducer.snapshot()
        self.log.info(
            "run.finished",
            completed=snapshot.completed,
            error=snapshot.error.type if snapshot.error else None,
            elapsed=snapshot.elapsed_seconds,
        )
        return snapshot

    def cancel(self) -> bool:
        """Stop listening. The server-side job keeps running; nothing tells it to stop."""
        closed = self.transport.close()
        if closed:
            self.log.info("run.cancelled")
        return closed


class RunController:
    """Starts runs for one content item and restarts them on retry.

    Every trigger builds a fresh run from a blank state and tears down the
    previous connection first, so at most one stream is open per item. Retrying a
    stage and retrying from a point both re-issue the current ``step``; the server
    decides how much work that actually repeats.
    """

    def __init__(
        self,
        client: httpx.Client,
        recording_id: str,
        log: structlog.stdlib.BoundLogger,
        *,
        mode: RunMode = RunMode.REPROCESS,
        step: ProcessingStep = ProcessingStep.ALL,
        **run_options,
    ) -> None:
        self.client = client
        self.recording_id = recording_id
        self.log = log
        self.mode = mode
        self.step = ProcessingStep(step)
        self.run_options = run_options
        self.current: ProcessingRun | None = None

    def start(self, *, mode: RunMode | None = None, step: ProcessingStep | None = None) -> ProcessingRun:
        if mode is not None:
            self.mode = mode
        if step is not None:
            self.step = ProcessingStep(step)

        if self.current is not None:
            self.current.cancel()

        self.current = ProcessingRun(
            self.client,
            self.recording_id,
            self.log,
            mode=self.mode,
            step=self.step,
            **self.run_options,
        )
        return self.current

    def retry(self) -> ProcessingRun:
        return self.start()

    def retry_from_point(self) -> ProcessingRun:
        return self.start()

    def restart_all(self) -> ProcessingRun:
        return self.start(mode=RunMode.REPROCESS, step=ProcessingStep.ALL)

    def cancel(self) -> bool:
        if self.current is None:
            return False
        return self.current.cancel()
