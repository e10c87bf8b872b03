"""Event reducer: folds stream events into an ordered stage list.

Per stage: PENDING → IN_PROGRESS → COMPLETED, or IN_PROGRESS → ERROR. A run is
terminal after a ``complete`` or ``error`` event; nothing is applied after that.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable

import structlog

from pipewatch.errors import classify_error_event
from pipewatch.events import (
    CompleteEvent,
    DocumentChunkEvent,
    ErrorEvent,
    HeartbeatEvent,
    LogEvent,
    ProgressEvent,
    StreamEvent,
    TranscriptChunkEvent,
)
from pipewatch.models import LogEntry, ProcessingError, RunSnapshot, Stage
from pipewatch.stages import map_job_type_to_stage_id, stage_config_for, stage_label
from pipewatch.statuses import StageStatus

DEFAULT_PROGRESS = 50
AUTO_ADVANCE_PROGRESS = 5
PLACEHOLDER_LABEL = "Completed"
SPEED_DECAY = 0.7
SPEED_WEIGHT = 0.3
LONG_RUNNING_SECONDS = 180


class EventReducer:
    """Holds the state of one run and applies events to it in delivery order."""

    def __init__(
        self,
        log: structlog.stdlib.BoundLogger,
        stages: Iterable[Stage] = (),
        *,
        auto_advance: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.log = log
        self.stages: list[Stage] = [s.model_copy() for s in stages]
        self.auto_advance = auto_advance
        self._clock = clock

        self.current_step: str | None = next((s.id for s in self.stages if s.status == StageStatus.IN_PROGRESS), None)
        self.overall_progress = 0
        self.streaming_text = ""
        self.content_kind = "transcript"
        self.processing_speed = 0.0
        self.logs: list[LogEntry] = []
        self.completed = False
        self.error: ProcessingError | None = None

        self._started_at = clock()
        self._finished_at: float | None = None
        self._last_chunk_at = self._started_at
        self._speed_seeded = False

    # -- state queries ---------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.completed or self.error is not None

    @property
    def elapsed_seconds(self) -> int:
        end = self._finished_at if self._finished_at is not None else self._clock()
        return int(end - self._started_at)

    @property
    def estimated_time_remaining(self) -> int | None:
        if not 0 < self.overall_progress < 100:
            return None
        elapsed = self.elapsed_seconds
        estimated_total = elapsed / self.overall_progress * 100
        return max(0, math.ceil(estimated_total - elapsed))

    @property
    def is_long_running(self) -> bool:
        return not self.is_terminal and self.elapsed_seconds > LONG_RUNNING_SECONDS

    @property
    def char_count(self) -> int:
        return len(self.streaming_text)

    def stage(self, stage_id: str) -> Stage | None:
        return next((s for s in self.stages if s.id == stage_id), None)

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            stages=[s.model_copy() for s in self.stages],
            current_step=self.current_step,
            overall_progress=self.overall_progress,
            elapsed_seconds=self.elapsed_seconds,
            estimated_time_remaining=self.estimated_time_remaining,
            streaming_text=self.streaming_text,
            content_kind=self.content_kind,
            char_count=self.char_count,
            processing_speed=self.processing_speed,
            completed=self.completed,
            error=self.error,
            logs=list(self.logs),
        )

    # -- event application -----------------------------------------------------

    def apply(self, event: StreamEvent) -> bool:
        """Apply one event. Returns False when it was ignored because the run is terminal."""
        if self.is_terminal:
            self.log.debug("reducer.event_dropped", reason="terminal", event_type=event.type)
            return False

        match event:
            case ProgressEvent():
                self._on_progress(event)
            case TranscriptChunkEvent() | DocumentChunkEvent():
                self._on_chunk(event)
            case CompleteEvent():
                self._on_complete(event)
            case ErrorEvent():
                self.fail(classify_error_event(event.message, event.data, event.timestamp))
            case LogEvent():
                self.logs.append(LogEntry(message=event.message, timestamp=event.timestamp, data=event.data))
            case HeartbeatEvent():
                pass
        return True

    def fail(self, error: ProcessingError) -> bool:
        """Mark the run failed. Used for ``error`` events and transport failures alike."""
        if self.is_terminal:
            self.log.debug("reducer.error_ignored", reason="terminal", error_type=error.type)
            return False

        self.error = error
        self._finished_at = self._clock()
        active = self._active_stage()
        if active is not None:
            active.status = StageStatus.ERROR
        self.logs.append(LogEntry(message=f"Error: {error.message}", timestamp=error.timestamp))
        self.log.warning(
            "reducer.run_failed",
            error_type=error.type,
            message=error.message,
            stage=active.id if active else None,
        )
        return True

    def _active_stage(self) -> Stage | None:
        if self.current_step is not None:
            current = self.stage(self.current_step)
            if current is not None and current.status == StageStatus.IN_PROGRESS:
                return current
        return next((s for s in self.stages if s.status == StageStatus.IN_PROGRESS), None)

    def _ensure_stage(self, stage_id: str, job_type: str) -> Stage:
        stage = self.stage(stage_id)
        if stage is None:
            config = stage_config_for(job_type)
            label = stage_label(stage_id) if config is not None else job_type
            stage = Stage(
                id=stage_id,
                label=label,
                benefit=config.benefit if config else None,
                sublabel=config.sublabel if config else None,
            )
            self.stages.append(stage)
            self.log.debug("reducer.stage_added", stage=stage_id, job_type=job_type)
        return stage

    def _on_progress(self, event: ProgressEvent) -> None:
        if event.progress is not None:
            self.overall_progress = event.progress
        if event.message:
            self.logs.append(LogEntry(message=event.message, timestamp=event.timestamp, data=event.data))
        if not event.step:
            return

        stage = self._ensure_stage(map_job_type_to_stage_id(event.step), event.step)
        if event.message and event.message != PLACEHOLDER_LABEL:
            stage.label = event.message

        if stage.status in (StageStatus.COMPLETED, StageStatus.ERROR):
            # Finished stages never move backwards; replays only refresh the label
            return

        value = event.progress if event.progress is not None else DEFAULT_PROGRESS
        stage.progress = value
        if value == 100:
            stage.status = StageStatus.COMPLETED
            self._advance()
        else:
            stage.status = StageStatus.IN_PROGRESS
            self.current_step = stage.id

    def _advance(self) -> None:
        """Start the next pending stage so the view never looks stalled between jobs."""
        if not self.auto_advance:
            return
        upcoming = next((s for s in self.stages if s.status == StageStatus.PENDING), None)
        if upcoming is None:
            return
        upcoming.status = StageStatus.IN_PROGRESS
        upcoming.progress = AUTO_ADVANCE_PROGRESS
        self.current_step = upcoming.id
        self.log.debug("reducer.auto_advanced", stage=upcoming.id)

    def _on_chunk(self, event: TranscriptChunkEvent | DocumentChunkEvent) -> None:
        self.streaming_text += event.message
        self.content_kind = "transcript" if isinstance(event, TranscriptChunkEvent) else "document"

        now = self._clock()
        delta = now - self._last_chunk_at
        if delta > 0:
            rate = len(event.message) / delta
            if self._speed_seeded:
                self.processing_speed = self.processing_speed * SPEED_DECAY + rate * SPEED_WEIGHT
            else:
                self.processing_speed = rate
                self._speed_seeded = True
        self._last_chunk_at = now

    def _on_complete(self, event: CompleteEvent) -> None:
        for stage in self.stages:
            if stage.status in (StageStatus.IN_PROGRESS, StageStatus.COMPLETED):
                stage.status = StageStatus.COMPLETED
                stage.progress = 100
        self.completed = True
        self.overall_progress = 100
        self._finished_at = self._clock()
        self.logs.append(LogEntry(message=event.message, timestamp=event.timestamp, data=event.data))
        self.log.info("reducer.run_completed", stages=len(self.stages), elapsed=self.elapsed_seconds)
