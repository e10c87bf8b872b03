"""Pydantic models for stages, errors and content items."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from pipewatch.statuses import ContentStatus, ContentType, ErrorType, StageStatus


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Stage(BaseModel):
    """One user-visible step of a processing run. Mutated in place by the reducer."""

    id: str
    label: str
    status: StageStatus = StageStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    benefit: str | None = None
    sublabel: str | None = None
    timestamp: str | None = None


class ProcessingError(BaseModel):
    type: ErrorType = ErrorType.UNKNOWN
    message: str
    code: str | None = None
    details: str | None = None
    timestamp: str = Field(default_factory=now_iso)


class LogEntry(BaseModel):
    message: str
    timestamp: str = Field(default_factory=now_iso)
    data: Any = None


class ContentItem(BaseModel):
    """A library item as returned by the REST API; the server owns its status."""

    id: str
    title: str | None = None
    status: ContentStatus = ContentStatus.UPLOADING
    content_type: ContentType | None = None
    file_type: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None


class RunSnapshot(BaseModel):
    """Point-in-time copy of a reducer's state, safe to hand to a view."""

    stages: list[Stage]
    current_step: str | None = None
    overall_progress: int = 0
    elapsed_seconds: int = 0
    estimated_time_remaining: int | None = None
    streaming_text: str = ""
    content_kind: str = "transcript"
    char_count: int = 0
    processing_speed: float = 0.0
    completed: bool = False
    error: ProcessingError | None = None
    logs: list[LogEntry] = []
