"""Stream event union: the JSON payloads carried by processing streams.

Wire shape: ``{type, step?, progress?, message, data?, timestamp}``.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from pipewatch.errors import EventParseError
from pipewatch.models import now_iso
from pipewatch.statuses import EventType


class _BaseEvent(BaseModel):
    message: str = ""
    data: Any = None
    timestamp: str = Field(default_factory=now_iso)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def to_sse(self) -> str:
        """Encode as one SSE frame, the way the server emits it."""
        return f"data: {json.dumps(self.to_wire())}\n\n"


class ProgressEvent(_BaseEvent):
    type: Literal["progress"] = "progress"
    step: str | None = None
    progress: int | None = None

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0, min(100, round(value)))
        return value


class LogEvent(_BaseEvent):
    type: Literal["log"] = "log"


class TranscriptChunkEvent(_BaseEvent):
    type: Literal["transcript_chunk"] = "transcript_chunk"


class DocumentChunkEvent(_BaseEvent):
    type: Literal["document_chunk"] = "document_chunk"


class CompleteEvent(_BaseEvent):
    type: Literal["complete"] = "complete"


class ErrorEvent(_BaseEvent):
    type: Literal["error"] = "error"


class HeartbeatEvent(_BaseEvent):
    type: Literal["heartbeat"] = "heartbeat"


StreamEvent = Annotated[
    ProgressEvent
    | LogEvent
    | TranscriptChunkEvent
    | DocumentChunkEvent
    | CompleteEvent
    | ErrorEvent
    | HeartbeatEvent,
    Field(discriminator="type"),
]

_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)

KNOWN_TYPES = frozenset(e.value for e in EventType)


def parse_event(payload: str | bytes) -> StreamEvent:
    """Parse one SSE ``data`` payload. Raises EventParseError on anything unusable."""
    text = payload.decode() if isinstance(payload, bytes) else payload
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise EventParseError(f"invalid JSON: {exc}", text) from exc

    if not isinstance(raw, dict):
        raise EventParseError("event payload is not an object", text)
    event_type = raw.get("type")
    if not isinstance(event_type, str) or event_type not in KNOWN_TYPES:
        raise EventParseError(f"unknown event type: {event_type!r}", text)

    try:
        return _adapter.validate_python(raw)
    except ValidationError as exc:
        raise EventParseError(f"invalid {event_type} event: {exc.error_count()} errors", text) from exc

