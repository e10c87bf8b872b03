"""Status enumerations for pipeline stages, stream events and content."""

from __future__ import annotations

from enum import StrEnum


class StageStatus(StrEnum):
    """Stage lifecycle as shown to the user."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class EventType(StrEnum):
    """Tags of the events pushed over a processing stream."""
    PROGRESS = "progress"
    LOG = "log"
    TRANSCRIPT_CHUNK = "transcript_chunk"
    DOCUMENT_CHUNK = "document_chunk"
    COMPLETE = "complete"
    ERROR = "error"
    HEARTBEAT = "heartbeat"


class ErrorType(StrEnum):
    """Client-side classification of processing errors."""
    API = "api"
    NETWORK = "network"
    DATA = "data"
    QUOTA = "quota"
    UNKNOWN = "unknown"


class ContentStatus(StrEnum):
    """Server-side content item lifecycle."""
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    DOC_GENERATING = "doc_generating"
    COMPLETED = "completed"
    ERROR = "error"


class ContentType(StrEnum):
    RECORDING = "recording"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    TEXT = "text"


class ProcessingStep(StrEnum):
    """Values accepted by the reprocess stream's ``step`` parameter."""
    TRANSCRIBE = "transcribe"
    DOCUMENT = "document"
    EMBEDDINGS = "embeddings"
    ALL = "all"


class RunMode(StrEnum):
    """Which stream endpoint a run listens to."""
    UPLOAD = "upload"
    REPROCESS = "reprocess"
    FINALIZE = "finalize"


class ConnectionStatus(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
