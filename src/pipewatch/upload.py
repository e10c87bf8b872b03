"""Upload wizard: init → PUT file → metadata, cleaning up the recording if a step fails."""

from __future__ import annotations

import mimetypes
from pathlib import Path

import structlog
from pydantic import BaseModel

from pipewatch.api import ApiClient, RecordingMetadata
from pipewatch.errors import PipewatchError
from pipewatch.statuses import ContentType
from pipewatch.urls import upload_stream_url

DEFAULT_MIME_TYPE = "application/octet-stream"


class UploadResult(BaseModel):
    recording_id: str
    stream_url: str
    content_type: ContentType | None = None


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or DEFAULT_MIME_TYPE


def upload_file(
    api: ApiClient,
    path: Path,
    log: structlog.stdlib.BoundLogger,
    *,
    title: str,
    description: str | None = None,
    tags: list[str] | None = None,
    mime_type: str | None = None,
    duration_sec: float | None = None,
) -> UploadResult:
    """Upload one file and start processing it.

    Metadata is validated before anything is sent, so a bad title or too many
    tags never leaves an orphan recording behind. Once the server has created the
    recording, any later failure deletes it again and re-raises.
    """
    path = Path(path)
    metadata = RecordingMetadata(title=title, description=description, tags=tags or [], storage_path="pending")
    mime_type = mime_type or guess_mime_type(path)
    content = path.read_bytes()

    log = log.bind(filename=path.name)
    target = api.init_upload(path.name, mime_type, len(content), duration_sec)
    log = log.bind(recording_id=target.recording_id)
    log.info("upload.initialized", content_type=target.content_type)

    try:
        api.upload_file(target.upload_url, content, mime_type)
        metadata.storage_path = target.upload_path or target.recording_id
        stream_url = api.save_metadata(target.recording_id, metadata)
    except PipewatchError:
        log.warning("upload.cleaning_up_orphan")
        try:
            api.delete_recording(target.recording_id)
        except PipewatchError:
            log.exception("upload.cleanup_failed")
        raise

    log.info("upload.metadata_saved")
    return UploadResult(
        recording_id=target.recording_id,
        stream_url=stream_url or upload_stream_url(target.recording_id),
        content_type=target.content_type,
    )
