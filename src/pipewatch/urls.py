"""Paths of the REST and stream endpoints, relative to the API base URL."""

from __future__ import annotations

from urllib.parse import quote, urlencode

from pipewatch.statuses import ProcessingStep, RunMode


def _recording(recording_id: str) -> str:
    return f"/api/recordings/{quote(str(recording_id), safe='')}"


def recording_path(recording_id: str, *, permanent: bool = False) -> str:
    path = _recording(recording_id)
    if permanent:
        path += "?" + urlencode({"permanent": "true"})
    return path


def restore_path(recording_id: str) -> str:
    return f"{_recording(recording_id)}/restore"


def finalize_path(recording_id: str) -> str:
    return f"{_recording(recording_id)}/finalize"


def metadata_path(recording_id: str) -> str:
    return f"{_recording(recording_id)}/metadata"


def collection_items_path(collection_id: str) -> str:
    return f"/api/collections/{quote(str(collection_id), safe='')}/items"


def upload_stream_url(recording_id: str) -> str:
    return f"{_recording(recording_id)}/upload/stream"


def reprocess_stream_url(recording_id: str, step: ProcessingStep | str = ProcessingStep.ALL) -> str:
    return f"{_recording(recording_id)}/reprocess/stream?" + urlencode({"step": ProcessingStep(step).value})


def finalize_stream_url(recording_id: str, *, start_processing: bool = True) -> str:
    return f"{_recording(recording_id)}/finalize/stream?" + urlencode({"startProcessing": str(start_processing).lower()})


def stream_url(
    mode: RunMode,
    recording_id: str,
    step: ProcessingStep | str = ProcessingStep.ALL,
    *,
    start_processing: bool = True,
) -> str:
    """Stream endpoint for one run: ``mode`` picks the endpoint, ``step`` only applies to reprocess."""
    match mode:
        case RunMode.UPLOAD:
            return upload_stream_url(recording_id)
        case RunMode.FINALIZE:
            return finalize_stream_url(recording_id, start_processing=start_processing)
        case _:
            return reprocess_stream_url(recording_id, step)
