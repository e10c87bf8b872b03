"""REST client for the recordings, tags and collections endpoints."""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from pipewatch.errors import ApiError, TransportError
from pipewatch.models import ContentItem
from pipewatch.statuses import ContentType
from pipewatch.urls import collection_items_path, finalize_path, metadata_path, recording_path, restore_path

RETRY_STATUSES = frozenset({429, 503})


class UploadTarget(BaseModel):
    """Where to PUT the file bytes for a freshly created recording."""

    recording_id: str = Field(alias="recordingId")
    upload_url: str = Field(alias="uploadUrl")
    upload_path: str | None = Field(default=None, alias="uploadPath")
    content_type: ContentType | None = Field(default=None, alias="contentType")


class RecordingMetadata(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    tags: list[str] = Field(default_factory=list, max_length=20)
    metadata: dict[str, Any] = Field(default_factory=dict)
    thumbnail_uploaded: bool = Field(default=False, serialization_alias="thumbnailUploaded")
    storage_path: str = Field(min_length=1, serialization_alias="storagePath")


class Tag(BaseModel):
    id: str
    name: str
    color: str | None = None


class Collection(BaseModel):
    id: str
    name: str
    description: str | None = None
    item_count: int | None = Field(default=None, alias="itemCount")


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRY_STATUSES
    return isinstance(exc, httpx.TransportError)


def _unwrap(body: Any) -> Any:
    """API responses wrap their payload in ``{"data": ...}``."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _error_message(resp: httpx.Response) -> tuple[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase, None
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        if isinstance(message, dict):
            message = message.get("message")
        return str(message or resp.reason_phrase), body
    return resp.reason_phrase, body


class ApiClient:
    """Thin typed wrapper over the dashboard's JSON API."""

    def __init__(
        self,
        client: httpx.Client,
        log: structlog.stdlib.BoundLogger,
        *,
        storage_client: httpx.Client | None = None,
    ) -> None:
        self.client = client
        self.log = log
        # Signed storage URLs live on another host and must not carry the API token
        self.storage_client = storage_client or httpx.Client(timeout=client.timeout)

    @retry(
        retry=retry_if_exception(_should_retry),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        reraise=True,
    )
    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        resp = self.client.request(method, url, **kwargs)
        if resp.status_code == 429:
            retry_after = resp.headers.get("retry-after")
            if retry_after:
                self.log.warning("api.429_retry_after", url=url, retry_after=retry_after)
                try:
                    time.sleep(float(retry_after))
                except ValueError:
                    # HTTP-date form; the exponential wait below still applies
                    self.log.debug("api.retry_after_unparsed", retry_after=retry_after)
        if resp.status_code in RETRY_STATUSES:
            resp.raise_for_status()
        return resp

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = self._send(method, url, **kwargs)
        except httpx.HTTPStatusError as exc:
            resp = exc.response
        except httpx.TransportError as exc:
            self.log.warning("api.unreachable", method=method, url=url, error=str(exc))
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        if resp.is_error:
            message, body = _error_message(resp)
            self.log.warning("api.request_failed", method=method, url=url, status=resp.status_code, error=message)
            raise ApiError(message, resp.status_code, body)
        if resp.status_code == 204 or not resp.content:
            return None
        return _unwrap(resp.json())

    # -- recordings ------------------------------------------------------------

    def get_recording(self, recording_id: str) -> ContentItem:
        data = self.request("GET", recording_path(recording_id))
        if isinstance(data, dict) and "recording" in data:
            data = data["recording"]
        return ContentItem.model_validate(data)

    def create_recording(self, title: str, *, description: str | None = None, tags: list[str] | None = None) -> UploadTarget:
        """Create a browser-style recording and get its signed upload URL."""
        data = self.request(
            "POST",
            "/api/recordings",
            json={"title": title, "description": description, "metadata": {"tags": tags or []}},
        )
        if not isinstance(data, dict) or not data.get("uploadUrl"):
            raise ApiError("create recording returned no upload URL", 200, data)
        recording = data.get("recording") or {}
        return UploadTarget(recordingId=recording.get("id") or data.get("recordingId"), uploadUrl=data["uploadUrl"])

    def init_upload(self, filename: str, mime_type: str, file_size: int, duration_sec: float | None = None) -> UploadTarget:
        data = self.request(
            "POST",
            "/api/recordings/upload/init",
            json={"filename": filename, "mimeType": mime_type, "fileSize": file_size, "durationSec": duration_sec},
        )
        return UploadTarget.model_validate(data)

    def upload_file(self, upload_url: str, content: bytes, mime_type: str) -> None:
        """PUT the raw bytes to the signed storage URL."""
        try:
            resp = self.storage_client.put(
                upload_url,
                content=content,
                headers={"Content-Type": mime_type, "x-upsert": "true"},
            )
        except httpx.TransportError as exc:
            self.log.warning("api.storage_unreachable", error=str(exc))
            raise TransportError(f"upload to storage failed: {exc}") from exc
        if resp.is_error:
            message, body = _error_message(resp)
            raise ApiError(f"upload to storage failed: {message}", resp.status_code, body)
        self.log.info("api.file_uploaded", bytes=len(content))

    def save_metadata(self, recording_id: str, metadata: RecordingMetadata) -> str | None:
        """Save metadata and start processing. Returns the progress stream URL when the server sends one."""
        data = self.request("POST", metadata_path(recording_id), json=metadata.model_dump(by_alias=True))
        if isinstance(data, dict):
            return data.get("streamUrl")
        return None

    def finalize(self, recording_id: str, *, start_processing: bool = True) -> Any:
        return self.request("POST", finalize_path(recording_id), json={"startProcessing": start_processing})

    def delete_recording(self, recording_id: str, *, permanent: bool = False) -> None:
        self.request("DELETE", recording_path(recording_id, permanent=permanent))
        self.log.info("api.recording_deleted", recording_id=recording_id, permanent=permanent)

    def restore_recording(self, recording_id: str) -> None:
        self.request("POST", restore_path(recording_id))
        self.log.info("api.recording_restored", recording_id=recording_id)

    # -- tags and collections --------------------------------------------------

    def list_tags(self) -> list[Tag]:
        data = self.request("GET", "/api/tags")
        if isinstance(data, dict):
            data = data.get("tags", [])
        return [Tag.model_validate(t) for t in data or []]

    def list_collections(self) -> list[Collection]:
        data = self.request("GET", "/api/collections")
        if isinstance(data, dict):
            data = data.get("collections", [])
        return [Collection.model_validate(c) for c in data or []]

    def add_to_collection(self, collection_id: str, item_ids: list[str]) -> Any:
        return self.request("POST", collection_items_path(collection_id), json={"itemIds": item_ids})
