"""Tests for the upload wizard flow."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from pydantic import ValidationError

from pipewatch.api import ApiClient
from pipewatch.errors import ApiError, TransportError
from pipewatch.upload import guess_mime_type, upload_file


class _Backend:
    """API plus storage host, recording every call."""

    def __init__(
        self, *, storage_status: int = 200, stream_url: str | None = "/custom/stream", storage_down: bool = False
    ):
        self.storage_status = storage_status
        self.storage_down = storage_down
        self.stream_url = stream_url
        self.calls: list[tuple[str, str]] = []
        self.bodies: dict[str, dict] = {}

    def api(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if request.url.path == "/api/recordings/upload/init":
            self.bodies["init"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"data": {"recordingId": "rec-7", "uploadUrl": "https://storage.test/put", "uploadPath": "u/rec-7.mp3"}},
            )
        if request.url.path.endswith("/metadata"):
            self.bodies["metadata"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"streamUrl": self.stream_url}})
        return httpx.Response(200, json={"success": True})

    def storage(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, str(request.url)))
        if self.storage_down:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.storage_status)


@pytest.fixture
def audio_file(tmp_path: Path) -> Path:
    path = tmp_path / "standup.mp3"
    path.write_bytes(b"ID3 fake audio")
    return path


def _client(make_client, backend: _Backend, log) -> ApiClient:
    return ApiClient(make_client(backend.api), log, storage_client=make_client(backend.storage, base_url=""))


class TestUploadFile:
    def test_happy_path(self, make_client, log, audio_file):
        backend = _Backend()

        result = upload_file(
            _client(make_client, backend, log), audio_file, log, title="Standup", description="Daily", tags=["team"]
        )

        assert result.recording_id == "rec-7"
        assert result.stream_url == "/custom/stream"
        assert backend.calls == [
            ("POST", "/api/recordings/upload/init"),
            ("PUT", "https://storage.test/put"),
            ("POST", "/api/recordings/rec-7/metadata"),
        ]
        assert backend.bodies["init"]["mimeType"] == "audio/mpeg"
        assert backend.bodies["init"]["fileSize"] == len(b"ID3 fake audio")
        assert backend.bodies["metadata"]["storagePath"] == "u/rec-7.mp3"
        assert backend.bodies["metadata"]["tags"] == ["team"]

    def test_falls_back_to_upload_stream(self, make_client, log, audio_file):
        backend = _Backend(stream_url=None)

        result = upload_file(_client(make_client, backend, log), audio_file, log, title="Standup")

        assert result.stream_url == "/api/recordings/rec-7/upload/stream"

    def test_failed_storage_put_deletes_orphan(self, make_client, log, audio_file):
        backend = _Backend(storage_status=500)

        with pytest.raises(ApiError):
            upload_file(_client(make_client, backend, log), audio_file, log, title="Standup")

        assert backend.calls[-1] == ("DELETE", "/api/recordings/rec-7")
        assert ("POST", "/api/recordings/rec-7/metadata") not in backend.calls

    def test_unreachable_storage_deletes_orphan(self, make_client, log, audio_file):
        backend = _Backend(storage_down=True)

        with pytest.raises(TransportError, match="connection refused"):
            upload_file(_client(make_client, backend, log), audio_file, log, title="Standup")

        assert backend.calls == [
            ("POST", "/api/recordings/upload/init"),
            ("PUT", "https://storage.test/put"),
            ("DELETE", "/api/recordings/rec-7"),
        ]

    def test_invalid_metadata_sends_nothing(self, make_client, log, audio_file):
        backend = _Backend()

        with pytest.raises(ValidationError):
            upload_file(_client(make_client, backend, log), audio_file, log, title="")

        assert backend.calls == []


class TestGuessMimeType:
    def test_known_and_unknown_extensions(self):
        assert guess_mime_type(Path("notes.pdf")) == "application/pdf"
        assert guess_mime_type(Path("blob.zzz-unknown")) == "application/octet-stream"
