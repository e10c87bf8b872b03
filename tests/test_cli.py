"""Tests for the click CLI, against an in-memory server."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest
from click.testing import CliRunner

from pipewatch.cli import cli
from pipewatch.events import CompleteEvent, ErrorEvent, ProgressEvent


class _Server:
    """Routes requests by path; stream endpoints play back scripted runs in order."""

    def __init__(self, make_sse, runs=(), routes=None):
        self.make_sse = make_sse
        self.runs = list(runs)
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/stream"):
            frames = self.runs.pop(0) if self.runs else [CompleteEvent()]
            return self.make_sse(*frames)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "no route"})
        return route(request) if callable(route) else httpx.Response(200, json=route)


@pytest.fixture
def invoke(tmp_path: Path, make_client):
    """Run the CLI with HTTP pointed at a fake server and logging silenced."""

    def _invoke(server: _Server, *args: str, input: str | None = None):
        def client_factory(*a, **kw):
            return make_client(server)

        runner = CliRunner()
        with (
            patch("pipewatch.cli.client_from_settings", side_effect=client_factory),
            patch("pipewatch.cli.create_http_client", side_effect=client_factory),
            patch("pipewatch.cli.setup_logging", return_value=MagicMock()),
        ):
            return runner.invoke(cli, ["--config", str(tmp_path / "none.yaml"), *args], input=input)

    return _invoke


class TestWatchCommands:
    def test_reprocess_success(self, invoke, make_sse):
        server = _Server(make_sse, runs=[[ProgressEvent(step="transcribe", progress=100), CompleteEvent(message="Done")]])

        result = invoke(server, "reprocess", "rec-1", "--step", "transcribe")

        assert result.exit_code == 0, result.output
        assert server.requests[0].url.params["step"] == "transcribe"
        assert "Ready to explore!" in result.output
        assert "● Transcribing Audio" in result.output

    def test_reprocess_failure_prints_recovery(self, invoke, make_sse):
        server = _Server(make_sse, runs=[[ErrorEvent(message="Model unavailable")]])

        result = invoke(server, "reprocess", "rec-1", "--step", "document")

        assert result.exit_code == 1
        assert "API Processing Error" in result.output
        assert "Model unavailable" in result.output
        assert "pipewatch reprocess rec-1 --step document" in result.output

    def test_recover_restart_all(self, invoke, make_sse):
        server = _Server(make_sse, runs=[[ErrorEvent(message="boom")], [CompleteEvent()]])

        result = invoke(server, "reprocess", "rec-1", "--step", "embeddings", "--recover", input="restart-all\n")

        assert result.exit_code == 0, result.output
        assert [r.url.params["step"] for r in server.requests] == ["embeddings", "all"]

    def test_recover_cancel(self, invoke, make_sse):
        server = _Server(make_sse, runs=[[ErrorEvent(message="boom")]])

        result = invoke(server, "reprocess", "rec-1", "--recover", input="cancel\n")

        assert result.exit_code == 1
        assert len(server.requests) == 1

    def test_finalize_without_processing(self, invoke, make_sse):
        server = _Server(make_sse)

        result = invoke(server, "finalize", "rec-1", "--no-processing")

        assert result.exit_code == 0, result.output
        assert server.requests[0].url.path == "/api/recordings/rec-1/finalize/stream"
        assert server.requests[0].url.params["startProcessing"] == "false"

    def test_watch_dropped_connection_fails(self, invoke, make_sse):
        server = _Server(make_sse, runs=[[ProgressEvent(step="transcribe", progress=20)]])

        result = invoke(server, "watch", "rec-1")

        assert result.exit_code == 1
        assert "Network Connection Error" in result.output
        assert server.requests[0].url.path == "/api/recordings/rec-1/upload/stream"


def _upload_routes():
    return {
        ("POST", "/api/recordings/upload/init"): {
            "data": {"recordingId": "rec-5", "uploadUrl": "https://storage.test/put", "uploadPath": "u/rec-5.mp3"}
        },
        ("PUT", "/put"): {},
        ("POST", "/api/recordings/rec-5/metadata"): {"data": {"streamUrl": "/api/recordings/rec-5/upload/stream"}},
    }


class TestUploadCommand:
    def test_upload_and_watch(self, invoke, make_sse, tmp_path: Path):
        audio = tmp_path / "talk.mp3"
        audio.write_bytes(b"audio")
        server = _Server(make_sse, routes=_upload_routes())

        result = invoke(server, "upload", str(audio), "--title", "Talk", "--tag", "a", "--tag", "b")

        assert result.exit_code == 0, result.output
        assert "Uploaded talk.mp3 as recording rec-5" in result.output
        metadata = next(r for r in server.requests if r.url.path.endswith("/metadata"))
        assert json.loads(metadata.content)["tags"] == ["a", "b"]
        assert server.requests[-1].url.path == "/api/recordings/rec-5/upload/stream"

    def test_upload_no_watch(self, invoke, make_sse, tmp_path: Path):
        audio = tmp_path / "talk.mp3"
        audio.write_bytes(b"audio")
        server = _Server(make_sse, routes=_upload_routes())

        result = invoke(server, "upload", str(audio), "--title", "Talk", "--no-watch")

        assert result.exit_code == 0, result.output
        assert not any(r.url.path.endswith("/stream") for r in server.requests)

    def test_upload_failure(self, invoke, make_sse, tmp_path: Path):
        audio = tmp_path / "talk.mp3"
        audio.write_bytes(b"audio")
        server = _Server(make_sse, routes={})

        result = invoke(server, "upload", str(audio), "--title", "Talk")

        assert result.exit_code == 1
        assert "Upload failed: no route" in result.output

    def test_upload_storage_unreachable(self, invoke, make_sse, tmp_path: Path):
        audio = tmp_path / "talk.mp3"
        audio.write_bytes(b"audio")

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        routes = {**_upload_routes(), ("PUT", "/put"): refuse, ("DELETE", "/api/recordings/rec-5"): {"success": True}}
        server = _Server(make_sse, routes=routes)

        result = invoke(server, "upload", str(audio), "--title", "Talk")

        assert result.exit_code == 1
        assert "Upload failed: upload to storage failed" in result.output
        assert server.requests[-1].method == "DELETE"


class TestLibraryCommands:
    def test_status_renders_detail_pipeline(self, invoke, make_sse):
        server = _Server(
            make_sse,
            routes={
                ("GET", "/api/recordings/rec-1"): {
                    "data": {"id": "rec-1", "title": "Talk", "status": "doc_generating", "content_type": "recording"}
                }
            },
        )

        result = invoke(server, "status", "rec-1")

        assert result.exit_code == 0, result.output
        assert "Talk [doc_generating]" in result.output
        assert "● Transcribed" in result.output
        assert "◐ Generating document..." in result.output

    def test_delete_permanent(self, invoke, make_sse):
        server = _Server(make_sse, routes={("DELETE", "/api/recordings/rec-1"): {"success": True}})

        result = invoke(server, "delete", "rec-1", "--permanent")

        assert result.exit_code == 0, result.output
        assert server.requests[0].url.params["permanent"] == "true"
        assert "Deleted rec-1 permanently" in result.output

    def test_restore_missing_recording(self, invoke, make_sse):
        result = invoke(_Server(make_sse), "restore", "rec-1")

        assert result.exit_code == 1
        assert "Restore failed" in result.output

    def test_tags_and_collections(self, invoke, make_sse):
        server = _Server(
            make_sse,
            routes={
                ("GET", "/api/tags"): {"data": [{"id": "t1", "name": "work"}]},
                ("GET", "/api/collections"): {"data": [{"id": "c1", "name": "Talks", "itemCount": 3}]},
            },
        )

        assert "work (t1)" in invoke(server, "tags").output
        assert "Talks (c1, 3 items)" in invoke(server, "collections").output

    def test_collections_add_needs_ids(self, invoke, make_sse):
        result = invoke(_Server(make_sse), "collections", "--add", "c1")

        assert result.exit_code == 2

    def test_stages_prints_registry(self, invoke, make_sse):
        result = invoke(_Server(make_sse), "stages")

        assert result.exit_code == 0
        assert "doc_generate -> document  [Document generation]" in result.output
        assert "video: extract_audio -> transcribe -> document -> embeddings" in result.output
