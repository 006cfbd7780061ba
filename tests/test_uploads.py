from __future__ import annotations

import asyncio
import io
import threading
from pathlib import Path

import httpx
import pytest

from camphub import APIError, NetworkError, RequestTimeoutError, ServerError, upload_file, uploads
from camphub.uploads import encode_multipart

UPLOAD_URL = "https://uploads.example.org/files"


def test_encode_multipart_sets_length_and_boundary() -> None:
    body, headers = encode_multipart(
        b"hello world",
        field_name="attachment",
        additional_data={"eventId": 42, "public": True, "note": None},
        filename="notes.txt",
        content_type="text/plain",
    )

    assert headers["Content-Type"].startswith("multipart/form-data; boundary=")
    assert headers["Content-Length"] == str(len(body))
    assert b'name="attachment"; filename="notes.txt"' in body
    assert b"Content-Type: text/plain" in body
    assert b"hello world" in body
    assert b'name="eventId"\r\n\r\n42\r\n' in body
    assert b'name="public"\r\n\r\ntrue\r\n' in body
    assert b'name="note"' not in body


def test_encode_multipart_reads_paths_and_file_objects(tmp_path: Path) -> None:
    path = tmp_path / "poster.png"
    path.write_bytes(b"\x89PNG")
    body, _ = encode_multipart(path)
    assert b'name="file"; filename="poster.png"' in body
    assert b"\x89PNG" in body

    body, _ = encode_multipart(io.BytesIO(b"raw"))
    assert b'filename="upload"' in body


@pytest.mark.asyncio
async def test_upload_reports_progress_and_returns_json(tmp_path: Path) -> None:
    path = tmp_path / "report.csv"
    path.write_bytes(b"x" * 1000)
    seen: list[httpx.Request] = []
    progress: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "f1", "size": 1000}, request=request)

    result = await upload_file(
        UPLOAD_URL,
        path,
        additional_data={"eventId": "7"},
        on_progress=progress.append,
        headers={"Authorization": "Bearer abc"},
        chunk_size=256,
        transport=httpx.MockTransport(handler),
    )

    assert result == {"id": "f1", "size": 1000}
    request = seen[0]
    assert request.method == "POST"
    assert request.headers["authorization"] == "Bearer abc"
    assert request.headers["content-length"] == str(len(request.content))
    assert "transfer-encoding" not in request.headers
    assert b'filename="report.csv"' in request.content
    assert b'name="eventId"' in request.content

    assert len(progress) > 1
    assert progress == sorted(progress)
    assert progress[-1] == 100.0
    assert all(0.0 <= p <= 100.0 for p in progress)


@pytest.mark.asyncio
async def test_async_progress_callback() -> None:
    progress: list[float] = []

    async def on_progress(value: float) -> None:
        await asyncio.sleep(0)
        progress.append(value)

    await upload_file(
        UPLOAD_URL,
        b"data",
        on_progress=on_progress,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, request=request)),
    )
    assert progress[-1] == 100.0


@pytest.mark.asyncio
async def test_upload_returns_text_when_not_json() -> None:
    result = await upload_file(
        UPLOAD_URL,
        b"data",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="stored")),
    )
    assert result == "stored"


@pytest.mark.asyncio
async def test_upload_client_error_uses_status_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(413, json={"message": "too big"}, request=request)

    with pytest.raises(APIError) as excinfo:
        await upload_file(UPLOAD_URL, b"data", transport=httpx.MockTransport(handler))

    assert excinfo.value.status_code == 413
    assert excinfo.value.message == "Request Entity Too Large"
    assert excinfo.value.body == {"message": "too big"}


@pytest.mark.asyncio
async def test_upload_server_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, request=request)

    with pytest.raises(ServerError):
        await upload_file(UPLOAD_URL, b"data", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_upload_network_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection reset", request=request)

    with pytest.raises(NetworkError, match="Upload failed"):
        await upload_file(UPLOAD_URL, b"data", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_upload_timeout() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1.0)
        return httpx.Response(200, request=request)

    with pytest.raises(RequestTimeoutError):
        await upload_file(
            UPLOAD_URL, b"data", timeout=0.05, transport=httpx.MockTransport(handler)
        )


@pytest.mark.asyncio
async def test_file_is_read_off_the_event_loop_thread(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "big.bin"
    path.write_bytes(b"\x00" * 4096)
    loop_thread = threading.get_ident()
    read_threads: list[int] = []
    original = uploads._read_source

    def recording_read(file, filename):
        read_threads.append(threading.get_ident())
        return original(file, filename)

    monkeypatch.setattr(uploads, "_read_source", recording_read)

    await upload_file(
        UPLOAD_URL,
        path,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True})),
    )

    assert len(read_threads) == 1
    assert read_threads[0] != loop_thread
