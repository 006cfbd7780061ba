"""
Multipart file upload with byte-level progress.

Uploads bypass `AsyncApiClient`: they have no interceptors and no retries.
The multipart body is encoded once and streamed to the transport in chunks so
progress can be reported as the bytes go out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from pathlib import Path
from typing import IO, Any

import httpx

from .clients.http import format_param
from .exceptions import NetworkError, RequestTimeoutError, error_for_status
from .parsing import decode_upload_body
from .progress import UploadProgressCallback, emit_progress, percent

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

UploadSource = bytes | str | Path | IO[bytes]


def _read_source(file: UploadSource, filename: str | None) -> tuple[str, bytes]:
    if isinstance(file, bytes):
        return filename or "upload", file
    if isinstance(file, (str, Path)):
        path = Path(file)
        return filename or path.name, path.read_bytes()
    data = file.read()
    name = getattr(file, "name", None)
    return filename or (Path(name).name if isinstance(name, str) else "upload"), data


def encode_multipart(
    file: UploadSource,
    *,
    field_name: str = "file",
    additional_data: Mapping[str, Any] | None = None,
    filename: str | None = None,
    content_type: str | None = None,
) -> tuple[bytes, httpx.Headers]:
    """Encode the form body; returns the bytes and their Content-Type/Length headers."""
    name, payload = _read_source(file, filename)
    file_entry: tuple[str, bytes] | tuple[str, bytes, str] = (
        (name, payload, content_type) if content_type else (name, payload)
    )
    data = {
        key: format_param(value)
        for key, value in (additional_data or {}).items()
        if value is not None
    }
    encoded = httpx.Request(
        "POST", "http://upload.invalid/", data=data, files={field_name: file_entry}
    )
    body = encoded.read()
    headers = httpx.Headers(
        {
            "Content-Type": encoded.headers["Content-Type"],
            "Content-Length": str(len(body)),
        }
    )
    return body, headers


async def _stream_with_progress(
    body: bytes,
    on_progress: UploadProgressCallback | None,
    chunk_size: int,
) -> AsyncIterator[bytes]:
    total = len(body)
    sent = 0
    for start in range(0, total, chunk_size):
        chunk = body[start : start + chunk_size]
        yield chunk
        sent += len(chunk)
        await emit_progress(on_progress, percent(sent, total))


async def upload_file(
    url: str,
    file: UploadSource,
    *,
    field_name: str = "file",
    additional_data: Mapping[str, Any] | None = None,
    on_progress: UploadProgressCallback | None = None,
    filename: str | None = None,
    content_type: str | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """
    POST `file` as multipart/form-data and return the decoded response body.

    Args:
        url: Absolute upload URL.
        file: Raw bytes, a filesystem path, or a binary file object.
        field_name: Form field carrying the file.
        additional_data: Extra form fields (values coerced to strings).
        on_progress: Called with the percentage sent (0-100, non-decreasing,
            last call 100); may be sync or async.
        filename: Filename reported in the form part.
        content_type: Content type of the file part.
        headers: Extra request headers.
        timeout: Overall timeout in seconds (None: no timeout).
        chunk_size: Bytes per streamed chunk.
        transport: Optional httpx transport.

    Returns:
        The response body decoded as JSON, or the raw text if it is not JSON.

    Raises:
        APIError: Non-2xx response.
        NetworkError: The upload could not be sent.
        RequestTimeoutError: `timeout` elapsed.
    """
    # Reading the file and encoding the form both block; keep them off the loop.
    body, multipart_headers = await asyncio.to_thread(
        encode_multipart,
        file,
        field_name=field_name,
        additional_data=additional_data,
        filename=filename,
        content_type=content_type,
    )
    request_headers = httpx.Headers(headers or {})
    request_headers.update(multipart_headers)
    logger.debug(f"uploading {len(body)} bytes to {url}")

    async with httpx.AsyncClient(transport=transport, follow_redirects=True) as client:
        request = client.build_request(
            "POST",
            url,
            content=_stream_with_progress(body, on_progress, chunk_size),
            headers=request_headers,
            timeout=timeout,
        )
        try:
            response = await asyncio.wait_for(client.send(request), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutError(f"Upload to {url} timed out", cause=e) from e
        except httpx.RequestError as e:
            raise NetworkError("Upload failed", cause=e) from e

    if not response.is_success:
        raise error_for_status(
            response.status_code,
            response.reason_phrase,
            decode_upload_body(response.text) if response.content else None,
            message=response.reason_phrase or "Upload failed",
        )
    return decode_upload_body(response.text)


__all__ = ["UploadSource", "encode_multipart", "upload_file"]
