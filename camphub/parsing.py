"""
Response body decoding.

Bodies are decoded according to their declared content type. Success
responses that cannot be decoded raise `ResponseDecodeError`; error bodies are
decoded on a best-effort basis and never raise.
"""

from __future__ import annotations

import json
from typing import Any

from .clients.pipeline import RawResponse
from .exceptions import ResponseDecodeError

_NO_CONTENT_STATUSES = frozenset({204, 205})


def media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def is_json_content_type(content_type: str) -> bool:
    mt = media_type(content_type)
    return mt == "application/json" or mt.endswith("+json")


def decode_text(raw: RawResponse) -> str:
    encoding = raw.encoding or "utf-8"
    try:
        return raw.content.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise ResponseDecodeError(
            f"Response body is not valid {encoding} text", cause=e
        ) from e


def decode_json(raw: RawResponse) -> Any:
    text = decode_text(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseDecodeError("Response body is not valid JSON", cause=e) from e


def parse_response(raw: RawResponse) -> Any:
    """
    Decode a successful response body.

    - 204/205, or an empty body without a JSON content type: None
    - application/json (and +json types): parsed JSON; an empty body is an error
    - text/*: str
    - application/octet-stream: bytes
    - anything else: JSON when it parses, otherwise text
    """
    if raw.status_code in _NO_CONTENT_STATUSES:
        return None

    content_type = raw.content_type
    if not raw.content:
        if is_json_content_type(content_type):
            raise ResponseDecodeError("Response body is empty but declared as JSON")
        return None

    mt = media_type(content_type)
    if is_json_content_type(content_type):
        return decode_json(raw)
    if mt.startswith("text/"):
        return decode_text(raw)
    if mt == "application/octet-stream":
        return raw.content
    try:
        return decode_json(raw)
    except ResponseDecodeError:
        return decode_text(raw)


def parse_error_body(raw: RawResponse) -> Any | None:
    """Decode an error body: JSON first, then text, None when empty."""
    if not raw.content:
        return None
    try:
        return decode_json(raw)
    except ResponseDecodeError:
        pass
    try:
        return decode_text(raw)
    except ResponseDecodeError:
        return raw.content.decode("utf-8", errors="replace")


def decode_upload_body(text: str) -> Any:
    """Upload responses: JSON when possible, else the raw text."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


__all__ = [
    "decode_upload_body",
    "is_json_content_type",
    "media_type",
    "parse_error_body",
    "parse_response",
]
