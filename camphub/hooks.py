"""
Logging interceptors.

Registered automatically when `ClientConfig.log_requests` is true; they can also
be added to any client by hand with `add_request_interceptor` /
`add_response_interceptor`.
"""

from __future__ import annotations

import logging

from .clients.pipeline import ApiRequest, RawResponse

logger = logging.getLogger("camphub.http")

_REDACTED_HEADERS = frozenset({"authorization", "cookie", "proxy-authorization"})


def redacted_headers(request: ApiRequest) -> dict[str, str]:
    return {
        key: ("[REDACTED]" if key.lower() in _REDACTED_HEADERS else value)
        for key, value in request.headers.items()
    }


def log_request(request: ApiRequest) -> ApiRequest:
    logger.info(f"-> {request.method} {request.url}")
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"   headers={redacted_headers(request)}")
    return request


def log_response(response: RawResponse) -> RawResponse:
    logger.info(
        f"<- {response.status_code} {response.reason_phrase} ({len(response.content)} bytes)"
    )
    return response


__all__ = ["log_request", "log_response", "redacted_headers"]
