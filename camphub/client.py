"""
Client factories and one-shot helpers.

Provides the authenticated client factory used by the site and a small
`fetch_json` helper for calls that need neither interceptors nor retries.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

import httpx

from .clients.http import DEFAULT_TIMEOUT, AsyncApiClient, ClientConfig, QueryParams, with_params
from .clients.pipeline import ApiRequest, RawResponse, RequestInterceptor, maybe_await
from .exceptions import NetworkError, RequestTimeoutError, error_for_status
from .parsing import decode_json, parse_error_body

TokenProvider: TypeAlias = Callable[[], "str | None | Awaitable[str | None]"]


def bearer_token_interceptor(get_token: TokenProvider) -> RequestInterceptor:
    """
    Build a request interceptor that injects `Authorization: Bearer <token>`.

    `get_token` is called on every request, so a rotated token is picked up by
    the next call. An empty or missing token leaves the request untouched.
    """

    async def _inject(request: ApiRequest) -> ApiRequest:
        token = await maybe_await(get_token())
        if not token:
            return request
        headers = httpx.Headers(request.headers)
        headers["Authorization"] = f"Bearer {token}"
        return dataclasses.replace(request, headers=headers)

    return _inject


def create_authenticated_client(
    config: ClientConfig,
    get_token: TokenProvider,
    **client_kwargs: Any,
) -> AsyncApiClient:
    """
    Create an `AsyncApiClient` whose requests carry a bearer token.

    Example:
        ```python
        api = create_authenticated_client(
            ClientConfig(base_url="https://api.example.org"),
            lambda: session.access_token,
        )
        profile = await api.get("/me")
        ```

    Args:
        config: Client configuration.
        get_token: Returns the current token (or None); may be async.
        **client_kwargs: Forwarded to `AsyncApiClient` (e.g. `transport`).
    """
    client = AsyncApiClient(config, **client_kwargs)
    client.add_request_interceptor(bearer_token_interceptor(get_token))
    return client


async def fetch_json(
    url: str,
    *,
    params: QueryParams | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """
    GET `url` once and return the decoded JSON body.

    No interceptors and no retries. Non-2xx responses raise the matching
    `APIError` subclass with the status text as message.
    """
    target = with_params(url, params)
    async with httpx.AsyncClient(transport=transport, follow_redirects=True) as client:
        try:
            response = await asyncio.wait_for(
                client.get(target, headers=headers, timeout=timeout), timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutError(f"GET {target} timed out after {timeout:g}s", cause=e) from e
        except httpx.RequestError as e:
            raise NetworkError(f"GET {target} failed: {e}", cause=e) from e

    raw = RawResponse.from_httpx(response)
    if not raw.is_success:
        raise error_for_status(
            raw.status_code,
            raw.reason_phrase,
            parse_error_body(raw),
            message=raw.reason_phrase or "An error occurred",
        )
    return decode_json(raw)


__all__ = [
    "TokenProvider",
    "bearer_token_interceptor",
    "create_authenticated_client",
    "fetch_json",
]
