"""
In-memory stand-in for `AsyncApiClient`.

`MockApiClient` answers from handlers registered per endpoint instead of going
over the network. Unregistered endpoints raise `NotFoundError`, so code under
test sees the same error shapes as with the real client.

Example:
    ```python
    api = MockApiClient()
    api.on("/events", lambda options: [{"id": 1, "title": "Open day"}])

    response = await api.get("/events")
    assert response.data[0]["title"] == "Open day"
    ```
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

import httpx

from .clients.http import ApiResponse, QueryParams, RequestOptions
from .clients.pipeline import maybe_await
from .exceptions import NotFoundError

MockHandler: TypeAlias = Callable[[RequestOptions], "Any | Awaitable[Any]"]


class MockApiClient:
    def __init__(self) -> None:
        self._handlers: dict[str, MockHandler] = {}
        self.calls: list[tuple[str, RequestOptions]] = []

    def on(self, endpoint: str, handler: MockHandler) -> None:
        """Register (or replace) the handler for `endpoint`, whatever the method."""
        self._handlers[endpoint] = handler

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: Any | None = None,
        params: QueryParams | None = None,
        timeout: float | None = None,
        retry: int | None = None,
        retry_delay: float | None = None,
    ) -> ApiResponse[Any]:
        options = RequestOptions(
            method=method.upper(),
            headers=headers,
            body=body,
            params=params,
            timeout=timeout,
            retry=retry,
            retry_delay=retry_delay,
        )
        self.calls.append((endpoint, options))

        handler = self._handlers.get(endpoint)
        if handler is None:
            raise NotFoundError("Not found", status_code=404, status_text="Not Found")

        data = await maybe_await(handler(options))
        return ApiResponse(data=data, status=200, status_text="OK", headers=httpx.Headers())

    async def get(self, endpoint: str, **options: Any) -> ApiResponse[Any]:
        return await self.request(endpoint, method="GET", **options)

    async def post(self, endpoint: str, data: Any = None, **options: Any) -> ApiResponse[Any]:
        return await self.request(endpoint, method="POST", body=data, **options)

    async def put(self, endpoint: str, data: Any = None, **options: Any) -> ApiResponse[Any]:
        return await self.request(endpoint, method="PUT", body=data, **options)

    async def patch(self, endpoint: str, data: Any = None, **options: Any) -> ApiResponse[Any]:
        return await self.request(endpoint, method="PATCH", body=data, **options)

    async def delete(self, endpoint: str, **options: Any) -> ApiResponse[Any]:
        return await self.request(endpoint, method="DELETE", **options)


__all__ = ["MockApiClient", "MockHandler"]
