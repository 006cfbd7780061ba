"""
Internal request pipeline primitives.

Requests and responses are modelled independently of the underlying HTTP
transport so cross-cutting behavior (auth headers, logging, response
rewriting) can be implemented as interceptors.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeAlias, TypeVar, cast

import httpx

T = TypeVar("T")


@dataclass(slots=True)
class ApiRequest:
    method: str
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes | str | None = None


@dataclass(slots=True)
class RawResponse:
    status_code: int
    reason_phrase: str = ""
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes = b""
    encoding: str | None = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> RawResponse:
        return cls(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            headers=response.headers,
            content=response.content,
            encoding=response.charset_encoding,
        )


Interceptor: TypeAlias = Callable[[T], "T | Awaitable[T]"]
RequestInterceptor: TypeAlias = Callable[[ApiRequest], "ApiRequest | Awaitable[ApiRequest]"]
ResponseInterceptor: TypeAlias = Callable[[RawResponse], "RawResponse | Awaitable[RawResponse]"]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await cast(Awaitable[Any], value)
    return value


class InterceptorChain(Generic[T]):
    """Append-only, ordered list of transforms applied one after another."""

    def __init__(self) -> None:
        self._interceptors: list[Interceptor[T]] = []

    def add(self, interceptor: Interceptor[T]) -> None:
        self._interceptors.append(interceptor)

    def __len__(self) -> int:
        return len(self._interceptors)

    def __iter__(self) -> Iterator[Interceptor[T]]:
        return iter(list(self._interceptors))

    async def apply(self, value: T) -> T:
        # Each interceptor sees the previous one's output; async interceptors
        # are awaited in turn, never concurrently.
        for interceptor in list(self._interceptors):
            value = await maybe_await(interceptor(value))
        return value
