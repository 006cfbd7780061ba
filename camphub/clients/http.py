"""
Async HTTP client: configuration, request execution, retries and backoff.

`AsyncApiClient.request()` runs one logical call to completion:

1. merge per-call options over `ClientConfig` defaults and build the URL
2. thread the request through the request interceptors
3. attempt the transport call under a per-attempt timeout, run the response
   interceptors, classify the status, and decode the body
4. retry server/transport failures with exponential backoff; client errors
   (4xx) surface immediately
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType, TracebackType
from typing import Any, Generic, TypeAlias, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter

from ..exceptions import (
    CampHubError,
    ConfigurationError,
    NetworkError,
    RequestTimeoutError,
    TransportError,
    error_for_status,
    is_retryable,
)
from ..hooks import log_request, log_response
from ..parsing import parse_error_body, parse_response
from .pipeline import (
    ApiRequest,
    InterceptorChain,
    RawResponse,
    RequestInterceptor,
    ResponseInterceptor,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRY = 0
DEFAULT_RETRY_DELAY = 1.0

ENV_PREFIX = "CAMPHUB_"

T = TypeVar("T")
M = TypeVar("M")

SleepFn: TypeAlias = Callable[[float], Awaitable[Any]]
QueryParams: TypeAlias = Mapping[str, Any]


# =============================================================================
# Configuration
# =============================================================================


def _maybe_load_dotenv(
    *,
    load_dotenv: bool,
    dotenv_path: str | Path | None = None,
    override: bool = False,
) -> bool:
    if not load_dotenv:
        return False
    try:
        import dotenv
    except ImportError as e:
        raise ImportError(
            "Optional .env support requires python-dotenv; install `camphub[cli]`."
        ) from e
    return bool(dotenv.load_dotenv(dotenv_path=dotenv_path, override=override))


def _validate_timing(*, timeout: float, retry: int, retry_delay: float) -> None:
    if timeout <= 0:
        raise ConfigurationError(f"timeout must be > 0 seconds, got {timeout!r}")
    if retry < 0:
        raise ConfigurationError(f"retry must be >= 0, got {retry!r}")
    if retry_delay < 0:
        raise ConfigurationError(f"retry_delay must be >= 0 seconds, got {retry_delay!r}")


def _env_number(env: Mapping[str, str], name: str, cast: Callable[[str], Any], default: Any) -> Any:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """
    Client-wide defaults. Immutable once constructed.

    Attributes:
        base_url: Base address endpoints are resolved against.
        headers: Headers sent with every request.
        timeout: Per-attempt timeout in seconds.
        retry: Number of retries after the first attempt.
        retry_delay: Backoff base in seconds; attempt n waits retry_delay * 2**n.
        log_requests: Register the request/response logging interceptors.
    """

    base_url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    retry: int = DEFAULT_RETRY
    retry_delay: float = DEFAULT_RETRY_DELAY
    log_requests: bool = False

    def __post_init__(self) -> None:
        if not self.base_url or not self.base_url.strip():
            raise ConfigurationError("base_url is required")
        _validate_timing(timeout=self.timeout, retry=self.retry, retry_delay=self.retry_delay)
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        load_dotenv: bool = False,
        dotenv_path: str | Path | None = None,
    ) -> ClientConfig:
        """
        Build a config from CAMPHUB_* environment variables.

        Reads CAMPHUB_BASE_URL (required), CAMPHUB_TIMEOUT, CAMPHUB_RETRY,
        CAMPHUB_RETRY_DELAY and CAMPHUB_LOG_REQUESTS. With `load_dotenv=True`
        a `.env` file is loaded first (existing variables win).
        """
        _maybe_load_dotenv(load_dotenv=load_dotenv, dotenv_path=dotenv_path)
        env = os.environ if environ is None else environ

        base_url = env.get(f"{ENV_PREFIX}BASE_URL", "").strip()
        if not base_url:
            raise ConfigurationError(f"{ENV_PREFIX}BASE_URL is not set")
        log_requests = env.get(f"{ENV_PREFIX}LOG_REQUESTS", "").strip().lower() in {
            "1",
            "true",
            "yes",
            "on",
        }
        return cls(
            base_url=base_url,
            timeout=_env_number(env, f"{ENV_PREFIX}TIMEOUT", float, DEFAULT_TIMEOUT),
            retry=_env_number(env, f"{ENV_PREFIX}RETRY", int, DEFAULT_RETRY),
            retry_delay=_env_number(env, f"{ENV_PREFIX}RETRY_DELAY", float, DEFAULT_RETRY_DELAY),
            log_requests=log_requests,
        )


@dataclass(frozen=True, slots=True)
class RequestOptions:
    """Per-call overrides. `None` fields fall back to the client's `ClientConfig`."""

    method: str = "GET"
    headers: Mapping[str, str] | None = None
    body: Any | None = None
    params: QueryParams | None = None
    timeout: float | None = None
    retry: int | None = None
    retry_delay: float | None = None


@dataclass(frozen=True, slots=True)
class ApiResponse(Generic[T]):
    data: T
    status: int
    status_text: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)

    def parse(self, model: type[M]) -> M:
        """Validate `data` into `model` (a pydantic model or any type pydantic accepts)."""
        return TypeAdapter(model).validate_python(self.data)


# =============================================================================
# URL and body helpers
# =============================================================================


def format_param(value: Any) -> str:
    """Render a scalar the way query strings and form fields expect it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_params(params: QueryParams | None) -> list[tuple[str, str]]:
    """
    Flatten query params into ordered pairs.

    Lists and tuples repeat the key once per element; None values are dropped.
    """
    pairs: list[tuple[str, str]] = []
    if not params:
        return pairs
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, format_param(item)) for item in value if item is not None)
        else:
            pairs.append((key, format_param(value)))
    return pairs


def with_params(url: str | httpx.URL, params: QueryParams | None) -> str:
    """Append `params` after any query string already present in `url`."""
    target = httpx.URL(url)
    pairs = encode_params(params)
    if pairs:
        target = target.copy_with(params=[*target.params.multi_items(), *pairs])
    return str(target)


def build_url(base_url: str, endpoint: str, params: QueryParams | None = None) -> str:
    """Resolve `endpoint` against `base_url` and append `params` to its query."""
    return with_params(httpx.URL(base_url).join(endpoint), params)


def backoff_delay(retry_delay: float, attempt: int) -> float:
    """Delay before the retry that follows 0-indexed `attempt`."""
    return retry_delay * (2**attempt)


def json_body(data: Any) -> str:
    if isinstance(data, BaseModel):
        return data.model_dump_json(by_alias=True)
    return json.dumps(data)


# =============================================================================
# Client
# =============================================================================


class AsyncApiClient:
    """
    Async HTTP client with interceptors, per-attempt timeouts and retries.

    Example:
        ```python
        config = ClientConfig(base_url="https://api.example.org", retry=2)
        async with AsyncApiClient(config) as api:
            members = await api.get("/members", params={"page": 1})
            created = await api.post("/members", {"name": "Robin"})
        ```

    Args:
        config: Client-wide defaults.
        transport: Optional httpx transport (e.g. `httpx.MockTransport` in tests).
        http_client: Optional pre-built `httpx.AsyncClient`; not closed by `aclose()`.
        sleep: Coroutine used for backoff delays.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(transport=transport, follow_redirects=True)
        self._sleep = sleep
        self._request_interceptors: InterceptorChain[ApiRequest] = InterceptorChain()
        self._response_interceptors: InterceptorChain[RawResponse] = InterceptorChain()
        if config.log_requests:
            self.add_request_interceptor(log_request)
            self.add_response_interceptor(log_response)

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def __aenter__(self) -> AsyncApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    # =========================================================================
    # Interceptors
    # =========================================================================

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> None:
        """Append a request transform; runs once per call, in registration order."""
        self._request_interceptors.add(interceptor)

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> None:
        """Append a response transform; runs on every attempt's raw response."""
        self._response_interceptors.add(interceptor)

    # =========================================================================
    # Verbs
    # =========================================================================

    async def get(self, endpoint: str, **options: Any) -> ApiResponse[Any]:
        return await self.request(endpoint, method="GET", **options)

    async def delete(self, endpoint: str, **options: Any) -> ApiResponse[Any]:
        return await self.request(endpoint, method="DELETE", **options)

    async def post(self, endpoint: str, data: Any = None, **options: Any) -> ApiResponse[Any]:
        return await self._request_with_json("POST", endpoint, data, options)

    async def put(self, endpoint: str, data: Any = None, **options: Any) -> ApiResponse[Any]:
        return await self._request_with_json("PUT", endpoint, data, options)

    async def patch(self, endpoint: str, data: Any = None, **options: Any) -> ApiResponse[Any]:
        return await self._request_with_json("PATCH", endpoint, data, options)

    async def _request_with_json(
        self, method: str, endpoint: str, data: Any, options: dict[str, Any]
    ) -> ApiResponse[Any]:
        # Caller-supplied headers (including Content-Type) win.
        headers = httpx.Headers({"Content-Type": "application/json"})
        headers.update(options.pop("headers", None) or {})
        body = None if data is None else json_body(data)
        return await self.request(endpoint, method=method, headers=headers, body=body, **options)

    # =========================================================================
    # Execution
    # =========================================================================

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        body: bytes | str | None = None,
        params: QueryParams | None = None,
        timeout: float | None = None,
        retry: int | None = None,
        retry_delay: float | None = None,
    ) -> ApiResponse[Any]:
        """
        Execute a request, retrying server and transport failures.

        Args:
            endpoint: Path (or absolute URL) resolved against `config.base_url`.
            method: HTTP method.
            headers: Extra headers merged over the config headers.
            body: Raw request body.
            params: Query params; lists repeat the key, None values are omitted.
            timeout: Per-attempt timeout override (seconds).
            retry: Retry count override.
            retry_delay: Backoff base override (seconds).

        Returns:
            The decoded `ApiResponse`.

        Raises:
            APIError: Non-2xx status (immediately for 4xx, after retries for 5xx).
            TransportError: Network failure, timeout or undecodable body after retries.
        """
        options = RequestOptions(
            method=method,
            headers=headers,
            body=body,
            params=params,
            timeout=timeout,
            retry=retry,
            retry_delay=retry_delay,
        )
        return await self.send(endpoint, options)

    async def send(self, endpoint: str, options: RequestOptions) -> ApiResponse[Any]:
        """Execute a request described by a `RequestOptions` instance."""
        cfg = self._config
        timeout = cfg.timeout if options.timeout is None else options.timeout
        retry = cfg.retry if options.retry is None else options.retry
        retry_delay = cfg.retry_delay if options.retry_delay is None else options.retry_delay
        _validate_timing(timeout=timeout, retry=retry, retry_delay=retry_delay)

        headers = httpx.Headers(cfg.headers)
        headers.update(options.headers or {})
        request = ApiRequest(
            method=options.method.upper(),
            url=build_url(cfg.base_url, endpoint, options.params),
            headers=headers,
            content=options.body,
        )
        request = await self._request_interceptors.apply(request)

        attempt = 0
        while True:
            try:
                return await self._attempt(request, timeout)
            except CampHubError as e:
                if not is_retryable(e):
                    raise
                if attempt >= retry:
                    if retry:
                        logger.debug(
                            f"{request.method} {request.url} failed after {attempt + 1} attempts: {e}"
                        )
                    raise
                delay = backoff_delay(retry_delay, attempt)
                logger.warning(
                    f"{request.method} {request.url} failed ({e}); "
                    f"retrying in {delay:.2f}s (attempt {attempt + 2}/{retry + 1})"
                )
                await self._sleep(delay)
                attempt += 1

    async def _attempt(self, request: ApiRequest, timeout: float) -> ApiResponse[Any]:
        raw = await self._transport_call(request, timeout)
        try:
            raw = await self._response_interceptors.apply(raw)
        except CampHubError:
            raise
        except Exception as e:
            raise TransportError(f"Response interceptor failed: {e}", cause=e) from e

        if not raw.is_success:
            raise error_for_status(raw.status_code, raw.reason_phrase, parse_error_body(raw))

        return ApiResponse(
            data=parse_response(raw),
            status=raw.status_code,
            status_text=raw.reason_phrase,
            headers=raw.headers,
        )

    async def _transport_call(self, request: ApiRequest, timeout: float) -> RawResponse:
        http_request = self._client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.content,
            timeout=timeout,
        )
        # The deadline is scoped to this attempt only.
        try:
            response = await asyncio.wait_for(self._client.send(http_request), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutError(
                f"{request.method} {request.url} timed out after {timeout:g}s", cause=e
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(f"{request.method} {request.url} failed: {e}", cause=e) from e
        return RawResponse.from_httpx(response)


__all__ = [
    "ApiResponse",
    "AsyncApiClient",
    "ClientConfig",
    "RequestOptions",
    "backoff_delay",
    "build_url",
    "encode_params",
    "format_param",
    "with_params",
]
