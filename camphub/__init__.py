"""
camphub: HTTP client for the community site API.

Async client with per-attempt timeouts, retries with exponential backoff,
request/response interceptors, typed errors, windowed batch dispatch and
progress-reporting uploads.

Example:
    ```python
    from camphub import ClientConfig, create_authenticated_client

    api = create_authenticated_client(
        ClientConfig(base_url="https://api.example.org", retry=2),
        lambda: session.token,
    )
    async with api:
        events = await api.get("/events", params={"season": 2026})
    ```
"""

from __future__ import annotations

from .batch import batch_requests
from .client import bearer_token_interceptor, create_authenticated_client, fetch_json
from .clients.http import (
    ApiResponse,
    AsyncApiClient,
    ClientConfig,
    RequestOptions,
    backoff_delay,
)
from .clients.pipeline import ApiRequest, RawResponse
from .exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    CampHubError,
    ConfigurationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ResponseDecodeError,
    ServerError,
    TransportError,
    UnprocessableEntityError,
)
from .uploads import upload_file

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Client
    "AsyncApiClient",
    "ClientConfig",
    "RequestOptions",
    "ApiResponse",
    "ApiRequest",
    "RawResponse",
    "backoff_delay",
    "create_authenticated_client",
    "bearer_token_interceptor",
    "fetch_json",
    # Batch / upload
    "batch_requests",
    "upload_file",
    # Exceptions
    "CampHubError",
    "ConfigurationError",
    "APIError",
    "BadRequestError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "UnprocessableEntityError",
    "RateLimitError",
    "ServerError",
    "TransportError",
    "NetworkError",
    "RequestTimeoutError",
    "ResponseDecodeError",
]
