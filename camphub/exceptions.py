"""
Exception hierarchy for the camphub HTTP client.

Failures fall into two families:

- `APIError`: the server answered with a non-2xx status. Carries the status
  code, status text and the decoded error body (when there was one).
  Client errors (400-499) are terminal; everything else may be retried.
- `TransportError`: no usable HTTP answer (network failure, attempt timeout,
  or a successful response whose body could not be decoded). Always
  retry-eligible.

All classes support structural pattern matching:

    try:
        await client.get("/members/42")
    except CampHubError as exc:
        match exc:
            case NotFoundError():
                ...
            case APIError(status_code=status) if status >= 500:
                ...
            case TransportError(cause=cause):
                ...
"""

from __future__ import annotations

from typing import Any


class CampHubError(Exception):
    """Base class for every error raised by camphub."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigurationError(CampHubError, ValueError):
    """Invalid client or call configuration; raised before any I/O."""


# =============================================================================
# HTTP status failures
# =============================================================================


class APIError(CampHubError):
    """The server responded with a non-success status."""

    __match_args__ = ("status_code", "status_text", "body")

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        status_text: str = "",
        body: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text
        self.body = body

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def retryable(self) -> bool:
        return not self.is_client_error

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status_code={self.status_code}, status_text={self.status_text!r})"
        )


class BadRequestError(APIError):
    """400 Bad Request."""


class AuthenticationError(APIError):
    """401 Unauthorized."""


class AuthorizationError(APIError):
    """403 Forbidden."""


class NotFoundError(APIError):
    """404 Not Found."""


class ConflictError(APIError):
    """409 Conflict."""


class UnprocessableEntityError(APIError):
    """422 Unprocessable Entity."""


class RateLimitError(APIError):
    """429 Too Many Requests. Still a client error, so it is not retried."""


class ServerError(APIError):
    """5xx server failure."""


_STATUS_ERRORS: dict[int, type[APIError]] = {
    400: BadRequestError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    422: UnprocessableEntityError,
    429: RateLimitError,
}


def error_message_from_body(body: Any, status_text: str) -> str:
    """Pick a human-readable message from a decoded error body."""
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if value:
                return str(value)
    return status_text or "An error occurred"


def error_for_status(
    status_code: int,
    status_text: str = "",
    body: Any | None = None,
    *,
    message: str | None = None,
) -> APIError:
    """Build the `APIError` subclass matching `status_code`."""
    if message is None:
        message = error_message_from_body(body, status_text)
    cls = _STATUS_ERRORS.get(status_code)
    if cls is None:
        cls = ServerError if status_code >= 500 else APIError
    return cls(message, status_code=status_code, status_text=status_text, body=body)


# =============================================================================
# Transport failures
# =============================================================================


class TransportError(CampHubError):
    """The request produced no usable HTTP response."""

    __match_args__ = ("cause",)

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, cause={self.cause!r})"


class NetworkError(TransportError):
    """Connection-level failure (DNS, refused connection, reset, ...)."""


class RequestTimeoutError(TransportError):
    """An attempt did not complete within its timeout."""


class ResponseDecodeError(TransportError):
    """A successful response carried a body that could not be decoded."""


def is_retryable(exc: BaseException) -> bool:
    """Return True when another attempt may succeed after `exc`."""
    if isinstance(exc, APIError):
        return exc.retryable
    return isinstance(exc, TransportError)


__all__ = [
    "APIError",
    "AuthenticationError",
    "AuthorizationError",
    "BadRequestError",
    "CampHubError",
    "ConfigurationError",
    "ConflictError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "RequestTimeoutError",
    "ResponseDecodeError",
    "ServerError",
    "TransportError",
    "UnprocessableEntityError",
    "error_for_status",
    "error_message_from_body",
    "is_retryable",
]
