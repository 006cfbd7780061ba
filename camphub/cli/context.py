from __future__ import annotations

import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from camphub.client import create_authenticated_client
from camphub.clients.http import (
    DEFAULT_RETRY,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    ENV_PREFIX,
    AsyncApiClient,
    ClientConfig,
    _env_number,
    _maybe_load_dotenv,
)
from camphub.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    CampHubError,
    ConfigurationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ResponseDecodeError,
    ServerError,
)

from .errors import CLIError, usage_error
from .logging import set_redaction_token
from .results import CommandMeta, CommandResult, ErrorInfo

OutputFormat = Literal["table", "json"]


@dataclass(frozen=True, slots=True)
class ClientSettings:
    base_url: str
    token: str | None
    timeout: float
    retry: int
    retry_delay: float
    log_requests: bool


@dataclass
class CLIContext:
    output: OutputFormat
    quiet: bool
    verbosity: int
    progress: Literal["auto", "always", "never"]
    dotenv: bool
    env_file: Path
    base_url: str | None
    token: str | None
    timeout: float | None
    retry: int | None
    retry_delay: float | None
    trace: bool

    def load_dotenv_if_requested(self) -> None:
        try:
            _maybe_load_dotenv(load_dotenv=self.dotenv, dotenv_path=self.env_file, override=False)
        except ImportError as exc:
            raise CLIError(
                "Optional .env support requires python-dotenv; install `camphub[cli]`.",
                exit_code=2,
                error_type="usage_error",
            ) from exc

    def resolve_base_url(self) -> str:
        base_url = (self.base_url or os.getenv("CAMPHUB_BASE_URL", "")).strip()
        if not base_url:
            raise usage_error(
                "Missing base URL.",
                hint="Pass --base-url or set CAMPHUB_BASE_URL.",
            )
        if not base_url.startswith(("http://", "https://")):
            raise usage_error("Base URL must start with http:// or https://")
        return base_url

    def resolve_token(self) -> str | None:
        token = (self.token or os.getenv("CAMPHUB_TOKEN", "")).strip()
        return token or None

    def resolve_client_settings(self) -> ClientSettings:
        self.load_dotenv_if_requested()
        base_url = self.resolve_base_url()
        token = self.resolve_token()
        set_redaction_token(token)

        if self.timeout is not None:
            timeout = self.timeout
        else:
            timeout = _env_setting("TIMEOUT", float, DEFAULT_TIMEOUT)
        retry = self.retry if self.retry is not None else _env_setting("RETRY", int, DEFAULT_RETRY)
        if self.retry_delay is not None:
            retry_delay = self.retry_delay
        else:
            retry_delay = _env_setting("RETRY_DELAY", float, DEFAULT_RETRY_DELAY)
        return ClientSettings(
            base_url=base_url,
            token=token,
            timeout=timeout,
            retry=retry,
            retry_delay=retry_delay,
            log_requests=self.trace or self.verbosity >= 2,
        )

    def build_client(self) -> AsyncApiClient:
        """Build a fresh client; call from inside the event loop that will use it."""
        settings = self.resolve_client_settings()
        try:
            config = ClientConfig(
                base_url=settings.base_url,
                timeout=settings.timeout,
                retry=settings.retry,
                retry_delay=settings.retry_delay,
                log_requests=settings.log_requests,
            )
        except ConfigurationError as exc:
            raise usage_error(str(exc)) from exc
        return create_authenticated_client(config, lambda: settings.token)


def _env_setting(suffix: str, cast: Callable[[str], Any], default: Any) -> Any:
    """Read CAMPHUB_<suffix> the same way `ClientConfig.from_env` does."""
    try:
        return _env_number(os.environ, f"{ENV_PREFIX}{suffix}", cast, default)
    except ConfigurationError as exc:
        raise usage_error(str(exc)) from exc


def exit_code_for_exception(exc: Exception) -> int:
    if isinstance(exc, CLIError):
        return exc.exit_code
    if isinstance(exc, ConfigurationError):
        return 2
    if isinstance(exc, (AuthenticationError, AuthorizationError)):
        return 3
    if isinstance(exc, NotFoundError):
        return 4
    if isinstance(exc, (RateLimitError, ServerError)):
        return 5
    return 1


def _error_type(exc: Exception) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, AuthenticationError):
        return "auth_error"
    if isinstance(exc, AuthorizationError):
        return "forbidden"
    if isinstance(exc, RateLimitError):
        return "rate_limited"
    if isinstance(exc, ServerError):
        return "server_error"
    if isinstance(exc, APIError):
        return "api_error"
    if isinstance(exc, RequestTimeoutError):
        return "timeout"
    if isinstance(exc, ResponseDecodeError):
        return "decode_error"
    if isinstance(exc, NetworkError):
        return "network_error"
    if isinstance(exc, ConfigurationError):
        return "config_error"
    if isinstance(exc, CampHubError):
        return "api_error"
    return "internal_error"


def error_info_for_exception(exc: Exception, *, verbosity: int = 0) -> ErrorInfo:
    if isinstance(exc, CLIError):
        return ErrorInfo(
            type=exc.error_type, message=exc.message, hint=exc.hint, details=exc.details
        )
    if isinstance(exc, APIError):
        details: dict[str, Any] | None = None
        if exc.body is not None:
            details = {"body": exc.body}
        return ErrorInfo(
            type=_error_type(exc),
            message=str(exc),
            status=exc.status_code,
            details=details,
        )
    details = None
    if verbosity >= 1 and isinstance(exc, CampHubError) and getattr(exc, "cause", None):
        details = {"cause": repr(exc.cause)}  # type: ignore[attr-defined]
    return ErrorInfo(type=_error_type(exc), message=str(exc), details=details)


def build_result(
    *,
    ok: bool,
    command: str,
    started_at: float,
    data: Any | None,
    warnings: list[str],
    base_url: str | None = None,
    status: int | None = None,
    progress: dict[str, Any] | None = None,
    error: ErrorInfo | None = None,
) -> CommandResult:
    duration_ms = int(max(0.0, (time.time() - started_at) * 1000))
    meta = CommandMeta(
        duration_ms=duration_ms,
        base_url=base_url,
        status=status,
        progress=progress,
    )
    return CommandResult(
        ok=ok,
        command=command,
        data=data,
        warnings=warnings,
        meta=meta,
        error=error,
    )
