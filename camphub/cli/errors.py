from __future__ import annotations

from typing import Any


class CLIError(Exception):
    def __init__(
        self,
        message: str,
        *,
        exit_code: int = 1,
        error_type: str = "error",
        hint: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.error_type = error_type
        self.hint = hint
        self.details = details

    def __str__(self) -> str:  # pragma: no cover
        return self.message


def usage_error(message: str, *, hint: str | None = None) -> CLIError:
    return CLIError(message, exit_code=2, error_type="usage_error", hint=hint)
