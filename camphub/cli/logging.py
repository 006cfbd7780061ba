"""
CLI logging setup.

Logs go to stderr through rich (level chosen by -v) and, optionally, to a file.
Bearer tokens are scrubbed from every record before it is emitted.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_BEARER_RE = re.compile(r"(Bearer\s+)[^\s'\"]+", re.IGNORECASE)

_redaction_token: str | None = None


def set_redaction_token(token: str | None) -> None:
    """Also scrub this literal token value wherever it appears."""
    global _redaction_token
    _redaction_token = token or None


def redact(text: str) -> str:
    text = _BEARER_RE.sub(r"\1[REDACTED]", text)
    if _redaction_token:
        text = text.replace(_redaction_token, "[REDACTED]")
    return text


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


@dataclass(frozen=True, slots=True)
class LoggingState:
    level: int
    handlers: list[logging.Handler]


def _level_for(verbosity: int) -> int:
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def configure_logging(
    *,
    verbosity: int,
    log_file: Path | None = None,
    trace: bool = False,
) -> LoggingState:
    """Install handlers on the `camphub` logger; returns the state to restore."""
    root = logging.getLogger("camphub")
    previous = LoggingState(level=root.level, handlers=list(root.handlers))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    level = _level_for(verbosity)
    if trace:
        level = min(level, logging.INFO)
    root.setLevel(level)

    redactor = RedactingFilter()
    console = RichHandler(
        console=Console(file=sys.stderr),
        show_time=False,
        show_path=False,
        markup=False,
    )
    console.setLevel(level)
    console.addFilter(redactor)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        file_handler.addFilter(redactor)
        root.addHandler(file_handler)
        root.setLevel(logging.DEBUG)

    return previous


def restore_logging(state: LoggingState) -> None:
    root = logging.getLogger("camphub")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in state.handlers:
        root.addHandler(handler)
    root.setLevel(state.level)
