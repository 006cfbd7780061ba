from __future__ import annotations

import sys
from contextlib import AbstractContextManager
from dataclasses import dataclass
from types import TracebackType
from typing import Literal

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from camphub.progress import BatchProgressCallback, UploadProgressCallback

ProgressMode = Literal["auto", "always", "never"]


@dataclass(frozen=True, slots=True)
class ProgressSettings:
    mode: ProgressMode
    quiet: bool


class ProgressManager(AbstractContextManager["ProgressManager"]):
    """Rich progress bars on stderr, or silent no-op callbacks when disabled."""

    def __init__(self, *, settings: ProgressSettings):
        self._settings = settings
        self._console = Console(file=sys.stderr)
        self._progress: Progress | None = None

    def __enter__(self) -> ProgressManager:
        if self.enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                MofNCompleteColumn(),
                TimeRemainingColumn(),
                console=self._console,
                transient=True,
            )
            self._progress.__enter__()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc, tb)
        self._progress = None

    @property
    def enabled(self) -> bool:
        if self._settings.quiet:
            return False
        if self._settings.mode == "never":
            return False
        if self._settings.mode == "always":
            return True
        return sys.stderr.isatty()

    def percent_task(self, *, description: str) -> tuple[TaskID, UploadProgressCallback]:
        """Task driven by percentage updates (uploads)."""
        if not self.enabled or self._progress is None:

            def noop(_: float) -> None:
                return

            return TaskID(0), noop

        task_id = self._progress.add_task(description, total=100)

        def callback(value: float) -> None:
            if self._progress is None:
                return
            self._progress.update(task_id, completed=value)

        return task_id, callback

    def count_task(self, *, description: str, total: int) -> tuple[TaskID, BatchProgressCallback]:
        """Task driven by `(completed, total)` updates (batches)."""
        if not self.enabled or self._progress is None:

            def noop(_: int, __: int) -> None:
                return

            return TaskID(0), noop

        task_id = self._progress.add_task(description, total=total)

        def callback(completed: int, new_total: int) -> None:
            if self._progress is None:
                return
            self._progress.update(task_id, completed=completed, total=new_total)

        return task_id, callback
