"""Progress callback types shared by batch dispatch and uploads."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from .clients.pipeline import maybe_await

# on_progress(percent) with percent in [0, 100]
UploadProgressCallback: TypeAlias = Callable[[float], "None | Awaitable[None]"]
# on_progress(completed, total)
BatchProgressCallback: TypeAlias = Callable[[int, int], "None | Awaitable[None]"]


def percent(loaded: int, total: int) -> float:
    if total <= 0:
        return 100.0
    return min(100.0, (loaded / total) * 100.0)


async def emit_progress(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    await maybe_await(callback(*args))


__all__ = ["BatchProgressCallback", "UploadProgressCallback", "emit_progress", "percent"]
