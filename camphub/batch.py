"""
Windowed batch dispatch of independent requests.

Jobs run in consecutive windows of `concurrency` jobs. A window's jobs run
concurrently and the next window starts only once the whole window is done,
so at most `concurrency` jobs are ever in flight. Results keep input order.

The first failure propagates: the rest of its window is cancelled and no later
window is started. Wrap a job in its own error handling if you need per-job
outcomes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeAlias, TypeVar

from .exceptions import ConfigurationError
from .progress import BatchProgressCallback, emit_progress

logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchJob: TypeAlias = Callable[[], Awaitable[T]]

DEFAULT_CONCURRENCY = 5


async def _run_window(window: Sequence[BatchJob[T]]) -> list[T]:
    tasks: list[asyncio.Future[T]] = []
    try:
        for job in window:
            tasks.append(asyncio.ensure_future(job()))
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        # Let cancelled siblings finish unwinding before propagating.
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def batch_requests(
    jobs: Sequence[BatchJob[T]],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_progress: BatchProgressCallback | None = None,
) -> list[T]:
    """
    Run `jobs` with at most `concurrency` in flight.

    Args:
        jobs: Zero-argument callables returning awaitables (e.g.
            `lambda: api.get(f"/events/{event_id}")`).
        concurrency: Window size; must be >= 1.
        on_progress: Called once per finished window as
            `on_progress(completed, total)`; may be sync or async.

    Returns:
        Results in the same order as `jobs`.

    Raises:
        ConfigurationError: `concurrency` is not a positive integer.
    """
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency <= 0:
        raise ConfigurationError(f"concurrency must be a positive integer, got {concurrency!r}")

    jobs = list(jobs)
    total = len(jobs)
    results: list[T] = []
    for start in range(0, total, concurrency):
        window = jobs[start : start + concurrency]
        results.extend(await _run_window(window))
        logger.debug(f"batch window done: {len(results)}/{total}")
        await emit_progress(on_progress, len(results), total)
    return results


__all__ = ["BatchJob", "batch_requests"]
