"""Periodic purge of expired in-memory entries.

The in-memory store and lock provider drop expired entries lazily when they
are touched. Keys that are never touched again would stay in memory, so a
background task sweeps them at a fixed interval. Networked backends expire
entries themselves and do not need this.

Examples:
    Start the purge task with the application::

        from request_dedup.core.cleanup import start_cleanup_task, stop_cleanup_task

        task = await start_cleanup_task([cache, locks], interval_seconds=300)
        ...
        await stop_cleanup_task(task)
"""

import asyncio
from typing import Protocol, runtime_checkable

from request_dedup.observability.logging import get_logger
from request_dedup.observability.metrics import record_purge

logger = get_logger(__name__)


@runtime_checkable
class Purgeable(Protocol):
    """Anything that can drop its expired entries on demand."""

    def purge_expired(self) -> int: ...


def purge_once(targets: list[Purgeable]) -> int:
    """Purge every target once.

    Returns:
        Total number of entries removed.
    """
    removed = sum(target.purge_expired() for target in targets)
    record_purge(removed)
    return removed


async def cleanup_loop(
    targets: list[Purgeable],
    interval_seconds: float = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Purge targets every interval_seconds until stop_event is set.

    A failing purge is logged and retried on the next interval.
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    logger.info("cleanup.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        try:
            count = purge_once(targets)
            if count > 0:
                logger.info("cleanup.completed", entries_removed=count)
            else:
                logger.debug("cleanup.completed", entries_removed=0)
        except Exception as e:
            logger.error("cleanup.failed", error=str(e), error_type=type(e).__name__)

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("cleanup.stopped")


async def start_cleanup_task(
    targets: list[Purgeable],
    interval_seconds: float = 300,
) -> asyncio.Task[None]:
    """Start the purge loop as a background task.

    Returns:
        The running task; pass it to stop_cleanup_task on shutdown.
    """
    stop_event = asyncio.Event()
    task = asyncio.create_task(
        cleanup_loop(targets=targets, interval_seconds=interval_seconds, stop_event=stop_event)
    )
    task._stop_event = stop_event  # type: ignore[attr-defined]
    return task


async def stop_cleanup_task(task: asyncio.Task[None]) -> None:
    """Signal the purge loop to stop and wait for it, cancelling if it hangs."""
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)
    if stop_event:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=5.0)
    except asyncio.TimeoutError:
        logger.warning("cleanup.stop_timeout", message="Cleanup task did not stop in time")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("cleanup.cancelled")
