"""
WAL checkpoint sweeper.

The CheckpointSweeper periodically merges each open store's write-ahead
log into its main database file and truncates the -wal file, bounding
on-disk staging growth. It visits every handle in the StoreHandleCache
plus the catalog's own handle.

Lifecycle:
    start() launches the background loop. stop() signals the loop and
    waits for any in-progress sweep to finish; a sweep is never
    interrupted mid-cycle. The owner runs one final synchronous sweep()
    after stop() so nothing is left only in a -wal file at exit.

Invariants:
    - A failing store is logged and skipped; the sweep continues
    - Sweeps never raise into the caller or affect request serving
    - Sweeps run in a worker thread, never on the event loop
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from ..store.cache import StoreHandleCache
from ..store.handle import StoreHandle

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweep.

    Attributes:
        checkpointed: Stores fully checkpointed
        busy: Stores whose checkpoint could not complete (readers/writers active)
        failed: Stores whose checkpoint raised
        duration_ms: Wall time of the sweep
    """

    checkpointed: int = 0
    busy: int = 0
    failed: int = 0
    duration_ms: int = 0


class CheckpointSweeper:
    """Runs PRAGMA wal_checkpoint(TRUNCATE) over all open stores.

    Example:
        >>> sweeper = CheckpointSweeper(cache, catalog=directory.handle, interval_seconds=300)
        >>> await sweeper.start()
        >>> ...
        >>> await sweeper.stop()
        >>> sweeper.sweep()  # final synchronous sweep
    """

    def __init__(
        self,
        cache: StoreHandleCache,
        catalog: StoreHandle | None = None,
        interval_seconds: float = 300.0,
    ) -> None:
        """Initialize the sweeper.

        Args:
            cache: Handle cache whose stores are swept
            catalog: Catalog handle, swept alongside tenant stores
            interval_seconds: Interval between sweeps
        """
        self.cache = cache
        self.catalog = catalog
        self.interval_seconds = interval_seconds

        self._running = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._sweep_count = 0
        self._failure_count = 0

    async def start(self) -> None:
        """Start the sweeper loop in the background."""
        if self._running:
            logger.warning("Checkpoint sweeper already running")
            return

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Starting checkpoint sweeper",
            extra={"interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        """Stop the loop, waiting for an in-progress sweep to complete."""
        if not self._running:
            return

        logger.info("Stopping checkpoint sweeper")
        self._running = False
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        try:
            while self._running:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    pass
                if self._stop_event.is_set():
                    break
                await asyncio.to_thread(self.sweep)
        except Exception as e:
            logger.error(f"Checkpoint sweeper error: {e}", exc_info=True)
        finally:
            self._running = False

    def _targets(self) -> list[StoreHandle]:
        targets = self.cache.handles()
        if self.catalog is not None:
            targets.append(self.catalog)
        return targets

    def sweep(self) -> SweepResult:
        """Checkpoint every cached store and the catalog once.

        Never raises; per-store failures are logged and counted.
        """
        started = time.monotonic()
        result = SweepResult()

        for handle in self._targets():
            if handle.closed:
                continue
            try:
                outcome = handle.checkpoint()
            except Exception as e:
                result.failed += 1
                logger.error(f"Checkpoint failed for {handle.path}: {e}")
                continue
            if outcome.busy:
                result.busy += 1
                logger.warning(
                    "Checkpoint incomplete, store busy",
                    extra={"path": str(handle.path), "log_frames": outcome.log_frames},
                )
            else:
                result.checkpointed += 1

        result.duration_ms = int((time.monotonic() - started) * 1000)
        self._sweep_count += 1
        self._failure_count += result.failed
        logger.info(
            "Checkpoint sweep finished",
            extra={
                "checkpointed": result.checkpointed,
                "busy": result.busy,
                "failed": result.failed,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    @property
    def running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict[str, Any]:
        """Get sweeper statistics."""
        return {
            "running": self._running,
            "sweep_count": self._sweep_count,
            "failure_count": self._failure_count,
        }
