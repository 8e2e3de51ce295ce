"""
Reconcile work queue.

Keys of ConfigMirrors to reconcile are queued here and processed by a fixed
number of asyncio workers. A key is never processed by two workers at once;
adding a key that is already waiting is a no-op, and adding a key that is
being processed schedules one more pass after the current one. Failed passes
are re-queued with per-key exponential backoff.
"""

import asyncio
from typing import Dict, List, Optional, Set

from common.logging_config import get_logger, with_context
from controller.config import (
    MAX_CONCURRENT_RECONCILES,
    RECONCILE_BACKOFF_BASE_SECONDS,
    RECONCILE_BACKOFF_MAX_SECONDS,
)
from controller.events import NORMAL, WARNING
from controller.exceptions import ConfigMirrorException, DefinitionNotFoundError
from controller.reconciler import Reconciler
from controller.replication.engine import ApplyOutcome
from controller.types import ObjectKey

logger = get_logger(__name__)


class ReconcileQueue:
    """
    Deduplicating work queue feeding the reconciler.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        recorder=None,
        workers: int = MAX_CONCURRENT_RECONCILES,
        backoff_base: float = RECONCILE_BACKOFF_BASE_SECONDS,
        backoff_max: float = RECONCILE_BACKOFF_MAX_SECONDS
    ):
        self.reconciler = reconciler
        self.recorder = recorder
        self.workers = max(1, workers)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: List[asyncio.Task] = []
        self._queued: Set[ObjectKey] = set()
        self._processing: Set[ObjectKey] = set()
        self._dirty: Set[ObjectKey] = set()
        self._failures: Dict[ObjectKey, int] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._running:
            logger.warning("Reconcile queue already running")
            return

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._running = True
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.workers)]
        logger.info(f"Started reconcile queue with {self.workers} workers")

    async def stop(self) -> None:
        """Cancel the worker tasks and wait for them to finish."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Stopped reconcile queue")

    def add(self, key: ObjectKey) -> None:
        """Queue a key. Must be called from the event loop thread."""
        if not self._running:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def add_threadsafe(self, key: ObjectKey) -> None:
        """Queue a key from a watcher thread."""
        if self._loop is None or not self._running:
            return
        self._loop.call_soon_threadsafe(self.add, key)

    def add_after(self, key: ObjectKey, delay: float) -> None:
        self._loop.call_later(delay, self.add, key)

    def backoff(self, key: ObjectKey) -> float:
        """Record a failure and return the delay before the next attempt."""
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        return min(self.backoff_base * (2 ** (failures - 1)), self.backoff_max)

    def forget(self, key: ObjectKey) -> None:
        self._failures.pop(key, None)

    def failures(self, key: ObjectKey) -> int:
        return self._failures.get(key, 0)

    async def join(self) -> None:
        """Wait until every queued key has been processed once."""
        await self._queue.join()

    async def _worker(self, worker_id: int) -> None:
        while self._running:
            try:
                key = await self._queue.get()
            except asyncio.CancelledError:
                break

            self._queued.discard(key)
            self._processing.add(key)
            try:
                await self._process(key)
            except asyncio.CancelledError:
                break
            finally:
                self._processing.discard(key)
                self._queue.task_done()
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.add(key)

    async def _process(self, key: ObjectKey) -> None:
        log = with_context(logger, str(key))

        try:
            result = await asyncio.to_thread(self.reconciler.reconcile, key, log)
        except DefinitionNotFoundError as e:
            log.info(f"Dropping work item: {e}")
            self.forget(key)
            return
        except ConfigMirrorException as e:
            delay = self.backoff(key)
            log.error(f"Reconcile failed, retrying in {delay:.1f}s: {e}")
            await self._record(key, WARNING, "ReconcileFailed", str(e))
            self.add_after(key, delay)
            return
        except Exception as e:
            delay = self.backoff(key)
            log.error(f"Unexpected reconcile error, retrying in {delay:.1f}s: {e}", exc_info=True)
            await self._record(key, WARNING, "ReconcileFailed", str(e))
            self.add_after(key, delay)
            return

        self.forget(key)
        changed = result.count(ApplyOutcome.CREATED) + result.count(ApplyOutcome.UPDATED)
        if changed:
            await self._record(
                key, NORMAL, "Replicated",
                f"Replicated {changed} ConfigMaps from {result.matched} matching sources"
            )

    async def _record(self, key: ObjectKey, event_type: str, reason: str, message: str) -> None:
        if self.recorder is not None:
            await asyncio.to_thread(self.recorder.record, key, event_type, reason, message)
