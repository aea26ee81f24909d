"""Decides when drain passes run and publishes the resulting sync status."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, Set

from core.logging_setup import get_logger
from core.settings import SYNC
from models.sync_status import SyncStatus
from services.action_queue import ActionQueueStore
from services.connectivity import ConnectivityOracle, ConnectivityStatus
from services.queue_processor import SYNC_FAILED_ERROR, DrainReport, QueueProcessor
from services.scheduler import AsyncioScheduler, ScheduledTask, Scheduler


StatusListener = Callable[[SyncStatus], None]

IDLE_POLL_SEC = 0.01


class SyncOrchestrator:
    """Triggers drain passes and owns the published :class:`SyncStatus`.

    Passes start on an offline-to-online transition, on every scheduler
    tick and on :meth:`sync_now`. At most one pass runs at a time; a trigger
    that arrives while a pass is in flight is dropped.
    """

    def __init__(
        self,
        processor: QueueProcessor,
        queue: ActionQueueStore,
        connectivity: ConnectivityOracle,
        *,
        scheduler: Optional[Scheduler] = None,
        interval_sec: float = SYNC.auto_sync_interval_sec,
        max_recent_errors: int = SYNC.max_recent_errors,
    ) -> None:
        self.processor = processor
        self.queue = queue
        self.connectivity = connectivity
        self.scheduler = scheduler or AsyncioScheduler()
        self.interval_sec = interval_sec
        self.max_recent_errors = max_recent_errors
        self._status = SyncStatus()
        self._online: Optional[bool] = None
        self._listeners: List[StatusListener] = []
        self._periodic: Optional[ScheduledTask] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._background: Set[asyncio.Future] = set()
        self.logger = get_logger("orchestrator")

    # ------------------------------------------------------------------
    # Status
    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def is_syncing(self) -> bool:
        return self._status.is_syncing

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _publish(self, **changes) -> None:
        self._status = replace(self._status, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._status)
            except Exception as exc:
                self.logger.error("Sync status listener failed: %s", exc)

    async def refresh_status(self) -> SyncStatus:
        pending = await self.queue.count()
        last_sync = await self.processor.last_sync_time()
        self._publish(pending_action_count=pending, last_sync_timestamp=last_sync)
        return self._status

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.connectivity.subscribe(self._on_connectivity)
        self._periodic = self.scheduler.call_every(self.interval_sec, self._on_tick)
        status = await self.connectivity.current_status()
        await self.refresh_status()
        self._on_connectivity(status)
        self.logger.info("Auto-sync started (every %ss)", self.interval_sec)

    async def stop(self) -> None:
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.wait_idle()
        self.logger.info("Auto-sync stopped")

    async def wait_idle(self) -> None:
        """Wait until no drain pass is running.

        Covers passes started by connectivity events and timer ticks as well
        as a :meth:`sync_now` awaited by someone else.
        """

        while self._background or self._status.is_syncing:
            if self._background:
                await asyncio.gather(*list(self._background), return_exceptions=True)
            else:
                await asyncio.sleep(IDLE_POLL_SEC)

    # ------------------------------------------------------------------
    # Triggers
    def _on_connectivity(self, status: ConnectivityStatus) -> None:
        was_online = self._online
        self._online = status.online
        self._publish(is_online=status.online)
        if status.online and not was_online:
            self.logger.info("Connectivity restored, scheduling sync")
            self._spawn(self.sync_now())

    async def _on_tick(self) -> None:
        # The scheduler cancels its loop on stop(); the pass itself runs to
        # completion and stop() waits for it.
        future = self._spawn(self.sync_now())
        await asyncio.shield(future)

    def _spawn(self, coro: Awaitable[Optional[DrainReport]]) -> asyncio.Future:
        future = asyncio.ensure_future(coro)
        self._background.add(future)
        future.add_done_callback(self._background.discard)
        return future

    async def sync_now(self) -> Optional[DrainReport]:
        """Run one drain pass unless one is already running.

        Returns the pass report, or ``None`` when the call was skipped.
        """

        if self._status.is_syncing:
            self.logger.debug("Sync already in progress, skipping trigger")
            return None

        self._publish(is_syncing=True, recent_errors=())
        errors: List[str] = []
        report: Optional[DrainReport] = None
        try:
            report = await self.processor.drain()
            errors.extend(report.errors)
            self._online = not report.skipped_offline
            self._publish(is_online=self._online)
        except Exception as exc:
            self.logger.error("Error during sync: %s", exc)
            errors.append(SYNC_FAILED_ERROR)
        finally:
            try:
                await self.refresh_status()
            except Exception as exc:
                self.logger.error("Error updating sync status: %s", exc)
            self._publish(
                is_syncing=False,
                recent_errors=tuple(errors[-self.max_recent_errors:]),
            )
        return report

    async def clear_queue(self) -> None:
        try:
            await self.queue.clear()
        except Exception as exc:
            self.logger.error("Error clearing sync queue: %s", exc)
        await self.refresh_status()


__all__ = ["StatusListener", "SyncOrchestrator"]
