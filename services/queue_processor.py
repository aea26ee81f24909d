from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from core.logging_setup import get_logger
from core.settings import SYNC
from datetime_utils import epoch_ms
from models.queued_action import ActionKind, QueuedAction
from services.action_queue import ActionQueueStore
from services.action_replay import ActionReplayer
from services.connectivity import ConnectivityOracle
from services.hazard_reports import REPORT_FAILED_TITLE
from services.notifications import LoggingNotifier, Notifier
from services.retry_policy import Remove, RemoveWithUserNotice, Requeue, decide
from services.sync_errors import AttemptOutcome, classify_exception


UPLOAD_FAILED_TITLE = "Upload Failed"
SYNC_FAILED_ERROR = "Sync failed"


@dataclass
class DrainReport:
    skipped_offline: bool = False
    attempted: int = 0
    delivered: List[str] = field(default_factory=list)
    requeued: List[str] = field(default_factory=list)
    evicted: List[str] = field(default_factory=list)
    dropped_invalid: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    finished_at: Optional[int] = None

    @property
    def terminated(self) -> Set[str]:
        return set(self.delivered) | set(self.evicted) | set(self.dropped_invalid)


class QueueProcessor:
    """Runs drain passes of the offline queue against the remote store."""

    def __init__(
        self,
        queue: ActionQueueStore,
        replayer: ActionReplayer,
        connectivity: ConnectivityOracle,
        *,
        notifier: Optional[Notifier] = None,
        max_retries: int = SYNC.max_retries,
        last_sync_key: str = SYNC.last_sync_key,
        clock=epoch_ms,
    ) -> None:
        self.queue = queue
        self.replayer = replayer
        self.connectivity = connectivity
        self.notifier = notifier or LoggingNotifier()
        self.max_retries = max_retries
        self.last_sync_key = last_sync_key
        self._clock = clock
        self.logger = get_logger("processor")

    async def is_online(self) -> bool:
        try:
            status = await self.connectivity.current_status()
        except Exception as exc:
            self.logger.warning("Error checking internet connection: %s", exc)
            return False
        return status.online

    async def drain(self) -> DrainReport:
        report = DrainReport()
        if not await self.is_online():
            self.logger.info("No internet connection, skipping sync")
            report.skipped_offline = True
            return report

        snapshot = await self.queue.read_all()
        updated: Dict[str, QueuedAction] = {}
        for action in snapshot:
            report.attempted += 1
            outcome = await self._attempt(action)
            decision = decide(outcome, action.retry_count, self.max_retries)
            if isinstance(decision, Requeue):
                updated[action.id] = action.with_retry_count(decision.retry_count)
                report.requeued.append(action.id)
            elif isinstance(decision, RemoveWithUserNotice):
                report.dropped_invalid.append(action.id)
                report.errors.append(decision.message)
                self.logger.warning("Dropping invalid action %s", action.id)
                self._notify(action, decision.message)
            elif isinstance(decision, Remove):
                if outcome is AttemptOutcome.SUCCESS:
                    report.delivered.append(action.id)
                else:
                    report.evicted.append(action.id)
                    self.logger.info("Max retries exceeded for action %s, removing from queue", action.id)

        try:
            await self._write_back(report.terminated, updated)
        except Exception as exc:
            self.logger.error("Error writing back offline queue: %s", exc)
            report.errors.append(SYNC_FAILED_ERROR)

        report.finished_at = int(self._clock())
        try:
            await self.queue.store.set(self.last_sync_key, report.finished_at)
        except Exception as exc:
            self.logger.error("Error recording last sync time: %s", exc)

        self.logger.info(
            "Drain pass: %d attempted, %d delivered, %d requeued, %d evicted, %d invalid",
            report.attempted,
            len(report.delivered),
            len(report.requeued),
            len(report.evicted),
            len(report.dropped_invalid),
        )
        return report

    async def last_sync_time(self) -> Optional[int]:
        try:
            value = await self.queue.store.get(self.last_sync_key)
        except Exception as exc:
            self.logger.warning("Error getting last sync time: %s", exc)
            return None
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    async def _attempt(self, action: QueuedAction) -> AttemptOutcome:
        try:
            await self.replayer.replay(action.payload, action.enqueued_at)
        except Exception as exc:
            outcome = classify_exception(exc)
            self.logger.warning(
                "Error processing action %s (attempt %d): %s",
                action.id,
                action.retry_count + 1,
                exc,
            )
            return outcome
        return AttemptOutcome.SUCCESS

    async def _write_back(self, terminated: Set[str], updated: Dict[str, QueuedAction]) -> None:
        # Re-read so actions enqueued during this pass stay at the tail.
        current = await self.queue.read_for_update()
        remaining = [updated.get(a.id, a) for a in current if a.id not in terminated]
        await self.queue.replace_all(remaining)

    def _notify(self, action: QueuedAction, message: str) -> None:
        title = REPORT_FAILED_TITLE if action.kind is ActionKind.HAZARD_REPORT_SUBMIT else UPLOAD_FAILED_TITLE
        try:
            self.notifier.notify(title, message)
        except Exception as exc:
            self.logger.warning("Could not show notice for %s: %s", action.id, exc)


__all__ = ["DrainReport", "QueueProcessor", "SYNC_FAILED_ERROR"]
