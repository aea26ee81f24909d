"""Offline-first write path used by the app's screens.

Each operation tries the remote store directly when the device is online
and falls back to the offline queue when it is not, or when the direct
attempt fails for a reason that may go away.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from core.logging_setup import get_logger
from datetime_utils import checklist_date_key
from models.queued_action import (
    ActionPayload,
    ChecklistBulkUpdatePayload,
    ChecklistItemTogglePayload,
    EmergencyAcknowledgePayload,
    EmergencySosCreatePayload,
    HazardReportSubmitPayload,
    MediaFileRef,
    MediaType,
    ProfileUpdatePayload,
    QueuedAction,
)
from services.action_queue import ActionQueueStore
from services.action_replay import ActionReplayer
from services.connectivity import ConnectivityOracle
from services.sync_errors import AttemptOutcome, InvalidPayloadError, classify_exception


@dataclass(frozen=True)
class WriteResult:
    delivered: bool
    queued_action: Optional[QueuedAction] = None

    @property
    def queued(self) -> bool:
        return self.queued_action is not None


class OfflineWriter:
    def __init__(
        self,
        queue: ActionQueueStore,
        replayer: ActionReplayer,
        connectivity: ConnectivityOracle,
        *,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.queue = queue
        self.replayer = replayer
        self.connectivity = connectivity
        self._now = now
        self.logger = get_logger("writes")

    async def submit(self, payload: ActionPayload) -> WriteResult:
        """Deliver ``payload`` now if possible, otherwise queue it.

        Structural rejections are raised to the caller instead of queued.
        ``QueuePersistError`` propagates when the queue cannot be written.
        """

        if await self._is_online():
            try:
                await self.replayer.replay(payload)
                return WriteResult(delivered=True)
            except InvalidPayloadError:
                raise
            except Exception as exc:
                if classify_exception(exc) is AttemptOutcome.INVALID_PAYLOAD:
                    raise InvalidPayloadError(str(exc)) from exc
                self.logger.warning("Direct write failed, queueing for later: %s", exc)
        action = await self.queue.enqueue(payload)
        return WriteResult(delivered=False, queued_action=action)

    async def toggle_checklist_item(
        self, user_id: str, item_id: str, mark: bool, date_key: Optional[str] = None
    ) -> WriteResult:
        # Stamp the day now so a late replay still lands on the right document.
        key = date_key or checklist_date_key(self._now())
        return await self.submit(ChecklistItemTogglePayload(user_id, item_id, mark, key))

    async def save_checklist(
        self, user_id: str, checklist: Iterable[Dict[str, Any]], date: Optional[str] = None
    ) -> WriteResult:
        key = date or checklist_date_key(self._now())
        return await self.submit(ChecklistBulkUpdatePayload(user_id, key, [dict(i) for i in checklist]))

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> WriteResult:
        return await self.submit(ProfileUpdatePayload(user_id, dict(updates)))

    async def submit_hazard_report(
        self,
        report: Dict[str, Any],
        *,
        image_uris: Iterable[str] = (),
        video_uris: Iterable[str] = (),
        audio_uri: Optional[str] = None,
    ) -> WriteResult:
        media: List[MediaFileRef] = []
        media.extend(MediaFileRef(MediaType.IMAGE, uri, idx) for idx, uri in enumerate(image_uris))
        media.extend(MediaFileRef(MediaType.VIDEO, uri, idx) for idx, uri in enumerate(video_uris))
        if audio_uri:
            media.append(MediaFileRef(MediaType.AUDIO, audio_uri))
        return await self.submit(HazardReportSubmitPayload(dict(report), media))

    async def raise_emergency(self, alert: Dict[str, Any]) -> WriteResult:
        return await self.submit(EmergencySosCreatePayload(dict(alert)))

    async def acknowledge_emergency(
        self, alert_id: str, acknowledger: Optional[Dict[str, Any]] = None
    ) -> WriteResult:
        return await self.submit(EmergencyAcknowledgePayload(alert_id, acknowledger))

    async def _is_online(self) -> bool:
        try:
            status = await self.connectivity.current_status()
        except Exception as exc:
            self.logger.warning("Error checking internet connection: %s", exc)
            return False
        return status.online


__all__ = ["OfflineWriter", "WriteResult"]
