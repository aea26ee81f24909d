from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from core.logging_setup import get_logger
from core.settings import SYNC
from datetime_utils import checklist_date_key, from_epoch_ms, normalize_date_key
from models.queued_action import (
    ActionKind,
    ActionPayload,
    ChecklistBulkUpdatePayload,
    ChecklistItemTogglePayload,
    EmergencyAcknowledgePayload,
    EmergencySosCreatePayload,
    HazardReportSubmitPayload,
    ProfileUpdatePayload,
    kind_of,
)
from services.hazard_reports import assemble_report, backfill_scope, upload_media, validate_report
from services.media_upload import MediaUploader
from services.remote_api import RemoteMutationApi
from services.sync_errors import InvalidPayloadError, RemoteCallError


class ActionReplayer:
    """Delivers one action payload to the remote store.

    Used both for replaying queued actions and for the first, direct attempt
    of a user write. Success returns normally; any failure raises.
    """

    def __init__(
        self,
        remote: RemoteMutationApi,
        uploader: MediaUploader,
        *,
        call_timeout: float = SYNC.call_timeout_sec,
    ) -> None:
        self.remote = remote
        self.uploader = uploader
        self.call_timeout = call_timeout
        self.logger = get_logger("replay")
        self._handlers: Dict[ActionKind, Callable[[Any, Optional[int]], Awaitable[None]]] = {
            ActionKind.CHECKLIST_ITEM_TOGGLE: self._checklist_item,
            ActionKind.CHECKLIST_BULK_UPDATE: self._checklist_bulk,
            ActionKind.PROFILE_UPDATE: self._profile_update,
            ActionKind.HAZARD_REPORT_SUBMIT: self._hazard_report,
            ActionKind.EMERGENCY_SOS_CREATE: self._emergency_sos,
            ActionKind.EMERGENCY_ACKNOWLEDGE: self._emergency_ack,
        }
        missing = set(ActionKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No replay handler for {sorted(k.value for k in missing)}")

    async def replay(self, payload: ActionPayload, enqueued_at: Optional[int] = None) -> None:
        handler = self._handlers[kind_of(payload)]
        await handler(payload, enqueued_at)

    async def bounded(self, awaitable: Awaitable[Any], what: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.call_timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteCallError(f"{what} timed out after {self.call_timeout:g}s") from exc

    # ------------------------------------------------------------------
    # Handlers
    async def _checklist_item(self, payload: ChecklistItemTogglePayload, enqueued_at: Optional[int]) -> None:
        date_key = normalize_date_key(payload.date_key)
        if date_key is None:
            date_key = checklist_date_key(from_epoch_ms(enqueued_at) if enqueued_at else None)
        if payload.mark:
            call = self.remote.mark_checklist_item(payload.user_id, payload.item_id, date_key)
        else:
            call = self.remote.unmark_checklist_item(payload.user_id, payload.item_id, date_key)
        await self.bounded(call, "checklist item update")

    async def _checklist_bulk(self, payload: ChecklistBulkUpdatePayload, enqueued_at: Optional[int]) -> None:
        date_key = normalize_date_key(payload.date)
        if date_key is None:
            raise InvalidPayloadError(f"Unrecognised checklist date: {payload.date!r}")
        await self.bounded(
            self.remote.save_checklist_progress(payload.user_id, date_key, payload.checklist),
            "checklist save",
        )

    async def _profile_update(self, payload: ProfileUpdatePayload, enqueued_at: Optional[int]) -> None:
        if not payload.updates:
            return
        await self.bounded(
            self.remote.update_user_profile(payload.user_id, payload.updates),
            "profile update",
        )

    async def _hazard_report(self, payload: HazardReportSubmitPayload, enqueued_at: Optional[int]) -> None:
        validate_report(payload.report)
        media = await upload_media(self.uploader, payload, self.bounded)
        document = assemble_report(payload.report, media)
        document = await backfill_scope(self.remote, document, self.bounded)
        report_id = await self.bounded(self.remote.submit_hazard_report(document), "report submit")
        self.logger.info("Hazard report %s submitted with %d media groups", report_id, len(media))

    async def _emergency_sos(self, payload: EmergencySosCreatePayload, enqueued_at: Optional[int]) -> None:
        alert = {key: value for key, value in payload.alert.items() if value is not None}
        alert = await backfill_scope(self.remote, alert, self.bounded)
        alert_id = await self.bounded(
            self.remote.create_emergency_alert(alert, payload.client_alert_id),
            "emergency alert",
        )
        self.logger.info("Emergency alert %s created", alert_id)

    async def _emergency_ack(self, payload: EmergencyAcknowledgePayload, enqueued_at: Optional[int]) -> None:
        await self.bounded(
            self.remote.acknowledge_emergency_alert(payload.alert_id, payload.acknowledger),
            "emergency acknowledge",
        )


__all__ = ["ActionReplayer"]
