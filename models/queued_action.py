"""Offline actions persisted in the sync queue.

Every action kind carries its own payload dataclass. ``QueuedAction``
wraps one payload with the bookkeeping the queue needs (id, enqueue time,
retry counter). The JSON layout mirrors the one written by the mobile
client, so a queue persisted by either side can be replayed by the other.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class InvalidActionError(ValueError):
    """A persisted record could not be decoded into a ``QueuedAction``."""


class ActionKind(str, Enum):
    CHECKLIST_BULK_UPDATE = "checklist"
    CHECKLIST_ITEM_TOGGLE = "checklist_item"
    PROFILE_UPDATE = "profile_update"
    HAZARD_REPORT_SUBMIT = "hazard_report"
    EMERGENCY_SOS_CREATE = "emergency_sos"
    EMERGENCY_ACKNOWLEDGE = "emergency_ack"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidActionError(f"Missing or invalid '{key}'")
    return value


def _require_dict(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise InvalidActionError(f"Missing or invalid '{key}'")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidActionError(f"Invalid '{key}'")
    return value or None


@dataclass(frozen=True)
class ChecklistItemTogglePayload:
    user_id: str
    item_id: str
    mark: bool
    date_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "userId": self.user_id,
            "checklistId": self.item_id,
            "action": "mark" if self.mark else "unmark",
        }
        if self.date_key:
            data["date"] = self.date_key
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItemTogglePayload":
        action = data.get("action")
        if action not in ("mark", "unmark"):
            raise InvalidActionError(f"Unknown checklist action: {action!r}")
        return cls(
            user_id=_require_str(data, "userId"),
            item_id=_require_str(data, "checklistId"),
            mark=action == "mark",
            date_key=_optional_str(data, "date"),
        )


@dataclass(frozen=True)
class ChecklistBulkUpdatePayload:
    user_id: str
    date: str
    checklist: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "date": self.date,
            "checklist": [dict(item) for item in self.checklist],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistBulkUpdatePayload":
        checklist = data.get("checklist") or []
        if not isinstance(checklist, list) or not all(isinstance(i, dict) for i in checklist):
            raise InvalidActionError("Invalid 'checklist'")
        return cls(
            user_id=_require_str(data, "userId"),
            date=_require_str(data, "date"),
            checklist=[dict(item) for item in checklist],
        )


@dataclass(frozen=True)
class ProfileUpdatePayload:
    user_id: str
    updates: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "updates": dict(self.updates)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProfileUpdatePayload":
        return cls(
            user_id=_require_str(data, "userId"),
            updates=dict(_require_dict(data, "updates")),
        )


@dataclass(frozen=True)
class MediaFileRef:
    type: MediaType
    uri: str
    index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value, "uri": self.uri}
        if self.index is not None:
            data["index"] = self.index
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MediaFileRef":
        if not isinstance(data, dict):
            raise InvalidActionError("Invalid media file reference")
        try:
            media_type = MediaType(data.get("type"))
        except ValueError as exc:
            raise InvalidActionError(f"Unknown media type: {data.get('type')!r}") from exc
        index = data.get("index")
        if index is not None and not isinstance(index, int):
            raise InvalidActionError("Invalid media index")
        return cls(type=media_type, uri=_require_str(data, "uri"), index=index)


@dataclass(frozen=True)
class HazardReportSubmitPayload:
    report: Dict[str, Any]
    media_files: List[MediaFileRef] = field(default_factory=list)

    def media_of(self, media_type: MediaType) -> List[MediaFileRef]:
        return [m for m in self.media_files if m.type is media_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": dict(self.report),
            "mediaFiles": [m.to_dict() for m in self.media_files],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HazardReportSubmitPayload":
        media = data.get("mediaFiles") or []
        if not isinstance(media, list):
            raise InvalidActionError("Invalid 'mediaFiles'")
        return cls(
            report=dict(_require_dict(data, "report")),
            media_files=[MediaFileRef.from_dict(m) for m in media],
        )


@dataclass(frozen=True)
class EmergencySosCreatePayload:
    alert: Dict[str, Any]
    client_alert_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {"payload": dict(self.alert), "clientAlertId": self.client_alert_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmergencySosCreatePayload":
        alert = dict(_require_dict(data, "payload"))
        client_id = _optional_str(data, "clientAlertId")
        if client_id is None:
            # Queues written by older clients carry no token.
            return cls(alert=alert)
        return cls(alert=alert, client_alert_id=client_id)


@dataclass(frozen=True)
class EmergencyAcknowledgePayload:
    alert_id: str
    acknowledger: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"alertId": self.alert_id}
        if self.acknowledger is not None:
            data["acknowledger"] = dict(self.acknowledger)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmergencyAcknowledgePayload":
        acknowledger = data.get("acknowledger")
        if acknowledger is not None and not isinstance(acknowledger, dict):
            raise InvalidActionError("Invalid 'acknowledger'")
        return cls(alert_id=_require_str(data, "alertId"), acknowledger=acknowledger)


ActionPayload = Union[
    ChecklistBulkUpdatePayload,
    ChecklistItemTogglePayload,
    ProfileUpdatePayload,
    HazardReportSubmitPayload,
    EmergencySosCreatePayload,
    EmergencyAcknowledgePayload,
]


PAYLOAD_TYPES = {
    ActionKind.CHECKLIST_BULK_UPDATE: ChecklistBulkUpdatePayload,
    ActionKind.CHECKLIST_ITEM_TOGGLE: ChecklistItemTogglePayload,
    ActionKind.PROFILE_UPDATE: ProfileUpdatePayload,
    ActionKind.HAZARD_REPORT_SUBMIT: HazardReportSubmitPayload,
    ActionKind.EMERGENCY_SOS_CREATE: EmergencySosCreatePayload,
    ActionKind.EMERGENCY_ACKNOWLEDGE: EmergencyAcknowledgePayload,
}


def kind_of(payload: ActionPayload) -> ActionKind:
    for kind, payload_type in PAYLOAD_TYPES.items():
        if isinstance(payload, payload_type):
            return kind
    raise TypeError(f"Unsupported payload type: {type(payload).__name__}")


def new_action_id(kind: ActionKind, enqueued_at: int) -> str:
    return f"{kind.value}_{enqueued_at}_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class QueuedAction:
    id: str
    kind: ActionKind
    payload: ActionPayload
    enqueued_at: int
    retry_count: int = 0

    def __post_init__(self) -> None:
        expected = PAYLOAD_TYPES[self.kind]
        if not isinstance(self.payload, expected):
            raise InvalidActionError(
                f"Payload {type(self.payload).__name__} does not match kind {self.kind.value}"
            )

    def with_retry_count(self, retry_count: int) -> "QueuedAction":
        return replace(self, retry_count=retry_count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": self.payload.to_dict(),
            "enqueuedAt": self.enqueued_at,
            "retryCount": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "QueuedAction":
        if not isinstance(data, dict):
            raise InvalidActionError("Queued action must be an object")
        # The mobile client stores ``type``/``data``/``timestamp``.
        raw_kind = data.get("kind", data.get("type"))
        try:
            kind = ActionKind(raw_kind)
        except ValueError as exc:
            raise InvalidActionError(f"Unknown action kind: {raw_kind!r}") from exc
        raw_payload = data.get("payload", data.get("data"))
        if not isinstance(raw_payload, dict):
            raise InvalidActionError("Missing action payload")
        enqueued_at = data.get("enqueuedAt", data.get("timestamp"))
        retry_count = data.get("retryCount", 0)
        if not isinstance(enqueued_at, int) or not isinstance(retry_count, int):
            raise InvalidActionError("Invalid action bookkeeping fields")
        return cls(
            id=_require_str(data, "id"),
            kind=kind,
            payload=PAYLOAD_TYPES[kind].from_dict(raw_payload),
            enqueued_at=enqueued_at,
            retry_count=retry_count,
        )


__all__ = [
    "ActionKind",
    "ActionPayload",
    "ChecklistBulkUpdatePayload",
    "ChecklistItemTogglePayload",
    "EmergencyAcknowledgePayload",
    "EmergencySosCreatePayload",
    "HazardReportSubmitPayload",
    "InvalidActionError",
    "MediaFileRef",
    "MediaType",
    "PAYLOAD_TYPES",
    "ProfileUpdatePayload",
    "QueuedAction",
    "kind_of",
    "new_action_id",
]
