"""Remote mutation operations and their Firestore REST implementation."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Protocol

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from core.logging_setup import get_logger
from core.settings import FIREBASE
from datetime_utils import utc_now
from services.firebase_auth import credentials_from_auth
from services.firestore_codec import (
    decode_fields,
    document_id,
    encode_fields,
    field_path,
    top_level_paths,
)
from services.sync_errors import (
    INVALID_STATUS,
    InvalidPayloadError,
    RemoteCallError,
    http_status,
)


CHECKLISTS = "checklists"
USERS = "users"
HAZARD_REPORTS = "hazard_reports"
EMERGENCY_ALERTS = "emergency_alerts"
DEV_ID_PREFIX = "dev-"


class RemoteMutationApi(Protocol):
    async def mark_checklist_item(self, user_id: str, item_id: str, date_key: str) -> None: ...

    async def unmark_checklist_item(self, user_id: str, item_id: str, date_key: str) -> None: ...

    async def save_checklist_progress(
        self, user_id: str, date_key: str, checklist: List[Dict[str, Any]]
    ) -> None: ...

    async def update_user_profile(self, user_id: str, updates: Dict[str, Any]) -> None: ...

    async def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    async def submit_hazard_report(self, report: Dict[str, Any]) -> str: ...

    async def create_emergency_alert(
        self, alert: Dict[str, Any], client_alert_id: Optional[str] = None
    ) -> str: ...

    async def acknowledge_emergency_alert(
        self, alert_id: str, acknowledger: Optional[Dict[str, Any]] = None
    ) -> None: ...


def completion_rate(checklist: Iterable[Dict[str, Any]]) -> float:
    items = list(checklist)
    done = sum(1 for item in items if item.get("completed"))
    return done / (len(items) or 1) * 100


def _error_message(exc: HttpError) -> str:
    reason = getattr(exc, "reason", None)
    if reason:
        return str(reason)
    content = getattr(exc, "content", b"") or b""
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")[:500]
    return str(content)[:500]


class FirestoreRemoteApi:
    """Remote mutations against Cloud Firestore through the v1 REST API.

    Every call runs the blocking ``googleapiclient`` request in a worker
    thread. HTTP 400/422 answers become :class:`InvalidPayloadError`; any
    other HTTP failure becomes :class:`RemoteCallError`.
    """

    def __init__(
        self,
        auth=None,
        *,
        project_id: Optional[str] = None,
        database_id: Optional[str] = None,
        service=None,
    ) -> None:
        self.auth = auth
        self.project_id = project_id or FIREBASE.project_id
        self.database_id = database_id or FIREBASE.database_id
        self.service = service
        self.logger = get_logger("firestore")

    # ------------------------------------------------------------------
    # Paths
    @property
    def database_path(self) -> str:
        return f"projects/{self.project_id}/databases/{self.database_id}"

    @property
    def documents_root(self) -> str:
        return f"{self.database_path}/documents"

    def doc_name(self, collection: str, doc_id: str) -> str:
        return f"{self.documents_root}/{collection}/{doc_id}"

    def checklist_doc(self, user_id: str, date_key: str) -> str:
        return self.doc_name(CHECKLISTS, f"{date_key}_{user_id}")

    # ------------------------------------------------------------------
    # Checklists
    async def mark_checklist_item(self, user_id: str, item_id: str, date_key: str) -> None:
        if self._is_dev_id(user_id, item_id):
            return
        fields = {"userId": user_id, "date": date_key, "items": {item_id: True}, "updatedBy": user_id}
        await self._commit(
            [
                self._update_write(
                    self.checklist_doc(user_id, date_key),
                    fields,
                    mask=["userId", "date", field_path("items", item_id), "updatedBy"],
                    server_time=["updatedAt"],
                )
            ],
            "mark checklist item",
        )

    async def unmark_checklist_item(self, user_id: str, item_id: str, date_key: str) -> None:
        if self._is_dev_id(user_id, item_id):
            return
        # The item path is in the mask but absent from the body, which deletes it.
        fields = {"userId": user_id, "date": date_key, "updatedBy": user_id}
        await self._commit(
            [
                self._update_write(
                    self.checklist_doc(user_id, date_key),
                    fields,
                    mask=["userId", "date", field_path("items", item_id), "updatedBy"],
                    server_time=["updatedAt"],
                )
            ],
            "unmark checklist item",
        )

    async def save_checklist_progress(
        self, user_id: str, date_key: str, checklist: List[Dict[str, Any]]
    ) -> None:
        if self._is_dev_id(user_id):
            return
        filtered = [item for item in checklist if not str(item.get("id", "")).startswith(DEV_ID_PREFIX)]
        if len(filtered) != len(checklist):
            self.logger.warning(
                "Removed %d dev-* items from checklist before saving for user %s",
                len(checklist) - len(filtered),
                user_id,
            )
        data = {
            "userId": user_id,
            "date": date_key,
            "checklist": filtered,
            "completedAt": utc_now(),
            "completionRate": completion_rate(filtered),
        }
        await self._commit(
            [self._update_write(self.checklist_doc(user_id, date_key), data)],
            "save checklist progress",
        )

    # ------------------------------------------------------------------
    # Profiles
    async def update_user_profile(self, user_id: str, updates: Dict[str, Any]) -> None:
        await self._commit(
            [
                self._update_write(
                    self.doc_name(USERS, user_id),
                    updates,
                    mask=top_level_paths(updates.keys()),
                    server_time=["lastActive"],
                    must_exist=True,
                )
            ],
            "update user profile",
        )

    async def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        documents = await self._documents()
        request = documents.get(name=self.doc_name(USERS, user_id))
        result = await self._execute(request, "get user profile", ok_status=(404,))
        if not result:
            return None
        profile = decode_fields(result.get("fields") or {})
        profile.setdefault("id", document_id(result.get("name", user_id)))
        return profile

    # ------------------------------------------------------------------
    # Reports and alerts
    async def submit_hazard_report(self, report: Dict[str, Any]) -> str:
        data = dict(report)
        data["createdAt"] = utc_now()
        data["status"] = report.get("status") or "pending"
        documents = await self._documents()
        request = documents.createDocument(
            parent=self.documents_root,
            collectionId=HAZARD_REPORTS,
            body={"fields": self._encode(data)},
        )
        result = await self._execute(request, "submit hazard report")
        return document_id(result["name"])

    async def create_emergency_alert(
        self, alert: Dict[str, Any], client_alert_id: Optional[str] = None
    ) -> str:
        data = dict(alert)
        data["createdAt"] = utc_now()
        data["status"] = "active"
        params: Dict[str, Any] = {
            "parent": self.documents_root,
            "collectionId": EMERGENCY_ALERTS,
            "body": {"fields": self._encode(data)},
        }
        if client_alert_id:
            params["documentId"] = client_alert_id
        documents = await self._documents()
        result = await self._execute(
            documents.createDocument(**params),
            "create emergency alert",
            ok_status=(409,) if client_alert_id else (),
        )
        if result is None:
            self.logger.info("Emergency alert %s already exists, treating as delivered", client_alert_id)
            return str(client_alert_id)
        return document_id(result["name"])

    async def acknowledge_emergency_alert(
        self, alert_id: str, acknowledger: Optional[Dict[str, Any]] = None
    ) -> None:
        # Acknowledged alerts are removed so the active list stays clean.
        documents = await self._documents()
        await self._execute(
            documents.delete(name=self.doc_name(EMERGENCY_ALERTS, alert_id)),
            "acknowledge emergency alert",
            ok_status=(404,),
        )
        self.logger.info(
            "Emergency alert %s acknowledged by %s",
            alert_id,
            (acknowledger or {}).get("name") or (acknowledger or {}).get("id") or "unknown",
        )

    # ------------------------------------------------------------------
    # Request helpers
    def _ensure_service(self) -> None:
        if self.service is not None:
            return
        creds = credentials_from_auth(self.auth)
        if creds is None:
            raise RemoteCallError("Firestore credentials are not available")
        self.service = build("firestore", "v1", credentials=creds, cache_discovery=False)

    async def _documents(self):
        if self.service is None:
            await asyncio.to_thread(self._ensure_service)
        return self.service.projects().databases().documents()

    def _encode(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return encode_fields(data)
        except TypeError as exc:
            raise InvalidPayloadError(str(exc)) from exc

    def _update_write(
        self,
        name: str,
        data: Dict[str, Any],
        *,
        mask: Optional[List[str]] = None,
        server_time: Iterable[str] = (),
        must_exist: bool = False,
    ) -> Dict[str, Any]:
        write: Dict[str, Any] = {"update": {"name": name, "fields": self._encode(data)}}
        if mask is not None:
            write["updateMask"] = {"fieldPaths": list(mask)}
        transforms = [
            {"fieldPath": path, "setToServerValue": "REQUEST_TIME"} for path in server_time
        ]
        if transforms:
            write["updateTransforms"] = transforms
        if must_exist:
            write["currentDocument"] = {"exists": True}
        return write

    async def _commit(self, writes: List[Dict[str, Any]], what: str) -> Dict[str, Any]:
        documents = await self._documents()
        request = documents.commit(database=self.database_path, body={"writes": writes})
        return await self._execute(request, what)

    async def _execute(self, request, what: str, ok_status: Iterable[int] = ()):
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as exc:
            code = http_status(exc) or 0
            if code in tuple(ok_status):
                return None
            message = f"{what} failed with {code}: {_error_message(exc)}"
            self.logger.warning(message)
            if code in INVALID_STATUS:
                raise InvalidPayloadError(message) from exc
            raise RemoteCallError(message) from exc

    @staticmethod
    def _is_dev_id(*ids: str) -> bool:
        return any(isinstance(value, str) and value.startswith(DEV_ID_PREFIX) for value in ids)


__all__ = [
    "CHECKLISTS",
    "EMERGENCY_ALERTS",
    "FirestoreRemoteApi",
    "HAZARD_REPORTS",
    "RemoteMutationApi",
    "USERS",
    "completion_rate",
]
