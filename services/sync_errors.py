"""Exception taxonomy of the sync engine and mapping of failures to outcomes."""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Optional

from googleapiclient.errors import HttpError

from models.queued_action import InvalidActionError


INVALID_STATUS = {400, 422}
INVALID_DATA_MARKERS = ("unsupported field value", "invalid data", "undefined", "invalid_argument")


class SyncError(Exception):
    """Base class for sync engine failures."""


class RemoteCallError(SyncError):
    """A remote call failed in a way that may succeed later."""


class InvalidPayloadError(SyncError):
    """The remote store will always reject this payload."""


class MediaUploadError(RemoteCallError):
    """Uploading one of the media files of an action failed."""


class QueuePersistError(SyncError):
    """The queue could not be written to the durable store."""


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRIABLE_FAILURE = "retriable_failure"
    INVALID_PAYLOAD = "invalid_payload"


def http_status(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "resp", None) and getattr(exc.resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def looks_like_invalid_data(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in INVALID_DATA_MARKERS)


def classify_exception(exc: BaseException) -> AttemptOutcome:
    """Map a failure raised while replaying an action to an outcome."""

    if isinstance(exc, (InvalidPayloadError, InvalidActionError)):
        return AttemptOutcome.INVALID_PAYLOAD
    if isinstance(exc, (RemoteCallError, asyncio.TimeoutError, ConnectionError, OSError)):
        return AttemptOutcome.RETRIABLE_FAILURE
    if isinstance(exc, HttpError):
        code = http_status(exc) or 0
        if code in INVALID_STATUS:
            return AttemptOutcome.INVALID_PAYLOAD
        return AttemptOutcome.RETRIABLE_FAILURE
    if looks_like_invalid_data(str(exc)):
        return AttemptOutcome.INVALID_PAYLOAD
    return AttemptOutcome.RETRIABLE_FAILURE


__all__ = [
    "AttemptOutcome",
    "INVALID_STATUS",
    "InvalidPayloadError",
    "MediaUploadError",
    "QueuePersistError",
    "RemoteCallError",
    "SyncError",
    "classify_exception",
    "http_status",
    "looks_like_invalid_data",
]
