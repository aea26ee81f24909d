"""Media upload and document assembly for queued hazard reports."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.logging_setup import get_logger
from models.queued_action import HazardReportSubmitPayload, MediaFileRef, MediaType
from services.media_upload import MediaUploader
from services.remote_api import RemoteMutationApi
from services.sync_errors import InvalidPayloadError, MediaUploadError


REPORT_FAILED_TITLE = "Report Upload Failed"
SCOPE_FIELDS = ("stateId", "stateName", "coalfieldId", "coalfieldName", "mineId", "mineName")
REQUIRED_SCOPE_FIELDS = ("stateId", "coalfieldId", "mineId")

BoundedCall = Callable[[Awaitable[Any], str], Awaitable[Any]]

logger = get_logger("hazard")


async def _passthrough(awaitable: Awaitable[Any], what: str) -> Any:
    return await awaitable


def validate_report(report: Dict[str, Any]) -> None:
    user_id = report.get("userId")
    if not isinstance(user_id, str) or not user_id:
        raise InvalidPayloadError("Hazard report has no userId")
    description = report.get("description")
    if description is not None and not isinstance(description, str):
        raise InvalidPayloadError("Hazard report description must be text")


async def _upload_one(
    uploader: MediaUploader, media: MediaFileRef, call: BoundedCall
) -> Dict[str, Any]:
    try:
        uploaded = await call(uploader.upload(media.uri, media.type), f"{media.type.value} upload")
    except InvalidPayloadError:
        raise
    except MediaUploadError:
        logger.warning("Offline %s upload failed for %s", media.type.value, media.uri)
        raise
    except Exception as exc:
        logger.warning("Offline %s upload failed for %s: %s", media.type.value, media.uri, exc)
        raise MediaUploadError(f"{media.type.value} upload failed: {exc}") from exc
    return uploaded.to_reference(media.type)


async def upload_media(
    uploader: MediaUploader,
    payload: HazardReportSubmitPayload,
    call: BoundedCall = _passthrough,
) -> Dict[str, Any]:
    """Upload every referenced file and return the ``media`` map for the report.

    Images go first, then videos, then the voice note. The first failure
    aborts the whole set; nothing uploaded so far is remembered.
    """

    images: List[Dict[str, Any]] = []
    for media in payload.media_of(MediaType.IMAGE):
        images.append(await _upload_one(uploader, media, call))

    videos: List[Dict[str, Any]] = []
    for media in payload.media_of(MediaType.VIDEO):
        videos.append(await _upload_one(uploader, media, call))

    audio: Optional[Dict[str, Any]] = None
    audio_refs = payload.media_of(MediaType.AUDIO)
    if len(audio_refs) > 1:
        logger.warning("Hazard report has %d audio files, only the first is uploaded", len(audio_refs))
    if audio_refs:
        audio = await _upload_one(uploader, audio_refs[0], call)

    media_map: Dict[str, Any] = {}
    if images:
        media_map["images"] = images
    if videos:
        media_map["videos"] = videos
    if audio is not None:
        media_map["audio"] = audio
    return media_map


def assemble_report(report: Dict[str, Any], media: Dict[str, Any]) -> Dict[str, Any]:
    """Final report document: ``None`` fields dropped, media attached if any."""

    document = {key: value for key, value in report.items() if value is not None}
    document.pop("media", None)
    if media:
        document["media"] = media
    return document


def missing_scope(document: Dict[str, Any]) -> bool:
    return any(not document.get(key) for key in REQUIRED_SCOPE_FIELDS)


async def backfill_scope(
    remote: RemoteMutationApi,
    document: Dict[str, Any],
    call: BoundedCall = _passthrough,
) -> Dict[str, Any]:
    """Fill the state/coalfield/mine scope from the author's profile when missing.

    Supervisors only see documents that carry the full scope. A failed
    profile lookup leaves the document as it is.
    """

    user_id = document.get("userId")
    if not user_id or not missing_scope(document):
        return document
    try:
        profile = await call(remote.get_user_profile(user_id), "profile lookup")
    except Exception as exc:
        logger.warning("Failed to backfill location scope for %s: %s", user_id, exc)
        return document
    if not profile:
        return document
    filled = dict(document)
    for key in SCOPE_FIELDS:
        if not filled.get(key) and profile.get(key) is not None:
            filled[key] = profile[key]
    return filled


__all__ = [
    "REPORT_FAILED_TITLE",
    "REQUIRED_SCOPE_FIELDS",
    "SCOPE_FIELDS",
    "assemble_report",
    "backfill_scope",
    "missing_scope",
    "upload_media",
    "validate_report",
]
