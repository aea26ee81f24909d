"""Media upload operation and its Firebase Storage implementation."""

from __future__ import annotations

import asyncio
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote, unquote, urlparse

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from core.logging_setup import get_logger
from core.settings import FIREBASE
from models.queued_action import MediaType
from services.firebase_auth import credentials_from_auth
from services.sync_errors import InvalidPayloadError, MediaUploadError, http_status


DEFAULT_MIMETYPES = {
    MediaType.IMAGE: ("image/jpeg", ".jpg"),
    MediaType.VIDEO: ("video/mp4", ".mp4"),
    MediaType.AUDIO: ("audio/m4a", ".m4a"),
}


@dataclass(frozen=True)
class UploadedMedia:
    url: str
    id: str
    width: Optional[int] = None
    height: Optional[int] = None
    bytes: Optional[int] = None
    duration: Optional[float] = None

    def to_reference(self, media_type: MediaType) -> Dict[str, Any]:
        """Media reference stored on the report document."""

        if media_type is MediaType.IMAGE:
            keys = ("width", "height", "bytes")
        elif media_type is MediaType.VIDEO:
            keys = ("width", "height", "bytes", "duration")
        else:
            keys = ("bytes", "duration")
        ref: Dict[str, Any] = {"url": self.url, "publicId": self.id}
        for key in keys:
            value = getattr(self, key)
            if value is not None:
                ref[key] = value
        return ref


class MediaUploader(Protocol):
    async def upload(self, uri: str, media_type: MediaType) -> UploadedMedia: ...


def local_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme and len(parsed.scheme) > 1:
        raise InvalidPayloadError(f"Unsupported media location: {uri}")
    return Path(uri)


def download_url(bucket: str, object_name: str, token: Optional[str] = None) -> str:
    url = f"https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{quote(object_name, safe='')}?alt=media"
    if token:
        url += f"&token={token}"
    return url


class FirebaseStorageUploader:
    """Uploads local media files to the Firebase Storage bucket.

    Each call creates a new object; nothing is deduplicated across retries.
    """

    def __init__(
        self,
        auth=None,
        *,
        bucket: Optional[str] = None,
        folder: Optional[str] = None,
        service=None,
    ) -> None:
        self.auth = auth
        self.bucket = bucket or FIREBASE.storage_bucket
        self.folder = (folder or FIREBASE.media_folder).strip("/")
        self.service = service
        self.logger = get_logger("media")

    async def upload(self, uri: str, media_type: MediaType) -> UploadedMedia:
        path = local_path(uri)
        if not path.is_file():
            raise InvalidPayloadError(f"Media file no longer exists: {uri}")
        if self.service is None:
            await asyncio.to_thread(self._ensure_service)
        return await asyncio.to_thread(self._upload_blocking, path, media_type)

    def _ensure_service(self) -> None:
        if self.service is not None:
            return
        creds = credentials_from_auth(self.auth)
        if creds is None:
            raise MediaUploadError("Storage credentials are not available")
        self.service = build("storage", "v1", credentials=creds, cache_discovery=False)

    def _object_name(self, path: Path, media_type: MediaType) -> str:
        default_mime, default_suffix = DEFAULT_MIMETYPES[media_type]
        suffix = path.suffix or default_suffix
        return f"{self.folder}/{media_type.value}s/{uuid.uuid4().hex}{suffix}"

    def _upload_blocking(self, path: Path, media_type: MediaType) -> UploadedMedia:
        default_mime, _ = DEFAULT_MIMETYPES[media_type]
        mimetype = mimetypes.guess_type(path.name)[0] or default_mime
        name = self._object_name(path, media_type)
        token = uuid.uuid4().hex
        media = MediaFileUpload(str(path), mimetype=mimetype, resumable=True)
        request = self.service.objects().insert(
            bucket=self.bucket,
            name=name,
            media_body=media,
            body={"name": name, "metadata": {"firebaseStorageDownloadTokens": token}},
        )
        try:
            result = request.execute()
        except HttpError as exc:
            code = http_status(exc) or 0
            raise MediaUploadError(f"Upload of {path.name} failed with {code}") from exc
        size = result.get("size")
        self.logger.debug("Uploaded %s as %s", path.name, name)
        return UploadedMedia(
            url=download_url(self.bucket, result.get("name", name), token),
            id=result.get("name", name),
            bytes=int(size) if size is not None else None,
        )


__all__ = [
    "FirebaseStorageUploader",
    "MediaUploader",
    "UploadedMedia",
    "download_url",
    "local_path",
]
