import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fakes import http_error
from models.queued_action import MediaType
from services.media_upload import FirebaseStorageUploader, UploadedMedia, download_url, local_path
from services.sync_errors import InvalidPayloadError, MediaUploadError


def test_local_path_accepts_file_uris_and_plain_paths():
    assert local_path("file:///data/user/0/cache/img%201.jpg") == Path("/data/user/0/cache/img 1.jpg")
    assert local_path("/tmp/note.m4a") == Path("/tmp/note.m4a")
    with pytest.raises(InvalidPayloadError):
        local_path("content://media/external/images/1")


def test_reference_fields_depend_on_media_type():
    uploaded = UploadedMedia(url="u", id="i", width=10, height=20, bytes=30, duration=4.5)
    assert uploaded.to_reference(MediaType.IMAGE) == {
        "url": "u",
        "publicId": "i",
        "width": 10,
        "height": 20,
        "bytes": 30,
    }
    assert uploaded.to_reference(MediaType.AUDIO) == {"url": "u", "publicId": "i", "bytes": 30, "duration": 4.5}
    assert UploadedMedia(url="u", id="i").to_reference(MediaType.VIDEO) == {"url": "u", "publicId": "i"}


def test_download_url_escapes_object_name():
    url = download_url("bucket.appspot.com", "hazard_reports/images/a b.jpg", "tok")
    assert url == (
        "https://firebasestorage.googleapis.com/v0/b/bucket.appspot.com/o/"
        "hazard_reports%2Fimages%2Fa%20b.jpg?alt=media&token=tok"
    )


def test_missing_file_is_invalid(tmp_path):
    uploader = FirebaseStorageUploader(bucket="b", folder="reports", service=MagicMock())
    with pytest.raises(InvalidPayloadError):
        asyncio.run(uploader.upload(str(tmp_path / "gone.jpg"), MediaType.IMAGE))


def test_upload_inserts_object_with_download_token(tmp_path):
    photo = tmp_path / "roof.jpg"
    photo.write_bytes(b"\xff\xd8jpeg")
    service = MagicMock()
    insert = service.objects.return_value.insert
    insert.return_value.execute.side_effect = lambda: {
        "name": insert.call_args.kwargs["name"],
        "size": "6",
    }
    uploader = FirebaseStorageUploader(bucket="b", folder="/reports/", service=service)

    result = asyncio.run(uploader.upload(photo.as_uri(), MediaType.IMAGE))

    kwargs = insert.call_args.kwargs
    assert kwargs["bucket"] == "b"
    assert kwargs["name"].startswith("reports/images/")
    assert kwargs["name"].endswith(".jpg")
    token = kwargs["body"]["metadata"]["firebaseStorageDownloadTokens"]
    assert result.id == kwargs["name"]
    assert result.bytes == 6
    assert result.url.endswith(f"&token={token}")


def test_storage_error_is_retriable_upload_error(tmp_path):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"0000")
    service = MagicMock()
    service.objects.return_value.insert.return_value.execute.side_effect = http_error(503)
    uploader = FirebaseStorageUploader(bucket="b", folder="reports", service=service)

    with pytest.raises(MediaUploadError):
        asyncio.run(uploader.upload(str(clip), MediaType.VIDEO))
