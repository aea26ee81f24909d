import asyncio

import pytest

from fakes import FakeRemote, FakeUploader
from models.queued_action import HazardReportSubmitPayload, MediaFileRef, MediaType
from services.hazard_reports import (
    assemble_report,
    backfill_scope,
    missing_scope,
    upload_media,
    validate_report,
)
from services.sync_errors import InvalidPayloadError, MediaUploadError, RemoteCallError


def test_upload_order_and_media_map():
    uploader = FakeUploader()
    payload = HazardReportSubmitPayload(
        report={"userId": "u1"},
        media_files=[
            MediaFileRef(MediaType.VIDEO, "v0"),
            MediaFileRef(MediaType.AUDIO, "a0"),
            MediaFileRef(MediaType.AUDIO, "a1"),
            MediaFileRef(MediaType.IMAGE, "i0", 0),
            MediaFileRef(MediaType.IMAGE, "i1", 1),
        ],
    )

    media = asyncio.run(upload_media(uploader, payload))
    assert [uri for uri, _ in uploader.uploads] == ["i0", "i1", "v0", "a0"]
    assert [m["publicId"] for m in media["images"]] == ["image-1", "image-2"]
    assert media["videos"][0]["url"] == "https://media.test/video/3"
    assert media["audio"]["publicId"] == "audio-4"


def test_no_media_gives_empty_map():
    media = asyncio.run(upload_media(FakeUploader(), HazardReportSubmitPayload(report={"userId": "u1"})))
    assert media == {}


def test_unexpected_upload_error_is_wrapped():
    uploader = FakeUploader()
    uploader.failures.append(RuntimeError("socket closed"))
    payload = HazardReportSubmitPayload(report={"userId": "u1"}, media_files=[MediaFileRef(MediaType.IMAGE, "i0", 0)])

    with pytest.raises(MediaUploadError):
        asyncio.run(upload_media(uploader, payload))


def test_validate_report():
    validate_report({"userId": "u1", "description": "ok"})
    with pytest.raises(InvalidPayloadError):
        validate_report({"description": "orphan"})
    with pytest.raises(InvalidPayloadError):
        validate_report({"userId": "u1", "description": 42})


def test_assemble_drops_none_and_stale_media():
    document = assemble_report(
        {"userId": "u1", "title": None, "media": {"images": ["file:///old"]}, "severity": "high"},
        {},
    )
    assert document == {"userId": "u1", "severity": "high"}

    with_media = assemble_report({"userId": "u1"}, {"audio": {"url": "x", "publicId": "y"}})
    assert with_media["media"] == {"audio": {"url": "x", "publicId": "y"}}


def test_backfill_fills_only_missing_scope():
    remote = FakeRemote(
        profiles={"u1": {"stateId": "st", "stateName": "State", "coalfieldId": "cf", "mineId": "mine", "mineName": "M"}}
    )
    document = {"userId": "u1", "stateId": "own-state", "mineId": ""}

    filled = asyncio.run(backfill_scope(remote, document))
    assert filled["stateId"] == "own-state"
    assert filled["coalfieldId"] == "cf"
    assert filled["mineId"] == "mine"
    assert filled["mineName"] == "M"
    assert document["mineId"] == ""
    assert not missing_scope(filled)


def test_backfill_skips_lookup_when_scope_complete():
    remote = FakeRemote()
    document = {"userId": "u1", "stateId": "s", "coalfieldId": "c", "mineId": "m"}
    assert asyncio.run(backfill_scope(remote, document)) is document
    assert remote.calls == []


def test_backfill_lookup_failure_keeps_document():
    remote = FakeRemote()
    remote.fail("get_user_profile", RemoteCallError("503"))
    document = {"userId": "u1"}
    assert asyncio.run(backfill_scope(remote, document)) == {"userId": "u1"}
