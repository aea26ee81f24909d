import asyncio
from types import SimpleNamespace

from fakes import (
    FakeConnectivity,
    FakeRemote,
    FakeUploader,
    FlakyReadStore,
    RecordingNotifier,
    http_error,
    memory_store,
)
from models.queued_action import (
    ChecklistBulkUpdatePayload,
    ChecklistItemTogglePayload,
    EmergencySosCreatePayload,
    HazardReportSubmitPayload,
    MediaFileRef,
    MediaType,
    ProfileUpdatePayload,
)
from services.action_queue import ActionQueueStore
from services.action_replay import ActionReplayer
from services.hazard_reports import REPORT_FAILED_TITLE
from services.queue_processor import SYNC_FAILED_ERROR, QueueProcessor
from services.retry_policy import INVALID_ITEM_NOTICE
from services.sync_errors import InvalidPayloadError, MediaUploadError, RemoteCallError


DAY = "2024-04-02"


def build(remote=None, online=True, call_timeout=1.0):
    store = memory_store()
    queue = ActionQueueStore(store)
    remote = remote or FakeRemote()
    uploader = FakeUploader()
    connectivity = FakeConnectivity(online)
    notifier = RecordingNotifier()
    replayer = ActionReplayer(remote, uploader, call_timeout=call_timeout)
    processor = QueueProcessor(queue, replayer, connectivity, notifier=notifier)
    return SimpleNamespace(
        store=store,
        queue=queue,
        remote=remote,
        uploader=uploader,
        connectivity=connectivity,
        notifier=notifier,
        processor=processor,
    )


def mark(item, user="u1"):
    return ChecklistItemTogglePayload(user, item, True, DAY)


def test_transient_failures_are_retried_until_delivered():
    env = build()
    env.remote.fail("mark_checklist_item", RemoteCallError("503"), RemoteCallError("503"))

    async def scenario():
        await env.queue.enqueue(mark("helmet"))
        first = await env.processor.drain()
        after_first = await env.queue.read_all()
        second = await env.processor.drain()
        third = await env.processor.drain()
        return first, after_first, second, third, await env.queue.read_all()

    first, after_first, second, third, remaining = asyncio.run(scenario())
    assert len(first.requeued) == 1
    assert after_first[0].retry_count == 1
    assert len(second.requeued) == 1
    assert len(third.delivered) == 1
    assert remaining == []
    assert env.remote.checklists[("u1", DAY)]["items"] == {"helmet": True}


def test_persistent_failure_is_evicted_after_three_attempts():
    env = build()
    env.remote.fail("mark_checklist_item", *[RemoteCallError("503") for _ in range(5)])

    async def scenario():
        await env.queue.enqueue(mark("helmet"))
        reports = [await env.processor.drain() for _ in range(4)]
        return reports, await env.queue.read_all()

    reports, remaining = asyncio.run(scenario())
    assert [r.attempted for r in reports] == [1, 1, 1, 0]
    assert len(reports[2].evicted) == 1
    assert remaining == []
    # two scripted failures were never consumed: exactly three attempts were made
    assert len(env.remote.failures["mark_checklist_item"]) == 2
    assert env.notifier.notices == []


def test_invalid_payload_is_dropped_after_one_attempt_with_notice():
    env = build()
    env.remote.fail("update_user_profile", http_error(400, "INVALID_ARGUMENT"))

    async def scenario():
        await env.queue.enqueue(ProfileUpdatePayload("u1", {"phone": "1"}))
        report = await env.processor.drain()
        return report, await env.queue.read_all()

    report, remaining = asyncio.run(scenario())
    assert len(report.dropped_invalid) == 1
    assert INVALID_ITEM_NOTICE in report.errors
    assert remaining == []
    assert env.notifier.notices == [("Upload Failed", INVALID_ITEM_NOTICE)]


def test_invalid_hazard_report_uses_report_title():
    env = build()

    async def scenario():
        await env.queue.enqueue(HazardReportSubmitPayload(report={"description": "no author"}))
        return await env.processor.drain()

    report = asyncio.run(scenario())
    assert len(report.dropped_invalid) == 1
    assert env.notifier.notices == [(REPORT_FAILED_TITLE, INVALID_ITEM_NOTICE)]
    assert env.remote.calls == []


def test_offline_pass_changes_nothing():
    env = build(online=False)

    async def scenario():
        await env.queue.enqueue(mark("helmet"))
        await env.queue.enqueue(ProfileUpdatePayload("u1", {"phone": "1"}))
        before = await env.store.get("offline_queue")
        report = await env.processor.drain()
        after = await env.store.get("offline_queue")
        return report, before, after, await env.processor.last_sync_time()

    report, before, after, last_sync = asyncio.run(scenario())
    assert report.skipped_offline
    assert report.attempted == 0
    assert before == after
    assert env.remote.calls == []
    assert env.uploader.uploads == []
    assert last_sync is None


def test_one_bad_action_does_not_block_the_others():
    env = build()
    env.remote.fail("unmark_checklist_item", RemoteCallError("timeout"))

    async def scenario():
        flaky = await env.queue.enqueue(ChecklistItemTogglePayload("u1", "gloves", False, DAY))
        good = await env.queue.enqueue(mark("helmet"))
        bad = await env.queue.enqueue(ChecklistBulkUpdatePayload("u1", "someday", []))
        report = await env.processor.drain()
        return flaky, good, bad, report, await env.queue.read_all()

    flaky, good, bad, report, remaining = asyncio.run(scenario())
    assert report.delivered == [good.id]
    assert report.requeued == [flaky.id]
    assert report.dropped_invalid == [bad.id]
    assert [(a.id, a.retry_count) for a in remaining] == [(flaky.id, 1)]


def test_repeated_toggle_converges_to_the_same_state():
    env = build()

    async def scenario():
        await env.queue.enqueue(mark("helmet"))
        await env.queue.enqueue(mark("helmet"))
        await env.processor.drain()
        state_once = dict(env.remote.checklists[("u1", DAY)]["items"])
        # replaying a delivered action again (crash before removal) is harmless
        await env.processor.replayer.replay(mark("helmet"))
        return state_once, dict(env.remote.checklists[("u1", DAY)]["items"])

    state_once, state_twice = asyncio.run(scenario())
    assert state_once == state_twice == {"helmet": True}


def test_toggles_are_replayed_in_enqueue_order():
    env = build()
    items = [f"item-{i}" for i in range(5)]

    async def scenario():
        for item in items:
            await env.queue.enqueue(mark(item))
        return await env.processor.drain()

    report = asyncio.run(scenario())
    assert len(report.delivered) == 5
    assert [args[1] for args in env.remote.calls_to("mark_checklist_item")] == items


def test_action_enqueued_during_a_pass_survives_write_back():
    holder = {}

    class EnqueueingRemote(FakeRemote):
        async def mark_checklist_item(self, user_id, item_id, date_key):
            await super().mark_checklist_item(user_id, item_id, date_key)
            if "late" not in holder:
                holder["late"] = await holder["queue"].enqueue(ProfileUpdatePayload("u1", {"shift": "B"}))

    env = build(remote=EnqueueingRemote())
    holder["queue"] = env.queue

    async def scenario():
        await env.queue.enqueue(mark("helmet"))
        report = await env.processor.drain()
        return report, await env.queue.read_all()

    report, remaining = asyncio.run(scenario())
    assert report.attempted == 1
    assert [a.id for a in remaining] == [holder["late"].id]
    assert remaining[0].retry_count == 0


def test_hung_remote_call_counts_as_retriable_failure():
    env = build(call_timeout=0.05)
    env.remote.delay = 1.0

    async def scenario():
        await env.queue.enqueue(mark("helmet"))
        report = await env.processor.drain()
        return report, await env.queue.read_all()

    report, remaining = asyncio.run(scenario())
    assert len(report.requeued) == 1
    assert remaining[0].retry_count == 1


def test_hazard_report_end_to_end():
    remote = FakeRemote(
        profiles={"u1": {"stateId": "st-1", "stateName": "Jharkhand", "coalfieldId": "cf-9", "mineId": "m-3"}}
    )
    env = build(remote=remote)
    payload = HazardReportSubmitPayload(
        report={"userId": "u1", "description": "Loose roof bolt", "mineName": None},
        media_files=[
            MediaFileRef(MediaType.AUDIO, "file:///tmp/note.m4a"),
            MediaFileRef(MediaType.IMAGE, "file:///tmp/roof.jpg", 0),
        ],
    )

    async def scenario():
        await env.queue.enqueue(payload)
        report = await env.processor.drain()
        return report, await env.queue.read_all()

    report, remaining = asyncio.run(scenario())
    assert len(report.delivered) == 1
    assert remaining == []
    assert env.uploader.uploads == [
        ("file:///tmp/roof.jpg", MediaType.IMAGE),
        ("file:///tmp/note.m4a", MediaType.AUDIO),
    ]
    (document,) = env.remote.reports
    assert document["description"] == "Loose roof bolt"
    assert "mineName" not in document
    assert document["stateId"] == "st-1"
    assert document["mineId"] == "m-3"
    assert document["media"]["images"] == [
        {"url": "https://media.test/image/1", "publicId": "image-1", "bytes": 1001}
    ]
    assert document["media"]["audio"]["url"] == "https://media.test/audio/2"
    assert "videos" not in document["media"]


def test_failed_media_upload_requeues_and_reuploads_everything():
    env = build()
    payload = HazardReportSubmitPayload(
        report={"userId": "u1", "stateId": "s", "coalfieldId": "c", "mineId": "m"},
        media_files=[
            MediaFileRef(MediaType.IMAGE, "file:///tmp/a.jpg", 0),
            MediaFileRef(MediaType.AUDIO, "file:///tmp/b.m4a"),
        ],
    )

    async def scenario():
        await env.queue.enqueue(payload)
        return await env.processor.drain()

    # image succeeds, audio fails on the first pass
    original_upload = env.uploader.upload
    calls = {"n": 0}

    async def flaky_upload(uri, media_type):
        calls["n"] += 1
        if calls["n"] == 2:
            raise MediaUploadError("storage 503")
        return await original_upload(uri, media_type)

    env.uploader.upload = flaky_upload

    first = asyncio.run(scenario())
    assert len(first.requeued) == 1
    assert env.remote.reports == []

    second = asyncio.run(env.processor.drain())
    assert len(second.delivered) == 1
    # the image from the failed pass was not remembered
    assert [uri for uri, _ in env.uploader.uploads] == [
        "file:///tmp/a.jpg",
        "file:///tmp/a.jpg",
        "file:///tmp/b.m4a",
    ]
    assert len(env.remote.reports) == 1


def test_missing_media_file_is_not_retried():
    env = build()
    env.uploader.failures.append(InvalidPayloadError("Media file no longer exists"))

    async def scenario():
        await env.queue.enqueue(
            HazardReportSubmitPayload(
                report={"userId": "u1"},
                media_files=[MediaFileRef(MediaType.IMAGE, "file:///gone.jpg", 0)],
            )
        )
        return await env.processor.drain()

    report = asyncio.run(scenario())
    assert len(report.dropped_invalid) == 1
    assert env.notifier.notices[0][0] == REPORT_FAILED_TITLE


def test_sos_retry_reuses_the_client_alert_id():
    env = build()
    env.remote.fail("create_emergency_alert", RemoteCallError("503"))

    async def scenario():
        await env.store.set(
            "offline_queue",
            [
                {
                    "id": "emergency_sos_1_abc",
                    "type": "emergency_sos",
                    "data": {"payload": {"userId": "u1", "stateId": "s", "coalfieldId": "c", "mineId": "m"}},
                    "timestamp": 1,
                }
            ],
        )
        await env.processor.drain()
        persisted = await env.store.get("offline_queue")
        await env.processor.drain()
        return persisted

    persisted = asyncio.run(scenario())
    token = persisted[0]["payload"]["clientAlertId"]
    assert token
    (call,) = env.remote.calls_to("create_emergency_alert")
    assert call[1] == token
    assert token in env.remote.alerts


def test_last_sync_time_recorded_after_each_online_pass():
    env = build()

    async def scenario():
        report = await env.processor.drain()
        return report, await env.processor.last_sync_time()

    report, last_sync = asyncio.run(scenario())
    assert report.attempted == 0
    assert last_sync == report.finished_at
    assert last_sync is not None


def test_write_back_failure_is_reported_as_sync_error():
    env = build()

    async def broken_replace_all(actions):
        raise OSError("database is locked")

    async def scenario():
        await env.queue.enqueue(mark("helmet"))
        env.queue.replace_all = broken_replace_all
        return await env.processor.drain()

    report = asyncio.run(scenario())
    assert SYNC_FAILED_ERROR in report.errors
    assert len(report.delivered) == 1


def test_empty_profile_update_is_delivered_without_a_call():
    env = build()

    async def scenario():
        await env.queue.enqueue(ProfileUpdatePayload("u1", {}))
        return await env.processor.drain()

    report = asyncio.run(scenario())
    assert len(report.delivered) == 1
    assert env.remote.calls == []


def test_sos_payload_none_fields_are_dropped():
    env = build()

    async def scenario():
        await env.queue.enqueue(
            EmergencySosCreatePayload(
                {"userId": "u1", "location": None, "stateId": "s", "coalfieldId": "c", "mineId": "m"},
                client_alert_id="tok-1",
            )
        )
        return await env.processor.drain()

    asyncio.run(scenario())
    assert env.remote.alerts["tok-1"] == {"userId": "u1", "stateId": "s", "coalfieldId": "c", "mineId": "m"}


def test_write_back_skipped_when_queue_cannot_be_reread():
    store = FlakyReadStore(memory_store())
    queue = ActionQueueStore(store)

    class LockingRemote(FakeRemote):
        async def mark_checklist_item(self, user_id, item_id, date_key):
            await super().mark_checklist_item(user_id, item_id, date_key)
            # the write-back read that follows this pass hits a locked database
            store.failing_gets = 1

    replayer = ActionReplayer(LockingRemote(), FakeUploader(), call_timeout=1.0)
    processor = QueueProcessor(queue, replayer, FakeConnectivity(True), notifier=RecordingNotifier())

    async def scenario():
        await queue.enqueue(mark("helmet"))
        await queue.enqueue(mark("gloves"))
        report = await processor.drain()
        return report, await queue.read_all()

    report, remaining = asyncio.run(scenario())
    assert SYNC_FAILED_ERROR in report.errors
    # delivered actions stay queued and are replayed again (at-least-once)
    assert [a.payload.item_id for a in remaining] == ["helmet", "gloves"]
