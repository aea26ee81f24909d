import asyncio

from fakes import FakePage
from models.sync_status import SyncStatus
from ui.sync_indicator import OFFLINE_BG, PENDING_BG, SYNCED_BG, SyncIndicator, status_label
from ui.sync_notices import FletNotifier


def test_status_labels():
    assert status_label(SyncStatus(is_online=False)) == "Offline"
    assert status_label(SyncStatus(is_online=False, pending_action_count=3)) == "Offline · 3 pending"
    assert status_label(SyncStatus(is_online=True, is_syncing=True, pending_action_count=3)) == "Syncing..."
    assert status_label(SyncStatus(is_online=True, pending_action_count=1)) == "1 pending action"
    assert status_label(SyncStatus(is_online=True, pending_action_count=2)) == "2 pending actions"
    assert status_label(SyncStatus(is_online=True)) == "All changes synced"


def test_indicator_applies_status_and_errors():
    page = FakePage()
    indicator = SyncIndicator(page=page)

    indicator.apply(SyncStatus(is_online=True, pending_action_count=2, recent_errors=("Sync failed",)))
    assert indicator.label.value == "2 pending actions"
    assert indicator.view.bgcolor == PENDING_BG
    assert indicator.errors.visible
    assert indicator.errors.value == "Sync failed"

    indicator.apply(SyncStatus(is_online=True))
    assert indicator.view.bgcolor == SYNCED_BG
    assert not indicator.errors.visible

    indicator.apply(SyncStatus(is_online=False))
    assert indicator.view.bgcolor == OFFLINE_BG
    assert indicator.sync_button.disabled
    assert page.updates == 3


def test_sync_button_calls_back():
    calls = []

    async def sync_now():
        calls.append("sync")

    indicator = SyncIndicator(on_sync_now=sync_now)
    assert indicator.sync_button.visible
    asyncio.run(indicator._handle_sync_click(None))
    assert calls == ["sync"]


def test_notifier_opens_and_closes_dialog():
    page = FakePage()
    notifier = FletNotifier(page)

    notifier.notify("Report Upload Failed", "Please recreate it")
    (dlg,) = page.overlay
    assert dlg.open
    assert dlg.title.value == "Report Upload Failed"
    assert dlg.content.value == "Please recreate it"

    ok_button = dlg.actions[0]
    ok_button.on_click(None)
    assert page.overlay == []
    assert notifier.dialogs == []
    assert not dlg.open
