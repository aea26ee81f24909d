"""Composition root: one wired instance of every sync component."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.settings import SYNC
from services.action_queue import ActionQueueStore, KeyValueStore
from services.action_replay import ActionReplayer
from services.connectivity import ConnectivityOracle, ProbeConnectivityOracle
from services.firebase_auth import FirebaseAuth
from services.media_upload import FirebaseStorageUploader, MediaUploader
from services.notifications import LoggingNotifier, Notifier
from services.offline_writes import OfflineWriter
from services.queue_processor import QueueProcessor
from services.remote_api import FirestoreRemoteApi, RemoteMutationApi
from services.scheduler import AsyncioScheduler, Scheduler
from services.sync_orchestrator import SyncOrchestrator
from storage.kv_store import SqlKeyValueStore, init_kv_store


@dataclass
class SyncRuntime:
    store: KeyValueStore
    queue: ActionQueueStore
    connectivity: ConnectivityOracle
    replayer: ActionReplayer
    processor: QueueProcessor
    orchestrator: SyncOrchestrator
    writer: OfflineWriter

    async def start(self) -> None:
        if not SYNC.enabled:
            await self.orchestrator.refresh_status()
            return
        if isinstance(self.connectivity, ProbeConnectivityOracle):
            self.connectivity.start()
        await self.orchestrator.start()

    async def stop(self) -> None:
        await self.orchestrator.stop()
        if isinstance(self.connectivity, ProbeConnectivityOracle):
            self.connectivity.stop()


def build_runtime(
    *,
    store: Optional[KeyValueStore] = None,
    remote: Optional[RemoteMutationApi] = None,
    uploader: Optional[MediaUploader] = None,
    connectivity: Optional[ConnectivityOracle] = None,
    notifier: Optional[Notifier] = None,
    scheduler: Optional[Scheduler] = None,
    auth=None,
) -> SyncRuntime:
    """Wire the sync engine; any collaborator not given gets the default."""

    if store is None:
        init_kv_store()
        store = SqlKeyValueStore()
    if (remote is None or uploader is None) and auth is None:
        auth = FirebaseAuth()
    remote = remote or FirestoreRemoteApi(auth)
    uploader = uploader or FirebaseStorageUploader(auth)
    scheduler = scheduler or AsyncioScheduler()
    connectivity = connectivity or ProbeConnectivityOracle(scheduler=scheduler)
    notifier = notifier or LoggingNotifier()

    queue = ActionQueueStore(store, SYNC.queue_key)
    replayer = ActionReplayer(remote, uploader, call_timeout=SYNC.call_timeout_sec)
    processor = QueueProcessor(
        queue,
        replayer,
        connectivity,
        notifier=notifier,
        max_retries=SYNC.max_retries,
        last_sync_key=SYNC.last_sync_key,
    )
    orchestrator = SyncOrchestrator(
        processor,
        queue,
        connectivity,
        scheduler=scheduler,
        interval_sec=SYNC.auto_sync_interval_sec,
    )
    writer = OfflineWriter(queue, replayer, connectivity)
    return SyncRuntime(
        store=store,
        queue=queue,
        connectivity=connectivity,
        replayer=replayer,
        processor=processor,
        orchestrator=orchestrator,
        writer=writer,
    )


__all__ = ["SyncRuntime", "build_runtime"]
