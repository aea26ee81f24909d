"""Data models exposed by the sync engine."""
from .kv_entry import KeyValueEntry
from .queued_action import ActionKind, MediaType, QueuedAction
from .sync_status import SyncStatus

__all__ = ["ActionKind", "KeyValueEntry", "MediaType", "QueuedAction", "SyncStatus"]
