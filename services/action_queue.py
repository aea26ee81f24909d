from __future__ import annotations

from typing import Any, Iterable, List, Optional, Protocol

from core.logging_setup import get_logger
from core.settings import SYNC
from datetime_utils import epoch_ms
from models.queued_action import (
    ActionPayload,
    InvalidActionError,
    QueuedAction,
    kind_of,
    new_action_id,
)
from services.sync_errors import QueuePersistError


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def list_keys(self) -> List[str]: ...


class ActionQueueStore:
    """Ordered list of pending offline actions kept under one durable key.

    Every operation reads or writes the whole sequence; nothing is cached in
    memory.
    """

    def __init__(self, store: KeyValueStore, key: str = SYNC.queue_key, clock=epoch_ms):
        self.store = store
        self.key = key
        self._clock = clock
        self.logger = get_logger("queue")

    async def enqueue(self, payload: ActionPayload) -> QueuedAction:
        kind = kind_of(payload)
        enqueued_at = int(self._clock())
        action = QueuedAction(
            id=new_action_id(kind, enqueued_at),
            kind=kind,
            payload=payload,
            enqueued_at=enqueued_at,
            retry_count=0,
        )
        try:
            queue = await self.read_for_update()
            queue.append(action)
            await self._write(queue)
        except Exception as exc:
            self.logger.error("Failed to persist %s: %s", action.id, exc)
            raise QueuePersistError(f"Could not persist offline action {action.kind.value}") from exc
        self.logger.info("Queued %s (%d pending)", action.id, len(queue))
        return action

    async def read_all(self) -> List[QueuedAction]:
        """Pending actions in order; empty when the store cannot be read."""

        try:
            return await self.read_for_update()
        except Exception as exc:
            self.logger.warning("Error reading offline queue: %s", exc)
            return []

    async def read_for_update(self) -> List[QueuedAction]:
        """Like :meth:`read_all`, but store errors propagate.

        Use this before writing the sequence back, so a failed read never
        replaces the persisted queue with an empty one.
        """

        raw = await self.store.get(self.key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            self.logger.warning("Offline queue is not a list, ignoring it")
            return []
        actions: List[QueuedAction] = []
        for position, item in enumerate(raw):
            try:
                actions.append(QueuedAction.from_dict(item))
            except InvalidActionError as exc:
                record_id = item.get("id") if isinstance(item, dict) else None
                self.logger.warning(
                    "Dropping undecodable queued action #%d (%s): %s", position, record_id or "no id", exc
                )
        return actions

    async def replace_all(self, actions: Iterable[QueuedAction]) -> None:
        await self._write(list(actions))

    async def remove_by_id(self, ids: Iterable[str]) -> None:
        drop = set(ids)
        if not drop:
            return
        queue = await self.read_for_update()
        await self.replace_all(a for a in queue if a.id not in drop)

    async def get(self, action_id: str) -> Optional[QueuedAction]:
        for action in await self.read_all():
            if action.id == action_id:
                return action
        return None

    async def count(self) -> int:
        return len(await self.read_all())

    async def clear(self) -> None:
        await self.store.remove(self.key)
        self.logger.info("Offline queue cleared")

    async def _write(self, actions: List[QueuedAction]) -> None:
        await self.store.set(self.key, [a.to_dict() for a in actions])


__all__ = ["ActionQueueStore", "KeyValueStore"]
