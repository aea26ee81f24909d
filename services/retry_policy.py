"""Pure retry/evict decision for a single replay attempt."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from core.settings import SYNC
from services.sync_errors import AttemptOutcome


INVALID_ITEM_NOTICE = (
    "A saved item could not be uploaded because it contains unsupported or "
    "missing fields. It has been removed from the upload queue. Please "
    "recreate it in the app if needed."
)


@dataclass(frozen=True)
class Requeue:
    retry_count: int


@dataclass(frozen=True)
class Remove:
    reason: str


@dataclass(frozen=True)
class RemoveWithUserNotice:
    message: str


Decision = Union[Requeue, Remove, RemoveWithUserNotice]


def decide(
    outcome: AttemptOutcome,
    retry_count: int,
    max_retries: int = SYNC.max_retries,
) -> Decision:
    if outcome is AttemptOutcome.SUCCESS:
        return Remove("delivered")
    if outcome is AttemptOutcome.INVALID_PAYLOAD:
        return RemoveWithUserNotice(INVALID_ITEM_NOTICE)
    next_count = retry_count + 1
    if next_count < max_retries:
        return Requeue(next_count)
    return Remove("retries exhausted")


__all__ = [
    "Decision",
    "INVALID_ITEM_NOTICE",
    "Remove",
    "RemoveWithUserNotice",
    "Requeue",
    "decide",
]
