from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .models import Message


@dataclass(frozen=True)
class Reconciliation:
    new_messages: list[Message]
    edited_messages: list[Message]
    last_processed_id: int | None
    snapshot: tuple[Message, ...]


def find_new(snapshot: Sequence[Message], last_processed_id: int | None) -> list[Message]:
    """Messages newer than the cursor, oldest first."""
    found: list[Message] = []
    for msg in reversed(snapshot):
        if last_processed_id is not None and msg.message_id <= last_processed_id:
            break
        found.append(msg)
    found.reverse()
    return found


def find_edited(
    snapshot: Sequence[Message],
    previous: Sequence[Message],
    exclude: set[int] | frozenset[int] = frozenset(),
) -> list[Message]:
    """Messages whose content changed since the previous snapshot, in snapshot order."""
    before = {m.message_id: m.content for m in previous}
    edited: list[Message] = []
    for msg in snapshot:
        if msg.message_id in exclude:
            continue
        old = before.get(msg.message_id)
        if old is not None and old != msg.content:
            edited.append(msg)
    return edited


def reconcile(
    snapshot: Sequence[Message],
    previous: Sequence[Message],
    last_processed_id: int | None,
) -> Reconciliation:
    """
    Compare a freshly trimmed snapshot against the one from the previous tick.

    The full snapshot is carried forward (not just the new messages) so that
    messages reported as new can still be diffed for edits while they remain
    inside the edit window.
    """
    new = find_new(snapshot, last_processed_id)
    edited = find_edited(snapshot, previous, exclude={m.message_id for m in new})

    cursor = last_processed_id
    if snapshot:
        newest = snapshot[-1].message_id
        if cursor is None or newest > cursor:
            cursor = newest

    return Reconciliation(
        new_messages=new,
        edited_messages=edited,
        last_processed_id=cursor,
        snapshot=tuple(snapshot),
    )
