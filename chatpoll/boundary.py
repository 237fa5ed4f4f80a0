"""Batch-boundary search.

The events endpoint only answers "give me the last N messages". To turn that
into a gapless stream, each poll keeps doubling N until the snapshot reaches
back past both boundaries:

- the time boundary: the oldest message is older than the edit window, so
  every message that could still be edited is present;
- the id boundary: the oldest message is not newer than the last processed
  id, so no unseen message fell off the front.

The snapshot is then trimmed to what the caller still needs.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .constants import EDIT_WINDOW_S, INITIAL_FETCH_COUNT
from .models import Message

if TYPE_CHECKING:
    from .fetcher import SnapshotFetcher


def boundaries_reached(
    oldest: Message, prev_id: int | None, edit_mark: datetime
) -> bool:
    time_ok = oldest.timestamp < edit_mark
    id_ok = prev_id is None or oldest.message_id <= prev_id
    return time_ok and id_ok


def trim(messages: list[Message], prev_id: int | None, edit_mark: datetime) -> list[Message]:
    """
    Drop the oldest messages that are both outside the edit window and
    already processed.

    With no previous id only the edit window counts, so a first fetch keeps
    just the editable tail of the room's history.
    """
    for i, msg in enumerate(messages):
        if msg.timestamp >= edit_mark:
            return messages[i:]
        if prev_id is not None and msg.message_id > prev_id:
            return messages[i:]
    return []


def next_batch(
    fetcher: SnapshotFetcher,
    room_id: int,
    prev_id: int | None,
    *,
    now: datetime,
    edit_window_s: float = EDIT_WINDOW_S,
    initial_count: int = INITIAL_FETCH_COUNT,
) -> list[Message]:
    """
    Fetch every message newer than ``prev_id`` plus every message still
    inside the edit window, oldest first.

    Any fetch error aborts the search; nothing is returned for partial
    progress.
    """
    edit_mark = now - timedelta(seconds=edit_window_s)
    count = max(1, int(initial_count))

    while True:
        messages = fetcher.fetch(room_id, count)
        if len(messages) < count:
            # Room history exhausted.
            break
        if boundaries_reached(messages[0], prev_id, edit_mark):
            break
        count *= 2

    return trim(messages, prev_id, edit_mark)
