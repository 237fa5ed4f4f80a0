from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from .boundary import next_batch
from .errors import ChatError
from .models import ChatEventHandler, Message
from .reconcile import reconcile

if TYPE_CHECKING:
    from .service import ChatService


class Poller:
    """
    Runs the poll, reconcile and dispatch loop over every joined room.

    Each tick:
    - copies the joined room ids under the state lock
    - for each room, runs the batch-boundary fetch and diffs the result
      against the room's cursor
    - dispatches new messages, then edited messages, oldest first
    - writes the cursor back

    A room left while its fetch was in flight gets neither events nor a
    cursor write.

    Rooms are processed one at a time. A room that fails is logged and
    skipped; its cursor stays as it was so the next tick retries from the
    same boundary.
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("chatpoll.poller")

    def run(self, handler: ChatEventHandler) -> None:
        """Tick until the service's shutdown event is set."""
        shutdown = self.hub._shutdown
        heartbeat = float(self.hub.config.heartbeat_s)

        while not shutdown.is_set():
            started = time.monotonic()
            self.tick(handler)
            if shutdown.is_set():
                break

            remaining = heartbeat - (time.monotonic() - started)
            if remaining > 0 and shutdown.wait(remaining):
                break

        self.log.debug("Poller stopped")

    def tick(self, handler: ChatEventHandler) -> int:
        """Poll each joined room once. Returns the number of rooms polled successfully."""
        with self.hub._state_lock:
            rooms = list(self.hub.cursors.keys())

        polled = 0
        for room_id in rooms:
            if self.hub._shutdown.is_set():
                break
            if self.poll_room(room_id, handler):
                polled += 1

        self.hub.stats.inc("ticks")
        return polled

    def poll_room(self, room_id: int, handler: ChatEventHandler) -> bool:
        with self.hub._state_lock:
            cursor = self.hub.cursors.get(room_id)
            if cursor is None:
                # Left by another thread since the tick started.
                return False
            prev_id = cursor.last_processed_id
            prev_snapshot = cursor.last_snapshot

        self.log.debug("Pinging room %s", room_id)
        try:
            batch = next_batch(
                self.hub.fetcher,
                room_id,
                prev_id,
                now=self.hub.clock(),
                edit_window_s=self.hub.config.edit_window_s,
                initial_count=self.hub.config.initial_fetch_count,
            )
        except ChatError as e:
            self.hub.stats.inc("room_errors")
            self.log.warning("Skipping room %s this tick: %s", room_id, e)
            return False

        with self.hub._state_lock:
            if self.hub.cursors.get(room_id) is not cursor:
                self.log.debug("Room %s was left while polling; dropping batch", room_id)
                return False

        result = reconcile(batch, prev_snapshot, prev_id)

        if result.new_messages or result.edited_messages:
            self.log.debug(
                "Room %s: %d new and %d edited messages",
                room_id,
                len(result.new_messages),
                len(result.edited_messages),
            )

        for msg in result.new_messages:
            self._dispatch(handler.on_message, msg)
        for msg in result.edited_messages:
            self._dispatch(handler.on_message_edited, msg)

        self.hub.stats.inc("new_messages", len(result.new_messages))
        self.hub.stats.inc("edited_messages", len(result.edited_messages))

        with self.hub._state_lock:
            # Identity check: a leave (or leave + rejoin) replaced or removed
            # the cursor while we were fetching.
            if self.hub.cursors.get(room_id) is cursor:
                cursor.last_processed_id = result.last_processed_id
                cursor.last_snapshot = result.snapshot
        return True

    def _dispatch(self, callback: Callable[[Message], None], msg: Message) -> None:
        try:
            callback(msg)
        except Exception:
            self.hub.stats.inc("handler_errors")
            self.log.exception(
                "Handler failed for message %s in room %s", msg.message_id, msg.room_id
            )
