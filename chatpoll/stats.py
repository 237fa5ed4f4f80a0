"""Statistics tracking and reporting for a chat connection."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import ChatService


class StatsManager:
    """
    Manages connection statistics collection and reporting.

    Tracks counters for:
    - Poller ticks and snapshot fetches
    - New and edited messages dispatched
    - Rooms skipped because of errors, and handler failures
    - Posts, edits and deletes
    - Room joins/leaves
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = hub.log

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "ticks": 0,
            "fetches": 0,
            "new_messages": 0,
            "edited_messages": 0,
            "room_errors": 0,
            "handler_errors": 0,
            "posts": 0,
            "edits": 0,
            "deletes": 0,
            "joins": 0,
            "leaves": 0,
            "leave_failures": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        if not delta:
            return
        with self.hub._state_lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self.hub._state_lock:
            return int(self._counters.get(key, 0))

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0

        with self.hub._state_lock:
            session_stats = self.hub.session_store.get_stats()
            rooms = sorted(self.hub.cursors.keys())
            c = dict(self._counters)

        cfg = self.hub.config
        lines: list[str] = []
        lines.append(f"chatpoll {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            "rooms: joined={} tokens_cached={} ids={}".format(
                session_stats["rooms_joined"],
                session_stats["tokens_cached"],
                ",".join(str(r) for r in rooms) or "-",
            )
        )
        lines.append(
            f"polling: heartbeat_s={cfg.heartbeat_s} "
            f"edit_window_s={cfg.edit_window_s} "
            f"retry_pause_s={cfg.retry_pause_s}"
        )
        lines.append(
            "poller: ticks={} fetches={} new={} edited={} room_errors={} handler_errors={}".format(
                c.get("ticks", 0),
                c.get("fetches", 0),
                c.get("new_messages", 0),
                c.get("edited_messages", 0),
                c.get("room_errors", 0),
                c.get("handler_errors", 0),
            )
        )
        lines.append(
            "actions: posts={} edits={} deletes={} joins={} leaves={} leave_failures={}".format(
                c.get("posts", 0),
                c.get("edits", 0),
                c.get("deletes", 0),
                c.get("joins", 0),
                c.get("leaves", 0),
                c.get("leave_failures", 0),
            )
        )

        return "\n".join(lines)
