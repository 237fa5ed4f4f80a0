from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from .boundary import next_batch
from .config import ChatRuntimeConfig
from .constants import (
    URL_DELETE,
    URL_EDIT,
    URL_LEAVE,
    URL_LOGIN,
    URL_NEW_MESSAGE,
    URL_USER_INFO,
)
from .decoding import (
    parse_delete_outcome,
    parse_edit_outcome,
    parse_fkey,
    parse_new_message,
    parse_user_info,
)
from .errors import InvalidCredentials, ProtocolViolation, RoomUnavailable
from .fetcher import SnapshotFetcher
from .models import ActionResult, ChatEventHandler, Message, RoomCursor, UserInfo
from .poller import Poller
from .session import SessionStore
from .stats import StatsManager
from .transport import HttpTransport, Request, RequestSender, Transport
from .util import SplitStrategy, split_message


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatService:
    def __init__(
        self,
        config: ChatRuntimeConfig,
        *,
        transport: Transport | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("chatpoll.service")

        # Cursors, room sessions and counters are touched by the poller thread
        # and by callers on other threads. Guard them with a single
        # re-entrant lock; never hold it across a network call.
        self._state_lock = threading.RLock()

        # Set to stop the poller; checked between rooms and during the
        # heartbeat sleep.
        self._shutdown = threading.Event()
        self._closed = False
        self._listen_thread: threading.Thread | None = None

        if transport is None:
            transport = HttpTransport(
                timeout=config.http_timeout_s, user_agent=config.user_agent
            )
        self.transport = transport
        self.clock = clock or _utcnow
        self._sleep = sleep

        # Room id -> poll cursor. Presence of a cursor is what makes a room
        # visible to the poller.
        self.cursors: dict[int, RoomCursor] = {}

        self.stats = StatsManager(self)
        self.session_store = SessionStore(self)
        self.fetcher = SnapshotFetcher(self)
        self.poller = Poller(self)

        self.stats.set_start_time()

    @property
    def chat_host(self) -> str:
        return f"chat.{self.config.domain}"

    def url(self, template: str, **params: Any) -> str:
        return template.format(site=self.config.domain, chat=self.chat_host, **params)

    def send(self, request: Request) -> RequestSender:
        return (
            RequestSender(self.transport, request, sleep=self._sleep)
            .pause(self.config.retry_pause_s)
            .attempts(self.config.request_attempts)
        )

    def login(self, email: str, password: str) -> None:
        self.log.info("Logging in as %s", email)
        login_url = self.url(URL_LOGIN)

        page = self.send(Request.get(login_url)).status_codes(200).as_response()
        fkey = parse_fkey(page.text)
        if fkey is None:
            raise ProtocolViolation("fkey field not found on login page")

        req = Request.post(login_url, email=email, password=password, fkey=fkey)
        resp = self.send(req).attempts(1).as_response()
        if resp.status_code != 302:
            raise InvalidCredentials(f"login rejected (HTTP {resp.status_code})")

        self.log.info("Logged in as %s", email)

    def join_room(self, room_id: int) -> None:
        """
        Start watching a room.

        Joining primes the cursor with one batch-boundary fetch, so messages
        still inside the edit window become the baseline rather than being
        reported as new. Joining a room that is already joined does nothing.
        """
        with self._state_lock:
            if room_id in self.cursors:
                return

        messages = next_batch(
            self.fetcher,
            room_id,
            None,
            now=self.clock(),
            edit_window_s=self.config.edit_window_s,
            initial_count=self.config.initial_fetch_count,
        )
        cursor = RoomCursor(
            room_id=room_id,
            last_processed_id=messages[-1].message_id if messages else None,
            last_snapshot=tuple(messages),
        )

        with self._state_lock:
            if room_id in self.cursors:
                # Lost a race with a concurrent join.
                return
            self.cursors[room_id] = cursor
            self.session_store.mark_joined(room_id)

        self.stats.inc("joins")
        self.log.info("Joined room %s (%d messages in baseline)", room_id, len(messages))

    def leave_room(self, room_id: int) -> None:
        with self._state_lock:
            if room_id not in self.cursors:
                return
        fkey = self.session_store.cached_token(room_id)

        # The leave request only removes our avatar from the room's user
        # list, so a failure is logged and otherwise ignored.
        if fkey is not None:
            req = Request.post(self.url(URL_LEAVE, room_id=room_id), quiet="true", fkey=fkey)
            try:
                self.send(req).attempts(1).as_response()
            except Exception:
                self.stats.inc("leave_failures")
                self.log.exception("Problem leaving room %s", room_id)

        with self._state_lock:
            self.cursors.pop(room_id, None)
            self.session_store.mark_left(room_id)

        self.stats.inc("leaves")
        self.log.info("Left room %s", room_id)

    def joined_rooms(self) -> list[int]:
        with self._state_lock:
            return list(self.cursors.keys())

    def send_message(
        self, room_id: int, text: str, split: SplitStrategy = SplitStrategy.NONE
    ) -> list[int]:
        """Post a message, possibly as several parts. Returns the posted message ids."""
        fkey = self.session_store.get_token(room_id)
        url = self.url(URL_NEW_MESSAGE, room_id=room_id)

        ids: list[int] = []
        for part in split_message(text, self.config.max_message_length, split):
            resp = self.send(Request.post(url, text=part, fkey=fkey)).status_codes(200).as_response()
            if resp.not_found:
                # The room had a token, so it exists; a 404 here means our
                # permission to post was revoked.
                raise RoomUnavailable(room_id, "permission to post was revoked")
            ids.append(parse_new_message(resp.json()))
            self.stats.inc("posts")
        return ids

    def get_recent_messages(self, room_id: int, count: int) -> list[Message]:
        return self.fetcher.fetch(room_id, count)

    def delete_message(self, room_id: int, message_id: int) -> ActionResult:
        fkey = self.session_store.get_token(room_id)
        req = Request.post(self.url(URL_DELETE, message_id=message_id), fkey=fkey)
        resp = self.send(req).status_codes(200, 302).as_response()
        if resp.not_found:
            raise RoomUnavailable(room_id, "permission to delete was revoked")
        result = ActionResult(parse_delete_outcome(resp))
        if result.success:
            self.stats.inc("deletes")
        return result

    def edit_message(self, room_id: int, message_id: int, text: str) -> ActionResult:
        fkey = self.session_store.get_token(room_id)
        req = Request.post(self.url(URL_EDIT, message_id=message_id), text=text, fkey=fkey)
        resp = self.send(req).status_codes(200).as_response()
        if resp.not_found:
            raise RoomUnavailable(room_id, "permission to edit was revoked")
        result = ActionResult(parse_edit_outcome(resp))
        if result.success:
            self.stats.inc("edits")
        return result

    def get_user_info(self, user_id: int, room_id: int) -> UserInfo | None:
        req = Request.post(self.url(URL_USER_INFO), ids=user_id, roomId=room_id)
        resp = self.send(req).status_codes(200).as_response()
        if resp.not_found:
            return None
        return parse_user_info(resp.json(), room_id)

    def listen(self, handler: ChatEventHandler) -> None:
        """Poll joined rooms until ``stop`` or ``close`` is called. Blocks."""
        self.log.info("Listening (heartbeat %.1fs)", self.config.heartbeat_s)
        self.poller.run(handler)

    def listen_in_background(self, handler: ChatEventHandler) -> threading.Thread:
        t = threading.Thread(
            target=self.listen, args=(handler,), name="chatpoll-poller", daemon=True
        )
        self._listen_thread = t
        t.start()
        return t

    def stop(self) -> None:
        self._shutdown.set()

    def flush(self) -> None:
        # Posts are sent synchronously; nothing is buffered.
        pass

    def close(self) -> None:
        if self._closed:
            return

        self.flush()
        self.stop()

        t = self._listen_thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=self.config.heartbeat_s + self.config.http_timeout_s)

        for room_id in self.joined_rooms():
            self.leave_room(room_id)

        try:
            self.transport.close()
        finally:
            self._closed = True
            self.session_store.clear_all()
            self.log.info("Connection closed")

    def format_stats(self) -> str:
        return self.stats.format_stats()

    def __enter__(self) -> ChatService:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
