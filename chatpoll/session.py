from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from .constants import URL_LOBBY
from .decoding import parse_lobby
from .errors import PermissionDenied, ProtocolViolation, RoomUnavailable
from .models import RoomSession
from .transport import Request

if TYPE_CHECKING:
    from .service import ChatService


class SessionStore:
    """
    Holds per-room authorization state for a chat connection.

    This class is responsible for:
    - Fetching each room's fkey token on first need and caching it for the
      rest of the login session
    - Translating the room page into RoomUnavailable / PermissionDenied
    - Tracking which rooms are joined

    Map reads and writes happen under the service's state lock. The network
    fetch for a missing token happens outside it, serialized by a separate
    lock so that concurrent callers fetch a room page at most once.
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("chatpoll.session")
        self.sessions: dict[int, RoomSession] = {}
        self._token_fetch_lock = threading.Lock()

    def _session(self, room_id: int) -> RoomSession:
        """Get or create the session entry. Must be called with state lock held."""
        sess = self.sessions.get(room_id)
        if sess is None:
            sess = RoomSession(room_id=room_id)
            self.sessions[room_id] = sess
        return sess

    def cached_token(self, room_id: int) -> str | None:
        with self.hub._state_lock:
            sess = self.sessions.get(room_id)
            return sess.token if sess is not None else None

    def get_token(self, room_id: int) -> str:
        """Return the room's token, fetching the room page if it is not cached."""
        token = self.cached_token(room_id)
        if token is not None:
            return token

        with self._token_fetch_lock:
            token = self.cached_token(room_id)
            if token is not None:
                return token

            url = self.hub.url(URL_LOBBY, room_id=room_id)
            resp = self.hub.send(Request.get(url)).status_codes(200).as_response()
            page = parse_lobby(resp)

            if not page.room_exists:
                raise RoomUnavailable(room_id)
            if page.token is None:
                raise ProtocolViolation(f"fkey not found on page of room {room_id}")
            if not page.posting_allowed:
                raise PermissionDenied(room_id)

            with self.hub._state_lock:
                self._session(room_id).token = page.token

            self.log.debug("Cached fkey for room %s", room_id)
            return page.token

    def is_joined(self, room_id: int) -> bool:
        with self.hub._state_lock:
            sess = self.sessions.get(room_id)
            return bool(sess is not None and sess.joined)

    def mark_joined(self, room_id: int) -> None:
        with self.hub._state_lock:
            self._session(room_id).joined = True

    def mark_left(self, room_id: int) -> None:
        # Tokens stay valid for the whole login session; keep them cached.
        with self.hub._state_lock:
            sess = self.sessions.get(room_id)
            if sess is not None:
                sess.joined = False

    def joined_rooms(self) -> list[int]:
        with self.hub._state_lock:
            return [r for r, s in self.sessions.items() if s.joined]

    def clear_all(self) -> None:
        """Forget every token and join flag. Called when the connection closes."""
        with self.hub._state_lock:
            self.sessions.clear()

    def get_stats(self) -> dict[str, Any]:
        with self.hub._state_lock:
            return {
                "rooms_known": len(self.sessions),
                "rooms_joined": sum(1 for s in self.sessions.values() if s.joined),
                "tokens_cached": sum(1 for s in self.sessions.values() if s.token),
            }
