from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import URL_EVENTS
from .decoding import parse_messages
from .errors import RoomUnavailable
from .models import Message
from .transport import Request

if TYPE_CHECKING:
    from .service import ChatService


class SnapshotFetcher:
    """Retrieves the most recent messages of a room, oldest first."""

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("chatpoll.fetcher")

    def fetch(self, room_id: int, count: int) -> list[Message]:
        """
        Return the latest ``count`` messages of a room.

        Fewer than ``count`` messages means the room has no older history.
        Transport errors propagate unchanged; a 404 raises RoomUnavailable.
        """
        token = self.hub.session_store.get_token(room_id)

        req = Request.post(
            self.hub.url(URL_EVENTS, room_id=room_id),
            mode="messages",
            msgCount=count,
            fkey=token,
        )
        resp = (
            self.hub.send(req)
            .attempts(self.hub.config.fetch_attempts)
            .status_codes(200)
            .as_response()
        )
        if resp.not_found:
            raise RoomUnavailable(room_id)

        self.hub.stats.inc("fetches")
        messages = parse_messages(resp.json())
        self.log.debug("Fetched %d/%d messages from room %s", len(messages), count, room_id)
        return messages
