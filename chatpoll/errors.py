"""Error taxonomy for chat connections.

Every failure surfaced by chatpoll is one of these kinds; callers never
need to catch a generic ``Exception`` or an ``httpx`` error.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all chatpoll errors."""


class RoomUnavailable(ChatError):
    """The room does not exist, or access to it was revoked."""

    def __init__(self, room_id: int, detail: str | None = None) -> None:
        self.room_id = room_id
        msg = f"room {room_id} is unavailable"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class PermissionDenied(ChatError):
    """The room exists but the logged-in user may not post to it."""

    def __init__(self, room_id: int) -> None:
        self.room_id = room_id
        super().__init__(f"not allowed to post to room {room_id}")


class InvalidCredentials(ChatError):
    """Login was rejected."""


class TransportFailure(ChatError):
    """A request failed after the transport exhausted its attempts."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProtocolViolation(ChatError):
    """A response did not have the shape the decoder expected."""
