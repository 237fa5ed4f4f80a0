"""Value types shared by the fetcher, reconciler, poller and facade."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Message:
    """One chat message as observed in a snapshot.

    Two observations with the same ``message_id`` and different ``content``
    mean the message was edited between them.
    """

    message_id: int
    room_id: int
    user_id: int
    username: str
    content: str
    timestamp: datetime


@dataclass(frozen=True)
class UserInfo:
    user_id: int
    room_id: int
    username: str
    profile_picture: str
    reputation: int
    moderator: bool
    owner: bool
    last_post: datetime | None
    last_seen: datetime | None


@dataclass
class RoomSession:
    """Per-room authorization state held by the session store."""

    room_id: int
    token: str | None = None
    joined: bool = False


@dataclass
class RoomCursor:
    """Per-room bookkeeping for the poller.

    ``last_processed_id`` is None only when the room was empty at join time.
    ``last_snapshot`` is the full trimmed snapshot from the previous tick and
    is what edits are diffed against.
    """

    room_id: int
    last_processed_id: int | None = None
    last_snapshot: tuple[Message, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LobbyPage:
    room_exists: bool
    token: str | None
    posting_allowed: bool

    @property
    def token_found(self) -> bool:
        return self.token is not None


class Outcome(str, Enum):
    """Result of an edit or delete request.

    Attributes:
        OK: The change was applied.
        ALREADY_DELETED: The message was deleted earlier.
        TOO_LATE: The edit/delete window has passed.
        NOT_YOUR_MESSAGE: Only the author may change the message.
        NONEXISTENT: No message with that id ever existed.
    """

    OK = "ok"
    ALREADY_DELETED = "already-deleted"
    TOO_LATE = "too-late"
    NOT_YOUR_MESSAGE = "not-your-message"
    NONEXISTENT = "nonexistent"


@dataclass(frozen=True)
class ActionResult:
    outcome: Outcome

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.OK

    @property
    def reason(self) -> str:
        return self.outcome.value


class ChatEventHandler:
    """Receives events from the poller.

    Both callbacks run on the poller's thread, in dispatch order. A handler
    that blocks stalls polling for every room.
    """

    def on_message(self, message: Message) -> None:
        pass

    def on_message_edited(self, message: Message) -> None:
        pass
