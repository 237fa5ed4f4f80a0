"""Decoding of chat site responses into model objects."""

from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from typing import Any

from .constants import (
    DELETE_ALREADY_DELETED,
    DELETE_NOT_YOURS,
    DELETE_OK,
    DELETE_TOO_LATE,
    EDIT_ALREADY_DELETED,
    EDIT_NOT_YOURS,
    EDIT_OK,
    EDIT_TOO_LATE,
    FKEY_PATTERN,
    GRAVATAR_URL,
    POST_INPUT_MARKER,
)
from .errors import ProtocolViolation
from .models import LobbyPage, Message, Outcome, UserInfo
from .transport import Response

_fkey_re = re.compile(FKEY_PATTERN)

_EDIT_OUTCOMES: dict[str, Outcome] = {
    EDIT_OK: Outcome.OK,
    EDIT_ALREADY_DELETED: Outcome.ALREADY_DELETED,
    EDIT_TOO_LATE: Outcome.TOO_LATE,
    EDIT_NOT_YOURS: Outcome.NOT_YOUR_MESSAGE,
}

_DELETE_OUTCOMES: dict[str, Outcome] = {
    DELETE_OK: Outcome.OK,
    DELETE_ALREADY_DELETED: Outcome.ALREADY_DELETED,
    DELETE_TOO_LATE: Outcome.TOO_LATE,
    DELETE_NOT_YOURS: Outcome.NOT_YOUR_MESSAGE,
}


def timestamp(epoch_s: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(epoch_s), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as e:
        raise ProtocolViolation(f"bad timestamp {epoch_s!r}") from e


def parse_fkey(page: str) -> str | None:
    m = _fkey_re.search(page)
    return m.group(1) if m else None


def parse_lobby(resp: Response) -> LobbyPage:
    # The site also answers 404 for inactive rooms the user lacks the
    # privileges to see; both are "does not exist" from our side.
    return LobbyPage(
        room_exists=not resp.not_found,
        token=parse_fkey(resp.text),
        posting_allowed=POST_INPUT_MARKER in resp.text,
    )


def _require(obj: dict, key: str) -> Any:
    if key not in obj or obj[key] is None:
        raise ProtocolViolation(f"missing field {key!r}")
    return obj[key]


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ProtocolViolation(f"field {key!r} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ProtocolViolation(f"field {key!r} must be an integer") from e


def parse_message(event: Any) -> Message:
    if not isinstance(event, dict):
        raise ProtocolViolation("message event must be an object")

    content = event.get("content")
    return Message(
        message_id=_as_int(_require(event, "message_id"), "message_id"),
        room_id=_as_int(event.get("room_id", 0), "room_id"),
        user_id=_as_int(event.get("user_id", 0), "user_id"),
        username=str(event.get("user_name") or ""),
        content=html.unescape(str(content)) if content is not None else "",
        timestamp=timestamp(_require(event, "time_stamp")),
    )


def parse_messages(body: Any) -> list[Message]:
    """Decode a snapshot body, keeping the server's oldest-first order."""
    if not isinstance(body, dict):
        raise ProtocolViolation("snapshot body must be an object")

    events = body.get("events")
    if events is None:
        return []
    if not isinstance(events, list):
        raise ProtocolViolation("'events' must be a list")
    return [parse_message(e) for e in events]


def parse_new_message(body: Any) -> int:
    # {"id":36436674,"time":1491157087}
    if not isinstance(body, dict):
        raise ProtocolViolation("new message body must be an object")
    return _as_int(_require(body, "id"), "id")


def _outcome_text(resp: Response) -> str:
    try:
        value = resp.json()
    except ProtocolViolation:
        value = resp.text
    return value if isinstance(value, str) else str(value)


def parse_edit_outcome(resp: Response) -> Outcome:
    text = _outcome_text(resp)
    try:
        return _EDIT_OUTCOMES[text]
    except KeyError:
        raise ProtocolViolation(f"unexpected edit response {text[:200]!r}") from None


def parse_delete_outcome(resp: Response) -> Outcome:
    # A redirect means the id never referenced a message.
    if resp.status_code == 302:
        return Outcome.NONEXISTENT
    text = _outcome_text(resp)
    try:
        return _DELETE_OUTCOMES[text]
    except KeyError:
        raise ProtocolViolation(f"unexpected delete response {text[:200]!r}") from None


def profile_picture(email_hash: str) -> str:
    if email_hash.startswith("!"):
        return email_hash[1:]
    return GRAVATAR_URL.format(hash=email_hash)


def parse_user_info(body: Any, room_id: int) -> UserInfo | None:
    if not isinstance(body, dict):
        raise ProtocolViolation("user info body must be an object")
    users = body.get("users")
    if not isinstance(users, list):
        raise ProtocolViolation("'users' must be a list")
    if not users:
        return None

    user = users[0]
    if not isinstance(user, dict):
        raise ProtocolViolation("user entry must be an object")

    last_post = user.get("last_post")
    last_seen = user.get("last_seen")
    return UserInfo(
        user_id=_as_int(_require(user, "id"), "id"),
        room_id=room_id,
        username=str(_require(user, "name")),
        profile_picture=profile_picture(str(user.get("email_hash") or "")),
        reputation=_as_int(user.get("reputation", 0), "reputation"),
        moderator=bool(user.get("is_moderator", False)),
        owner=bool(user.get("is_owner", False)),
        last_post=timestamp(last_post) if last_post is not None else None,
        last_seen=timestamp(last_seen) if last_seen is not None else None,
    )
