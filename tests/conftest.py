"""In-memory chat server and helpers shared by the tests."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

import pytest

from chatpoll.config import ChatRuntimeConfig
from chatpoll.errors import TransportFailure
from chatpoll.models import ChatEventHandler, Message
from chatpoll.service import ChatService
from chatpoll.transport import Request, Response, Transport

FKEY = "0123456789abcdef0123456789abcdef"
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeChatServer(Transport):
    """Answers chatpoll requests the way the chat site does, from memory."""

    def __init__(self, clock: FakeClock, *, me: int = 1, password: str = "secret") -> None:
        self.clock = clock
        self.me = me
        self.password = password
        self.rooms: dict[int, list[dict]] = {}
        self.unpostable: set[int] = set()
        self.revoked: set[int] = set()
        self.users: dict[int, dict] = {}
        self.deleted: set[int] = set()
        self.requests: list[Request] = []
        self.fetch_counts: list[tuple[int, int]] = []
        self.failing_rooms: set[int] = set()
        self.fail_next = 0
        self.leave_error: Exception | None = None
        self.lobby_without_fkey = False
        self.on_events: Callable[[int], None] | None = None
        self.closed = False
        self._next_id = 100

    # -- test setup helpers ------------------------------------------------

    def add_room(self, room_id: int, *, postable: bool = True) -> None:
        self.rooms.setdefault(room_id, [])
        if not postable:
            self.unpostable.add(room_id)

    def post(
        self,
        room_id: int,
        content: str,
        *,
        at: datetime | None = None,
        user_id: int = 2,
        username: str = "alice",
    ) -> int:
        mid = self._next_id
        self._next_id += 1
        when = at or self.clock()
        self.rooms[room_id].append(
            {
                "message_id": mid,
                "room_id": room_id,
                "user_id": user_id,
                "user_name": username,
                "content": content,
                "time_stamp": int(when.timestamp()),
            }
        )
        return mid

    def edit(self, message_id: int, content: str) -> None:
        self._find(message_id)["content"] = content

    def _find(self, message_id: int) -> dict:
        for events in self.rooms.values():
            for ev in events:
                if ev["message_id"] == message_id:
                    return ev
        raise KeyError(message_id)

    def requests_to(self, path_fragment: str) -> list[Request]:
        return [r for r in self.requests if path_fragment in r.url]

    # -- Transport ---------------------------------------------------------

    def execute(self, request: Request) -> Response:
        self.requests.append(request)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise TransportFailure("connection reset")

        parts = urlsplit(request.url)
        path = parts.path
        data = request.data or {}

        if parts.netloc == "stackoverflow.com" and path == "/users/login":
            if request.method == "GET":
                return Response(200, f'<input name="fkey" value="{FKEY}">')
            ok = data.get("password") == self.password and data.get("fkey") == FKEY
            return Response(302 if ok else 200, "")

        m = re.fullmatch(r"/rooms/(\d+)", path)
        if m:
            return self._lobby(int(m.group(1)))

        m = re.fullmatch(r"/chats/(\d+)/events", path)
        if m:
            return self._events(int(m.group(1)), int(data["msgCount"]))

        m = re.fullmatch(r"/chats/(\d+)/messages/new", path)
        if m:
            room_id = int(m.group(1))
            if room_id not in self.rooms or room_id in self.revoked:
                return Response(404, "The room does not exist, or you do not have permission")
            mid = self.post(room_id, data["text"], user_id=self.me, username="me")
            return Response(200, json.dumps({"id": mid, "time": int(self.clock().timestamp())}))

        m = re.fullmatch(r"/chats/leave/(\d+)", path)
        if m:
            if self.leave_error is not None:
                raise self.leave_error
            return Response(200, "")

        m = re.fullmatch(r"/messages/(\d+)/delete", path)
        if m:
            return self._delete(int(m.group(1)))

        m = re.fullmatch(r"/messages/(\d+)", path)
        if m:
            return self._edit(int(m.group(1)), data["text"])

        if path == "/user/info":
            if int(data["roomId"]) not in self.rooms:
                return Response(404, "")
            user = self.users.get(int(data["ids"]))
            return Response(200, json.dumps({"users": [user] if user else []}))

        return Response(404, "no route")

    def close(self) -> None:
        self.closed = True

    def _lobby(self, room_id: int) -> Response:
        if room_id not in self.rooms:
            return Response(404, "<html>not found</html>")
        page = "<html>"
        if not self.lobby_without_fkey:
            page += f'<input id="fkey" value="{FKEY}">'
        if room_id not in self.unpostable:
            page += '<textarea id="input"></textarea>'
        return Response(200, page + "</html>")

    def _events(self, room_id: int, count: int) -> Response:
        self.fetch_counts.append((room_id, count))
        if self.on_events is not None:
            self.on_events(room_id)
        if room_id in self.failing_rooms:
            raise TransportFailure("timed out")
        if room_id not in self.rooms:
            return Response(404, "")
        events = [dict(ev) for ev in self.rooms[room_id] if ev["message_id"] not in self.deleted]
        return Response(200, json.dumps({"events": events[-count:]}))

    def _edit(self, message_id: int, text: str) -> Response:
        try:
            ev = self._find(message_id)
        except KeyError:
            return Response(200, json.dumps("This message has already been deleted and cannot be edited"))
        if ev["room_id"] in self.revoked:
            return Response(404, "")
        if message_id in self.deleted:
            return Response(200, json.dumps("This message has already been deleted and cannot be edited"))
        if ev["user_id"] != self.me:
            return Response(200, json.dumps("You can only edit your own messages"))
        if self.clock().timestamp() - ev["time_stamp"] > 120:
            return Response(200, json.dumps("It is too late to edit this message"))
        ev["content"] = text
        return Response(200, json.dumps("ok"))

    def _delete(self, message_id: int) -> Response:
        try:
            ev = self._find(message_id)
        except KeyError:
            return Response(302, "")
        if ev["room_id"] in self.revoked:
            return Response(404, "")
        if message_id in self.deleted:
            return Response(200, json.dumps("This message has already been deleted."))
        if ev["user_id"] != self.me:
            return Response(200, json.dumps("You can only delete your own messages"))
        self.deleted.add(message_id)
        return Response(200, json.dumps("ok"))


class RecordingHandler(ChatEventHandler):
    def __init__(self) -> None:
        self.events: list[tuple[str, int, str]] = []

    def on_message(self, message: Message) -> None:
        self.events.append(("new", message.message_id, message.content))

    def on_message_edited(self, message: Message) -> None:
        self.events.append(("edited", message.message_id, message.content))


def make_message(message_id: int, at: datetime, content: str = "hi", room_id: int = 1) -> Message:
    return Message(
        message_id=message_id,
        room_id=room_id,
        user_id=2,
        username="alice",
        content=content,
        timestamp=at,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def server(clock: FakeClock) -> FakeChatServer:
    return FakeChatServer(clock)


@pytest.fixture
def config() -> ChatRuntimeConfig:
    return ChatRuntimeConfig(heartbeat_s=0.0, retry_pause_s=0.0)


@pytest.fixture
def service(config: ChatRuntimeConfig, server: FakeChatServer, clock: FakeClock) -> ChatService:
    return ChatService(config, transport=server, clock=clock, sleep=lambda s: None)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()
