"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable

import pytest
from pydantic import BaseModel
from starlette.websockets import WebSocketState

from relay_chat.api.deps import get_password_hasher, get_uow_factory, get_verifier
from relay_chat.app import create_app
from relay_chat.application.dto.message import NewMessageDTO
from relay_chat.application.dto.principal import Principal
from relay_chat.client.transport import TransportClosed
from relay_chat.domain.entities.message import Message
from relay_chat.domain.entities.user import User
from relay_chat.domain.value_objects.enums import DeliveryStatus
from relay_chat.infrastructure.ws.protocol import encode

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id="user-alice", username="alice")


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id="user-bob", username="bob")


def make_message(
    message_id: str | None = None,
    *,
    sender: str = "alice",
    content: str = "hello",
    seconds: float = 0,
    **kwargs: Any,
) -> Message:
    return Message(
        id=message_id or uuid.uuid4().hex,
        sender=sender,
        content=content,
        timestamp=BASE_TIME + timedelta(seconds=seconds),
        **kwargs,
    )


# -- persistence fakes ------------------------------------------------------


class PlainHasher:
    """Reversible stand-in for argon2 so tests stay fast."""

    def hash(self, password: str) -> str:
        return f"plain${password}"

    def verify(self, password_hash: str, password: str) -> bool:
        return password_hash == f"plain${password}"


@dataclass
class FakeUserRepo:
    _users: dict[str, User] = field(default_factory=dict)

    async def get_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def get_by_username(self, username: str) -> User | None:
        return next((u for u in self._users.values() if u.username == username), None)

    async def create(self, username: str, password_hash: str) -> User:
        user = User(id=f"user-{username}", username=username, password_hash=password_hash)
        self._users[user.id] = user
        return user

    def add(self, username: str, password: str = "password123") -> User:
        user = User(id=f"user-{username}", username=username, password_hash=PlainHasher().hash(password))
        self._users[user.id] = user
        return user


@dataclass
class FakeMessageRepo:
    _messages: dict[str, Message] = field(default_factory=dict)
    fail_on_create: bool = False
    _tick: int = 0

    async def create(self, data: NewMessageDTO) -> Message:
        if self.fail_on_create:
            raise ConnectionError("database is down")
        self._tick += 1
        msg = Message(
            id=f"m{self._tick}",
            sender=data.sender,
            content=data.content,
            timestamp=BASE_TIME + timedelta(seconds=self._tick),
            attachment=data.attachment,
            reply=data.reply,
        )
        self._messages[msg.id] = msg
        return msg

    async def get(self, message_id: str) -> Message | None:
        return self._messages.get(message_id)

    async def list_recent(self, limit: int = 50) -> list[Message]:
        ordered = sorted(self._messages.values(), key=lambda m: m.timestamp)
        return ordered[-limit:]

    async def mark_delivered(self, message_id: str) -> None:
        msg = self._messages.get(message_id)
        if msg is not None and msg.delivery_status is DeliveryStatus.SENT:
            self._messages[message_id] = msg.with_status(DeliveryStatus.DELIVERED)

    async def mark_seen(self, message_id: str, user_id: str) -> None:
        msg = self._messages.get(message_id)
        if msg is None:
            return
        seen_by = msg.seen_by if user_id in msg.seen_by else (*msg.seen_by, user_id)
        self._messages[message_id] = replace(msg, delivery_status=DeliveryStatus.SEEN, seen_by=seen_by)

    async def edit(self, message_id: str, sender: str, content: str) -> Message | None:
        msg = self._messages.get(message_id)
        if msg is None or msg.sender != sender:
            return None
        edited = replace(msg, content=content, edited=True, edited_at=BASE_TIME + timedelta(hours=1))
        self._messages[message_id] = edited
        return edited

    async def delete(self, message_id: str, sender: str) -> bool:
        msg = self._messages.get(message_id)
        if msg is None or msg.sender != sender:
            return False
        del self._messages[message_id]
        return True


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    users: FakeUserRepo = field(default_factory=FakeUserRepo)
    messages: FakeMessageRepo = field(default_factory=FakeMessageRepo)
    commits: int = 0
    rollbacks: int = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def uow_factory_for(uow: FakeUoW) -> Callable[[], Any]:
    """A UoW factory that hands out the same in-memory store every time."""

    @asynccontextmanager
    async def _factory() -> AsyncIterator[FakeUoW]:
        yield uow

    return _factory


# -- websocket fakes --------------------------------------------------------


class FakeWebSocket:
    """Server-side socket stand-in for ClientConnection tests."""

    def __init__(self, *, stall: bool = False, broken: bool = False) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.closed_with: int | None = None
        self.stall = stall
        self.broken = broken

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise RuntimeError("socket is gone")
        if self.stall:
            await asyncio.sleep(3600)
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = code
        self.application_state = WebSocketState.DISCONNECTED

    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]


# -- client fakes -----------------------------------------------------------


class _FakeHandle:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers fire only inside ``advance``."""

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = 0
        self._timers: list[_FakeHandle] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _FakeHandle:
        self._seq += 1
        handle = _FakeHandle(self._now + delay, self._seq, callback)
        self._timers.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled and not t.fired)

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and not t.fired and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._now = timer.when
            timer.fired = True
            timer.callback()
        self._now = target


class FakeTransport:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed_with: int | None = None
        self._incoming: asyncio.Queue[str | TransportClosed] = asyncio.Queue()

    async def send(self, raw: str) -> None:
        if self.closed_with is not None:
            raise TransportClosed(self.closed_with, "closed")
        self.sent.append(raw)

    async def recv(self) -> str:
        item = await self._incoming.get()
        if isinstance(item, TransportClosed):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = code
        self._incoming.put_nowait(TransportClosed(code, reason))

    def feed(self, frame: BaseModel | str) -> None:
        self._incoming.put_nowait(frame if isinstance(frame, str) else encode(frame))

    def drop(self, code: int, reason: str = "") -> None:
        """Simulate the peer closing the socket."""
        self.closed_with = code
        self._incoming.put_nowait(TransportClosed(code, reason))

    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]


class FakeConnector:
    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.urls: list[str] = []
        self.fail_next = 0

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


async def settle(rounds: int = 10) -> None:
    """Let pending tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


# -- app wiring -------------------------------------------------------------


def make_test_app(uow: FakeUoW):
    app = create_app()
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory_for(uow)
    app.dependency_overrides[get_password_hasher] = PlainHasher
    return app


def issue_token(user_id: str) -> str:
    return get_verifier().issue(user_id)
