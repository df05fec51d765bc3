from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from relay_chat.application.repositories.message import MessageRepository
from relay_chat.application.repositories.user import UserRepository


class UnitOfWork(Protocol):
    users: UserRepository
    messages: MessageRepository

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


# The relay opens a short-lived unit of work per inbound frame.
UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
