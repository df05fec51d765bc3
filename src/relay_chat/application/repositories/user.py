from __future__ import annotations

from typing import Protocol

from relay_chat.domain.entities.user import User


class UserRepository(Protocol):
    async def get_by_id(self, user_id: str) -> User | None: ...

    async def get_by_username(self, username: str) -> User | None: ...

    async def create(self, username: str, password_hash: str) -> User: ...
