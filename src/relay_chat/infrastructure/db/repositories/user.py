from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay_chat.domain.entities.user import User
from relay_chat.infrastructure.db.mappers import user as mapper
from relay_chat.infrastructure.db.models.user import UserModel


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: str) -> User | None:
        model = await self._session.get(UserModel, user_id)
        return mapper.model_to_entity(model) if model else None

    async def get_by_username(self, username: str) -> User | None:
        stmt = select(UserModel).where(UserModel.username == username)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def create(self, username: str, password_hash: str) -> User:
        model = UserModel(id=f"user-{uuid.uuid4().hex[:12]}", username=username, password_hash=password_hash)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)
