from __future__ import annotations

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from relay_chat.application.dto.message import NewMessageDTO
from relay_chat.application.ports.clock import Clock, MonotonicClock
from relay_chat.domain.entities.message import Message
from relay_chat.domain.value_objects.enums import DeliveryStatus
from relay_chat.infrastructure.db.mappers import message as mapper
from relay_chat.infrastructure.db.models.message import MessageModel

# Shared across sessions so timestamps stay non-decreasing per process.
_default_clock = MonotonicClock()


class MessageRepo:
    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or _default_clock

    async def create(self, data: NewMessageDTO) -> Message:
        entity = Message(
            id=uuid.uuid4().hex,
            sender=data.sender,
            content=data.content,
            timestamp=self._clock.now(),
            attachment=data.attachment,
            reply=data.reply,
        )
        self._session.add(mapper.entity_to_model(entity))
        await self._session.flush()
        return entity

    async def get(self, message_id: str) -> Message | None:
        model = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(model) if model else None

    async def list_recent(self, limit: int = 50) -> list[Message]:
        stmt = (
            select(MessageModel)
            .order_by(MessageModel.timestamp.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return [mapper.model_to_entity(m) for m in rows]

    async def mark_delivered(self, message_id: str) -> None:
        model = await self._session.get(MessageModel, message_id)
        if model is not None and model.delivery_status == DeliveryStatus.SENT:
            model.delivery_status = DeliveryStatus.DELIVERED.value
            await self._session.flush()

    async def mark_seen(self, message_id: str, user_id: str) -> None:
        model = await self._session.get(MessageModel, message_id)
        if model is None:
            return
        model.delivery_status = DeliveryStatus.SEEN.value
        if user_id not in (model.seen_by or []):
            # Reassign so the JSONB column is flagged dirty.
            model.seen_by = [*(model.seen_by or []), user_id]
        await self._session.flush()

    async def edit(self, message_id: str, sender: str, content: str) -> Message | None:
        model = await self._session.get(MessageModel, message_id)
        if model is None or model.sender != sender:
            return None
        model.content = content
        model.edited = True
        model.edited_at = self._clock.now()
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def delete(self, message_id: str, sender: str) -> bool:
        stmt = (
            delete(MessageModel)
            .where(MessageModel.id == message_id, MessageModel.sender == sender)
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None
