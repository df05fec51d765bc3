from __future__ import annotations

from typing import Protocol

from relay_chat.application.dto.message import NewMessageDTO
from relay_chat.domain.entities.message import Message


class MessageRepository(Protocol):
    async def create(self, data: NewMessageDTO) -> Message:
        """Persist a new message. The store assigns id and timestamp."""
        ...

    async def get(self, message_id: str) -> Message | None: ...

    async def list_recent(self, limit: int = 50) -> list[Message]:
        """Most recent ``limit`` messages, oldest first."""
        ...

    async def mark_delivered(self, message_id: str) -> None: ...

    async def mark_seen(self, message_id: str, user_id: str) -> None: ...

    async def edit(self, message_id: str, sender: str, content: str) -> Message | None:
        """Return the edited message, or None if missing or not owned by ``sender``."""
        ...

    async def delete(self, message_id: str, sender: str) -> bool: ...
