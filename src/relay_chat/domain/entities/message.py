from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from relay_chat.domain.value_objects.enums import DeliveryStatus


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    name: str | None = None
    size: int | None = None
    mime_type: str | None = None


@dataclass(frozen=True, slots=True)
class ReplyRef:
    """Snapshot of the replied-to message, kept even if the original changes."""

    message_id: str
    content: str | None = None
    sender: str | None = None


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    sender: str
    content: str
    timestamp: datetime
    attachment: Attachment | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.SENT
    reply: ReplyRef | None = None
    edited: bool = False
    edited_at: datetime | None = None
    seen_by: tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_attachment(self) -> bool:
        return self.attachment is not None and bool(self.attachment.url)

    def with_status(self, status: DeliveryStatus) -> Message:
        return replace(self, delivery_status=status)
