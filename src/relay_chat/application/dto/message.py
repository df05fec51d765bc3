from __future__ import annotations

from dataclasses import dataclass

from relay_chat.domain.entities.message import Attachment, ReplyRef


@dataclass(frozen=True, slots=True)
class NewMessageDTO:
    """Validated input for the message store; id and timestamp are assigned there."""

    sender: str
    content: str
    attachment: Attachment | None = None
    reply: ReplyRef | None = None
