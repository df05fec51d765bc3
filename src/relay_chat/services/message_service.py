from __future__ import annotations

import logging

from relay_chat.application.dto.message import NewMessageDTO
from relay_chat.application.dto.principal import Principal
from relay_chat.application.exceptions import (
    AppError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from relay_chat.application.uow import UnitOfWork
from relay_chat.config import settings
from relay_chat.domain.entities.message import Attachment, Message, ReplyRef
from relay_chat.infrastructure.ws.protocol import ChatMessageFrame

logger = logging.getLogger(__name__)


def build_new_message(
    principal: Principal,
    frame: ChatMessageFrame,
    *,
    max_chars: int | None = None,
    max_attachment_bytes: int | None = None,
) -> NewMessageDTO:
    """Validate an inbound chat frame.

    The sender always comes from the authenticated session, never the frame.
    """
    max_chars = max_chars or settings.MESSAGE_MAX_CHARS
    max_attachment_bytes = max_attachment_bytes or settings.ATTACHMENT_MAX_BYTES

    content = (frame.content or "").strip()
    if len(content) > max_chars:
        raise ValidationError(f"content exceeds {max_chars} characters")

    attachment = None
    if frame.file_url:
        if frame.file_size is not None and frame.file_size > max_attachment_bytes:
            raise ValidationError(f"attachment exceeds {max_attachment_bytes} bytes")
        attachment = Attachment(
            url=frame.file_url,
            name=frame.file_name,
            size=frame.file_size,
            mime_type=frame.file_type,
        )

    if not content and attachment is None:
        raise ValidationError("message needs content or an attachment")

    reply = None
    if frame.reply_to_id:
        reply = ReplyRef(
            message_id=frame.reply_to_id,
            content=(frame.reply_to_message or "")[: settings.REPLY_PREVIEW_CHARS] or None,
            sender=frame.reply_to_sender,
        )

    return NewMessageDTO(
        sender=principal.username,
        content=content,
        attachment=attachment,
        reply=reply,
    )


async def send_message(principal: Principal, frame: ChatMessageFrame, uow: UnitOfWork) -> Message:
    """Validate and persist a chat message.

    Raises ValidationError for bad input and PersistenceError if the store
    fails; in the latter case nothing was committed.
    """
    data = build_new_message(principal, frame)
    try:
        msg = await uow.messages.create(data)
        await uow.commit()
    except AppError:
        raise
    except Exception as exc:
        await uow.rollback()
        raise PersistenceError("failed to persist message") from exc
    return msg


async def list_history(uow: UnitOfWork, limit: int | None = None) -> list[Message]:
    return await uow.messages.list_recent(limit or settings.HISTORY_LIMIT)


async def mark_delivered(message_id: str, uow: UnitOfWork) -> None:
    await uow.messages.mark_delivered(message_id)
    await uow.commit()


async def mark_seen(principal: Principal, message_id: str, uow: UnitOfWork) -> None:
    await uow.messages.mark_seen(message_id, principal.user_id)
    await uow.commit()


async def edit_message(
    principal: Principal,
    message_id: str,
    content: str,
    uow: UnitOfWork,
) -> Message:
    content = content.strip()
    if not content:
        raise ValidationError("content is required")
    if len(content) > settings.MESSAGE_MAX_CHARS:
        raise ValidationError("content is too long")

    existing = await uow.messages.get(message_id)
    if existing is None:
        raise NotFoundError("message not found")

    edited = await uow.messages.edit(message_id, principal.username, content)
    if edited is None:
        raise ForbiddenError("you can only edit your own messages")
    await uow.commit()
    return edited


async def delete_message(principal: Principal, message_id: str, uow: UnitOfWork) -> None:
    existing = await uow.messages.get(message_id)
    if existing is None:
        raise NotFoundError("message not found")
    if not await uow.messages.delete(message_id, principal.username):
        raise ForbiddenError("you can only delete your own messages")
    await uow.commit()
    logger.info("Message %s deleted by %s", message_id, principal.username)
