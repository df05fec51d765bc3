from __future__ import annotations

from relay_chat.domain.entities.message import Attachment, Message, ReplyRef
from relay_chat.domain.value_objects.enums import DeliveryStatus
from relay_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    attachment = None
    if model.file_url:
        attachment = Attachment(
            url=model.file_url,
            name=model.file_name,
            size=model.file_size,
            mime_type=model.file_type,
        )
    reply = None
    if model.reply_to_id:
        reply = ReplyRef(
            message_id=model.reply_to_id,
            content=model.reply_to_message,
            sender=model.reply_to_sender,
        )
    return Message(
        id=model.id,
        sender=model.sender,
        content=model.content,
        timestamp=model.timestamp,
        attachment=attachment,
        delivery_status=DeliveryStatus(model.delivery_status),
        reply=reply,
        edited=model.edited,
        edited_at=model.edited_at,
        seen_by=tuple(model.seen_by or ()),
    )


def entity_to_model(entity: Message) -> MessageModel:
    attachment = entity.attachment
    reply = entity.reply
    return MessageModel(
        id=entity.id,
        sender=entity.sender,
        content=entity.content,
        timestamp=entity.timestamp,
        file_url=attachment.url if attachment else None,
        file_name=attachment.name if attachment else None,
        file_size=attachment.size if attachment else None,
        file_type=attachment.mime_type if attachment else None,
        delivery_status=entity.delivery_status.value,
        seen_by=list(entity.seen_by),
        reply_to_id=reply.message_id if reply else None,
        reply_to_message=reply.content if reply else None,
        reply_to_sender=reply.sender if reply else None,
        edited=entity.edited,
        edited_at=entity.edited_at,
    )
