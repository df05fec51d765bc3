"""Handlers for frames received on an authenticated relay connection."""
from __future__ import annotations

import logging

from relay_chat.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from relay_chat.application.uow import UoWFactory
from relay_chat.domain.entities.message import Message
from relay_chat.domain.value_objects.enums import DeliveryStatus
from relay_chat.infrastructure.ws.protocol import (
    AuthFrame,
    ChatMessageFrame,
    DeleteMessageFrame,
    EditMessageFrame,
    ErrorEvent,
    InboundFrame,
    MessageDeletedEvent,
    MessageEditedEvent,
    MessageEvent,
    MessagePayload,
    MessageSeenFrame,
    MessageStatusEvent,
    PingFrame,
    PongEvent,
    TypingEvent,
    TypingFrame,
)
from relay_chat.infrastructure.ws.registry import ClientConnection, ConnectionRegistry
from relay_chat.services import message_service

logger = logging.getLogger(__name__)


async def handle_frame(
    conn: ClientConnection,
    frame: InboundFrame,
    *,
    registry: ConnectionRegistry,
    uow_factory: UoWFactory,
) -> None:
    if conn.principal is None:
        raise RuntimeError("frame dispatched on an unauthenticated connection")

    if isinstance(frame, ChatMessageFrame):
        await _handle_chat_message(conn, frame, registry, uow_factory)
    elif isinstance(frame, TypingFrame):
        await registry.broadcast(
            TypingEvent(sender=conn.principal.username, is_typing=frame.is_typing),
            exclude=conn,
        )
    elif isinstance(frame, MessageSeenFrame):
        await _handle_seen(conn, frame, registry, uow_factory)
    elif isinstance(frame, EditMessageFrame):
        await _handle_edit(conn, frame, registry, uow_factory)
    elif isinstance(frame, DeleteMessageFrame):
        await _handle_delete(conn, frame, registry, uow_factory)
    elif isinstance(frame, PingFrame):
        await conn.send(PongEvent())
    elif isinstance(frame, AuthFrame):
        logger.debug("Ignoring repeated auth from %s", conn.label)


async def broadcast_message(registry: ConnectionRegistry, msg: Message) -> int:
    return await registry.broadcast(MessageEvent(data=MessagePayload.from_entity(msg)))


async def broadcast_edit(registry: ConnectionRegistry, msg: Message) -> int:
    return await registry.broadcast(MessageEditedEvent(data=MessagePayload.from_entity(msg)))


async def broadcast_delete(registry: ConnectionRegistry, message_id: str, deleted_by: str) -> int:
    return await registry.broadcast(MessageDeletedEvent(message_id=message_id, deleted_by=deleted_by))


async def _handle_chat_message(
    conn: ClientConnection,
    frame: ChatMessageFrame,
    registry: ConnectionRegistry,
    uow_factory: UoWFactory,
) -> None:
    async with uow_factory() as uow:
        try:
            msg = await message_service.send_message(conn.principal, frame, uow)
        except ValidationError as exc:
            logger.info("Rejected message from %s: %s", conn.label, exc.detail)
            await conn.send(ErrorEvent(message=exc.detail, code="invalid_message"))
            return
        except PersistenceError:
            # No broadcast means no echo; the sender's own timeout covers it.
            logger.exception("Message from %s not persisted", conn.label)
            return

    delivered = await broadcast_message(registry, msg)
    logger.debug("Message %s broadcast to %d connections", msg.id, delivered)

    try:
        async with uow_factory() as uow:
            await message_service.mark_delivered(msg.id, uow)
    except Exception:
        logger.exception("Failed to mark message %s delivered", msg.id)
        return
    await conn.send(MessageStatusEvent(message_id=msg.id, status=DeliveryStatus.DELIVERED))


async def _handle_seen(
    conn: ClientConnection,
    frame: MessageSeenFrame,
    registry: ConnectionRegistry,
    uow_factory: UoWFactory,
) -> None:
    async with uow_factory() as uow:
        await message_service.mark_seen(conn.principal, frame.message_id, uow)
    await registry.broadcast(
        MessageStatusEvent(
            message_id=frame.message_id,
            status=DeliveryStatus.SEEN,
            user_id=conn.principal.user_id,
        ),
        exclude=conn,
    )


async def _handle_edit(
    conn: ClientConnection,
    frame: EditMessageFrame,
    registry: ConnectionRegistry,
    uow_factory: UoWFactory,
) -> None:
    async with uow_factory() as uow:
        try:
            edited = await message_service.edit_message(conn.principal, frame.message_id, frame.content, uow)
        except (ValidationError, NotFoundError, ForbiddenError) as exc:
            await conn.send(
                ErrorEvent(message=f"Failed to edit message. {exc.detail}", code="edit_failed")
            )
            return
    await broadcast_edit(registry, edited)


async def _handle_delete(
    conn: ClientConnection,
    frame: DeleteMessageFrame,
    registry: ConnectionRegistry,
    uow_factory: UoWFactory,
) -> None:
    async with uow_factory() as uow:
        try:
            await message_service.delete_message(conn.principal, frame.message_id, uow)
        except (NotFoundError, ForbiddenError) as exc:
            await conn.send(
                ErrorEvent(message=f"Failed to delete message. {exc.detail}", code="delete_failed")
            )
            return
    await broadcast_delete(registry, frame.message_id, conn.principal.username)
