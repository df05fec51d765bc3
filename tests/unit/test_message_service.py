from __future__ import annotations

import pytest

from relay_chat.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from relay_chat.config import settings
from relay_chat.domain.value_objects.enums import DeliveryStatus
from relay_chat.infrastructure.ws.protocol import ChatMessageFrame, encode, parse_inbound
from relay_chat.services import message_service
from tests.conftest import FakeUoW


@pytest.mark.asyncio
async def test_send_message_persists_with_session_identity(alice):
    uow = FakeUoW()

    msg = await message_service.send_message(alice, ChatMessageFrame(content="  hi there  "), uow)

    assert msg.sender == "alice"
    assert msg.content == "hi there"
    assert msg.id in uow.messages._messages
    assert uow.commits == 1


@pytest.mark.asyncio
async def test_send_message_accepts_attachment_without_text(alice):
    uow = FakeUoW()
    frame = ChatMessageFrame(content="", file_url="/uploads/a.pdf", file_name="a.pdf", file_size=10)

    msg = await message_service.send_message(alice, frame, uow)

    assert msg.content == ""
    assert msg.attachment.name == "a.pdf"


@pytest.mark.parametrize(
    "frame",
    [
        ChatMessageFrame(content="   "),
        ChatMessageFrame(content=None),
        ChatMessageFrame(content="x" * 2001),
        ChatMessageFrame(file_url="/uploads/big.bin", file_size=300 * 1024 * 1024 + 1),
    ],
)
@pytest.mark.asyncio
async def test_send_message_rejects_invalid_frames(alice, frame):
    uow = FakeUoW()

    with pytest.raises(ValidationError):
        await message_service.send_message(alice, frame, uow)
    assert uow.messages._messages == {}
    assert uow.commits == 0


@pytest.mark.asyncio
async def test_store_failure_becomes_persistence_error(alice):
    uow = FakeUoW()
    uow.messages.fail_on_create = True

    with pytest.raises(PersistenceError):
        await message_service.send_message(alice, ChatMessageFrame(content="hi"), uow)
    assert uow.rollbacks == 1
    assert uow.commits == 0


@pytest.mark.asyncio
async def test_reply_snapshot_is_kept(alice):
    uow = FakeUoW()
    frame = ChatMessageFrame(
        content="agreed", reply_to_id="m0", reply_to_message="original", reply_to_sender="bob",
    )

    msg = await message_service.send_message(alice, frame, uow)

    assert msg.reply.message_id == "m0"
    assert msg.reply.content == "original"


@pytest.mark.asyncio
async def test_reply_snapshot_is_clipped_to_preview(alice):
    uow = FakeUoW()
    raw = encode(
        ChatMessageFrame(
            content="文" * settings.MESSAGE_MAX_CHARS,
            reply_to_id="m0",
            reply_to_message="中" * settings.MESSAGE_MAX_CHARS,
            reply_to_sender="bob",
        )
    )
    frame = parse_inbound(raw, settings.WS_MAX_FRAME_BYTES)
    assert isinstance(frame, ChatMessageFrame)

    msg = await message_service.send_message(alice, frame, uow)

    assert msg.reply.content == "中" * settings.REPLY_PREVIEW_CHARS


@pytest.mark.asyncio
async def test_list_history_is_oldest_first(alice):
    uow = FakeUoW()
    for text in ("one", "two", "three"):
        await message_service.send_message(alice, ChatMessageFrame(content=text), uow)

    history = await message_service.list_history(uow, limit=2)

    assert [m.content for m in history] == ["two", "three"]


@pytest.mark.asyncio
async def test_mark_seen_records_reader(alice, bob):
    uow = FakeUoW()
    msg = await message_service.send_message(alice, ChatMessageFrame(content="hi"), uow)
    await message_service.mark_delivered(msg.id, uow)
    await message_service.mark_seen(bob, msg.id, uow)

    stored = uow.messages._messages[msg.id]
    assert stored.delivery_status is DeliveryStatus.SEEN
    assert stored.seen_by == ("user-bob",)


@pytest.mark.asyncio
async def test_edit_own_message(alice):
    uow = FakeUoW()
    msg = await message_service.send_message(alice, ChatMessageFrame(content="draft"), uow)

    edited = await message_service.edit_message(alice, msg.id, " final ", uow)

    assert edited.content == "final"
    assert edited.edited is True
    assert edited.edited_at is not None


@pytest.mark.asyncio
async def test_edit_rejects_other_senders(alice, bob):
    uow = FakeUoW()
    msg = await message_service.send_message(alice, ChatMessageFrame(content="mine"), uow)

    with pytest.raises(ForbiddenError):
        await message_service.edit_message(bob, msg.id, "hijack", uow)
    with pytest.raises(NotFoundError):
        await message_service.edit_message(alice, "missing", "x", uow)
    with pytest.raises(ValidationError):
        await message_service.edit_message(alice, msg.id, "   ", uow)


@pytest.mark.asyncio
async def test_delete_checks_owner(alice, bob):
    uow = FakeUoW()
    msg = await message_service.send_message(alice, ChatMessageFrame(content="bye"), uow)

    with pytest.raises(ForbiddenError):
        await message_service.delete_message(bob, msg.id, uow)

    await message_service.delete_message(alice, msg.id, uow)
    assert msg.id not in uow.messages._messages

    with pytest.raises(NotFoundError):
        await message_service.delete_message(alice, msg.id, uow)
