"""WebSocket frame models.

Every frame is a JSON object tagged by ``type``. Inbound (client -> relay)
and outbound (relay -> client) frames are separate discriminated unions so
an unknown or mistyped frame fails at the parse boundary. ``parse_inbound``
and ``parse_outbound`` return a ``ProtocolError`` value instead of raising.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from relay_chat.domain.entities.message import Attachment, Message, ReplyRef
from relay_chat.domain.value_objects.enums import DeliveryStatus

# Numeric epochs above this are milliseconds, below it seconds.
_EPOCH_MS_THRESHOLD = 1e11


def normalize_timestamp(value: Any) -> datetime:
    """Coerce an ISO-8601 string, epoch number or datetime to aware UTC."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > _EPOCH_MS_THRESHOLD else value
        ts = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"unsupported timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class _Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# -- client -> relay --------------------------------------------------------


class AuthFrame(_Frame):
    type: Literal["auth"] = "auth"
    token: str | None = None


class ChatMessageFrame(_Frame):
    type: Literal["message"] = "message"
    content: str | None = None
    file_url: str | None = Field(None, alias="fileUrl")
    file_name: str | None = Field(None, alias="fileName")
    file_size: int | None = Field(None, alias="fileSize", ge=0)
    file_type: str | None = Field(None, alias="fileType")
    reply_to_id: str | None = Field(None, alias="replyToId")
    reply_to_message: str | None = Field(None, alias="replyToMessage")
    reply_to_sender: str | None = Field(None, alias="replyToSender")
    # A client-side "timestamp" is dropped by extra="ignore"; the store assigns it.


class TypingFrame(_Frame):
    type: Literal["typing"] = "typing"
    is_typing: bool = Field(alias="isTyping")


class MessageSeenFrame(_Frame):
    type: Literal["message_seen"] = "message_seen"
    message_id: str = Field(alias="messageId", min_length=1)


class EditMessageFrame(_Frame):
    type: Literal["edit_message"] = "edit_message"
    message_id: str = Field(alias="messageId", min_length=1)
    content: str


class DeleteMessageFrame(_Frame):
    type: Literal["delete_message"] = "delete_message"
    message_id: str = Field(alias="messageId", min_length=1)


class PingFrame(_Frame):
    type: Literal["ping"] = "ping"


InboundFrame = Annotated[
    Union[
        AuthFrame,
        ChatMessageFrame,
        TypingFrame,
        MessageSeenFrame,
        EditMessageFrame,
        DeleteMessageFrame,
        PingFrame,
    ],
    Field(discriminator="type"),
]


# -- relay -> client --------------------------------------------------------


class MessagePayload(_Frame):
    """Persisted message as it travels over the wire."""

    id: str
    sender: str
    content: str = ""
    timestamp: datetime
    file_url: str | None = Field(None, alias="fileUrl")
    file_name: str | None = Field(None, alias="fileName")
    file_size: int | None = Field(None, alias="fileSize")
    file_type: str | None = Field(None, alias="fileType")
    delivery_status: DeliveryStatus = Field(DeliveryStatus.SENT, alias="deliveryStatus")
    reply_to_id: str | None = Field(None, alias="replyToId")
    reply_to_message: str | None = Field(None, alias="replyToMessage")
    reply_to_sender: str | None = Field(None, alias="replyToSender")
    edited: bool = False
    edited_at: datetime | None = Field(None, alias="editedAt")
    seen_by: list[str] = Field(default_factory=list, alias="seenBy")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> datetime:
        return normalize_timestamp(value)

    @field_validator("edited_at", mode="before")
    @classmethod
    def _normalize_edited_at(cls, value: Any) -> datetime | None:
        return None if value is None else normalize_timestamp(value)

    @field_validator("content", mode="before")
    @classmethod
    def _content_not_null(cls, value: Any) -> str:
        return "" if value is None else value

    @classmethod
    def from_entity(cls, msg: Message) -> MessagePayload:
        att = msg.attachment
        reply = msg.reply
        return cls(
            id=msg.id,
            sender=msg.sender,
            content=msg.content,
            timestamp=msg.timestamp,
            file_url=att.url if att else None,
            file_name=att.name if att else None,
            file_size=att.size if att else None,
            file_type=att.mime_type if att else None,
            delivery_status=msg.delivery_status,
            reply_to_id=reply.message_id if reply else None,
            reply_to_message=reply.content if reply else None,
            reply_to_sender=reply.sender if reply else None,
            edited=msg.edited,
            edited_at=msg.edited_at,
            seen_by=list(msg.seen_by),
        )

    def to_entity(self) -> Message:
        attachment = None
        if self.file_url:
            attachment = Attachment(
                url=self.file_url,
                name=self.file_name,
                size=self.file_size,
                mime_type=self.file_type,
            )
        reply = None
        if self.reply_to_id:
            reply = ReplyRef(
                message_id=self.reply_to_id,
                content=self.reply_to_message,
                sender=self.reply_to_sender,
            )
        return Message(
            id=self.id,
            sender=self.sender,
            content=self.content,
            timestamp=self.timestamp,
            attachment=attachment,
            delivery_status=self.delivery_status,
            reply=reply,
            edited=self.edited,
            edited_at=self.edited_at,
            seen_by=tuple(self.seen_by),
        )


class AuthResult(_Frame):
    type: Literal["auth"] = "auth"
    success: bool


class MessageEvent(_Frame):
    type: Literal["message"] = "message"
    data: MessagePayload


class TypingEvent(_Frame):
    type: Literal["typing"] = "typing"
    sender: str
    is_typing: bool = Field(alias="isTyping")


class MessageStatusEvent(_Frame):
    type: Literal["message_status"] = "message_status"
    message_id: str = Field(alias="messageId")
    status: DeliveryStatus
    user_id: str | None = Field(None, alias="userId")


class MessageEditedEvent(_Frame):
    type: Literal["message_edited"] = "message_edited"
    data: MessagePayload


class MessageDeletedEvent(_Frame):
    type: Literal["message_deleted"] = "message_deleted"
    message_id: str = Field(alias="messageId")
    deleted_by: str = Field(alias="deletedBy")


class ErrorEvent(_Frame):
    type: Literal["error"] = "error"
    message: str
    code: str = "error"


class PongEvent(_Frame):
    type: Literal["pong"] = "pong"


OutboundFrame = Annotated[
    Union[
        AuthResult,
        MessageEvent,
        TypingEvent,
        MessageStatusEvent,
        MessageEditedEvent,
        MessageDeletedEvent,
        ErrorEvent,
        PongEvent,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)
_outbound_adapter: TypeAdapter[OutboundFrame] = TypeAdapter(OutboundFrame)


@dataclass(frozen=True, slots=True)
class ProtocolError:
    """A frame that could not be decoded. Never fatal to the connection."""

    code: Literal["invalid_json", "invalid_payload", "too_large"]
    detail: str = ""


def _parse(adapter: TypeAdapter[Any], raw: str | bytes, max_bytes: int | None) -> Any:
    size = len(raw.encode() if isinstance(raw, str) else raw)
    if max_bytes is not None and size > max_bytes:
        return ProtocolError("too_large", f"{size} bytes exceeds {max_bytes}")
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        return ProtocolError("invalid_json", str(exc))
    try:
        return adapter.validate_python(data)
    except PydanticValidationError as exc:
        return ProtocolError("invalid_payload", str(exc.errors(include_url=False)))


def parse_inbound(raw: str | bytes, max_bytes: int | None = None) -> InboundFrame | ProtocolError:
    return _parse(_inbound_adapter, raw, max_bytes)


def parse_outbound(raw: str | bytes) -> OutboundFrame | ProtocolError:
    return _parse(_outbound_adapter, raw, None)


def encode(frame: BaseModel) -> str:
    return frame.model_dump_json(by_alias=True)
