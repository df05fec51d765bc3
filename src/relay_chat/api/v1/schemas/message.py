from __future__ import annotations

from pydantic import BaseModel, Field

from relay_chat.infrastructure.ws.protocol import MessagePayload


class EditMessageRequest(BaseModel):
    content: str = Field(min_length=1)


class EditMessageResponse(BaseModel):
    success: bool = True
    message: MessagePayload


class DeleteMessageResponse(BaseModel):
    success: bool = True
    message: str = "Message deleted successfully"
