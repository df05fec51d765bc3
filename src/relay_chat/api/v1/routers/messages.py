from __future__ import annotations

from fastapi import APIRouter, Query, Response

from relay_chat.api.deps import CurrentPrincipal, RegistryDep, UoWDep
from relay_chat.api.v1.schemas.message import (
    DeleteMessageResponse,
    EditMessageRequest,
    EditMessageResponse,
)
from relay_chat.config import settings
from relay_chat.infrastructure.ws.protocol import MessagePayload
from relay_chat.services import message_service, relay_service

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("", response_model=list[MessagePayload])
async def list_messages(
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
    limit: int = Query(settings.HISTORY_LIMIT, ge=1, le=200),
) -> list[MessagePayload]:
    messages = await message_service.list_history(uow, limit)
    response.headers["Cache-Control"] = "private, max-age=60"
    out = []
    for m in messages:
        payload = MessagePayload.from_entity(m)
        payload.content = payload.content[: settings.MESSAGE_MAX_CHARS]
        out.append(payload)
    return out


@router.patch("/{message_id}", response_model=EditMessageResponse)
async def edit_message(
    message_id: str,
    body: EditMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    registry: RegistryDep,
) -> EditMessageResponse:
    edited = await message_service.edit_message(principal, message_id, body.content, uow)
    await relay_service.broadcast_edit(registry, edited)
    return EditMessageResponse(message=MessagePayload.from_entity(edited))


@router.delete("/{message_id}", response_model=DeleteMessageResponse)
async def delete_message(
    message_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
    registry: RegistryDep,
) -> DeleteMessageResponse:
    await message_service.delete_message(principal, message_id, uow)
    await relay_service.broadcast_delete(registry, message_id, principal.username)
    return DeleteMessageResponse()
