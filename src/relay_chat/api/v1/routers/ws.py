from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from relay_chat.api.deps import PrincipalCacheDep, RegistryDep, UoWFactoryDep, VerifierDep
from relay_chat.application.dto.principal import Principal
from relay_chat.application.exceptions import AuthenticationError, UnknownUserError
from relay_chat.application.ports.auth import TokenVerifier
from relay_chat.application.uow import UoWFactory
from relay_chat.config import settings
from relay_chat.domain.value_objects.close_codes import CloseCode
from relay_chat.infrastructure.cache.ttl_cache import TTLCache
from relay_chat.infrastructure.ws.protocol import (
    AuthFrame,
    AuthResult,
    ErrorEvent,
    PongEvent,
    ProtocolError,
    parse_inbound,
)
from relay_chat.infrastructure.ws.registry import ClientConnection, ConnectionRegistry
from relay_chat.services import auth_service, relay_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def ws_relay(
    websocket: WebSocket,
    registry: RegistryDep,
    uow_factory: UoWFactoryDep,
    verifier: VerifierDep,
    cache: PrincipalCacheDep,
) -> None:
    await websocket.accept()
    conn = ClientConnection(websocket, send_timeout=settings.WS_SEND_TIMEOUT_SECONDS)

    try:
        principal = await _handshake(conn, verifier, uow_factory, cache)
    except WebSocketDisconnect:
        logger.debug("WS %s left during handshake", conn.id)
        return
    if principal is None:
        return

    conn.principal = principal
    # Acknowledge before registering so no broadcast can overtake the ack.
    if not await conn.send(AuthResult(success=True)):
        return
    registry.add(conn)
    logger.info("WS authenticated: %s", conn.label)

    heartbeat_task = asyncio.create_task(
        _heartbeat(conn), name=f"ws-heartbeat-{conn.id}",
    )
    try:
        await _read_loop(conn, registry, uow_factory)
    except WebSocketDisconnect as exc:
        logger.info("WS closed: %s (code=%s)", conn.label, exc.code)
    except Exception:
        logger.exception("WS error for %s", conn.label)
    finally:
        heartbeat_task.cancel()
        registry.remove(conn)


async def _receive_raw(ws: WebSocket) -> str | bytes:
    message = await ws.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", CloseCode.NORMAL), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    return message.get("bytes") or b""


async def _handshake(
    conn: ClientConnection,
    verifier: TokenVerifier,
    uow_factory: UoWFactory,
    cache: TTLCache[str, Principal],
) -> Principal | None:
    """Wait for the auth frame. Returns None once the socket has been closed."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.WS_AUTH_TIMEOUT_SECONDS

    while True:
        remaining = deadline - loop.time()
        try:
            if remaining <= 0:
                raise asyncio.TimeoutError
            raw = await asyncio.wait_for(_receive_raw(conn.ws), timeout=remaining)
        except asyncio.TimeoutError:
            logger.info("WS %s did not authenticate in time", conn.id)
            await conn.close(CloseCode.AUTH_TIMEOUT, "Authentication timeout")
            return None

        frame = parse_inbound(raw, settings.WS_MAX_FRAME_BYTES)
        if isinstance(frame, ProtocolError):
            logger.warning("WS %s sent malformed frame before auth: %s", conn.id, frame.code)
            await conn.send(ErrorEvent(message="Invalid message format", code=frame.code))
            continue
        if not isinstance(frame, AuthFrame):
            await conn.close(CloseCode.NOT_AUTHENTICATED, "Not authenticated")
            return None
        break

    if not frame.token:
        await conn.send(AuthResult(success=False))
        await conn.close(CloseCode.AUTH_TOKEN_MISSING, "No auth token")
        return None

    try:
        async with uow_factory() as uow:
            return await auth_service.resolve_principal(frame.token, verifier, uow, cache)
    except UnknownUserError:
        await conn.send(AuthResult(success=False))
        await conn.close(CloseCode.AUTH_UNKNOWN_USER, "Invalid user")
    except AuthenticationError as exc:
        logger.info("WS %s auth rejected: %s", conn.id, exc.detail)
        await conn.send(AuthResult(success=False))
        await conn.close(CloseCode.AUTH_REJECTED, "Invalid token")
    return None


async def _heartbeat(conn: ClientConnection) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while conn.is_open:
            await asyncio.sleep(interval)
            await conn.send(PongEvent())
    except asyncio.CancelledError:
        pass


async def _read_loop(conn: ClientConnection, registry: ConnectionRegistry, uow_factory: UoWFactory) -> None:
    while True:
        raw = await _receive_raw(conn.ws)
        frame = parse_inbound(raw, settings.WS_MAX_FRAME_BYTES)
        if isinstance(frame, ProtocolError):
            logger.warning("Dropping malformed frame from %s: %s %s", conn.label, frame.code, frame.detail)
            await conn.send(ErrorEvent(message="Invalid message format", code=frame.code))
            continue

        try:
            await relay_service.handle_frame(conn, frame, registry=registry, uow_factory=uow_factory)
        except Exception:
            logger.exception("Error handling %s frame from %s", frame.type, conn.label)
