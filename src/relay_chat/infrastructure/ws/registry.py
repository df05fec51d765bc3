"""In-process registry of authenticated relay connections."""
from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import WebSocket
from pydantic import BaseModel
from starlette.websockets import WebSocketState

from relay_chat.application.dto.principal import Principal
from relay_chat.domain.value_objects.close_codes import CloseCode
from relay_chat.infrastructure.ws.protocol import encode

logger = logging.getLogger(__name__)


class ClientConnection:
    """One accepted socket plus the identity it authenticated as.

    Writes go through a per-connection lock so frames reach a client in the
    order they were produced, and each write is bounded by ``send_timeout``
    so one stalled socket cannot hold up a broadcast.
    """

    def __init__(self, ws: WebSocket, *, send_timeout: float = 5.0) -> None:
        self.ws = ws
        self.id = uuid.uuid4().hex[:12]
        self.principal: Principal | None = None
        self._send_timeout = send_timeout
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self.ws.application_state == WebSocketState.CONNECTED

    @property
    def label(self) -> str:
        name = self.principal.username if self.principal else "anonymous"
        return f"{name}#{self.id}"

    async def send_text(self, raw: str) -> bool:
        if not self.is_open:
            return False
        try:
            async with self._lock:
                await asyncio.wait_for(self.ws.send_text(raw), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("WS send timed out for %s, dropping connection", self.label)
            await self.close(CloseCode.SLOW_CONSUMER, "Slow consumer")
            return False
        except Exception:
            logger.debug("WS send failed for %s", self.label, exc_info=True)
            self._closed = True
            return False

    async def send(self, frame: BaseModel) -> bool:
        return await self.send_text(encode(frame))

    async def close(self, code: int = CloseCode.NORMAL, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        if self.ws.application_state != WebSocketState.CONNECTED:
            return
        try:
            await asyncio.wait_for(self.ws.close(code=code, reason=reason), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            logger.debug("WS close timed out for %s", self.label)
        except Exception:
            logger.debug("WS close failed for %s", self.label, exc_info=True)


class ConnectionRegistry:
    """Tracks authenticated connections for fan-out.

    Owned by the application (created in the lifespan, closed at shutdown)
    and passed to the relay handlers explicitly. Mutated only from the event
    loop; broadcasts iterate over a snapshot so a connection leaving
    mid-broadcast is harmless.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: object) -> bool:
        return isinstance(conn, ClientConnection) and conn.id in self._connections

    def add(self, conn: ClientConnection) -> None:
        if conn.principal is None:
            raise ValueError("only authenticated connections can be registered")
        self._connections[conn.id] = conn
        logger.debug("WS registered: %s (total=%d)", conn.label, len(self._connections))

    def remove(self, conn: ClientConnection) -> None:
        if self._connections.pop(conn.id, None) is not None:
            logger.debug("WS unregistered: %s (total=%d)", conn.label, len(self._connections))

    def snapshot(self) -> list[ClientConnection]:
        return list(self._connections.values())

    async def broadcast(
        self,
        frame: BaseModel,
        *,
        exclude: ClientConnection | None = None,
    ) -> int:
        """Send ``frame`` to every registered connection except ``exclude``.

        Sends run concurrently; a failed or timed-out connection is removed
        and does not affect delivery to the others. Returns the number of
        connections that accepted the frame.
        """
        raw = encode(frame)
        targets = [c for c in self.snapshot() if c is not exclude]
        if not targets:
            return 0
        results = await asyncio.gather(
            *(c.send_text(raw) for c in targets),
            return_exceptions=True,
        )
        delivered = 0
        for conn, ok in zip(targets, results):
            if ok is True:
                delivered += 1
            else:
                self.remove(conn)
        return delivered

    async def close_all(self, code: int = CloseCode.GOING_AWAY, reason: str = "Server shutting down") -> None:
        conns = self.snapshot()
        self._connections.clear()
        await asyncio.gather(*(c.close(code, reason) for c in conns), return_exceptions=True)
