"""Client transport over the ``websockets`` library."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol

import websockets
from websockets.exceptions import ConnectionClosed

from relay_chat.domain.value_objects.close_codes import CloseCode

logger = logging.getLogger(__name__)

ABNORMAL_CLOSURE = 1006


class TransportClosed(Exception):
    def __init__(self, code: int | None, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"closed with code={code} reason={reason!r}")


class Transport(Protocol):
    async def send(self, raw: str) -> None: ...

    async def recv(self) -> str:
        """Next text frame; raises TransportClosed when the socket closes."""
        ...

    async def close(self, code: int = CloseCode.NORMAL, reason: str = "") -> None: ...


Connector = Callable[[str], Awaitable[Transport]]


class WebsocketsTransport:
    def __init__(self, ws: websockets.ClientConnection) -> None:
        self._ws = ws

    @classmethod
    async def connect(cls, url: str, *, open_timeout: float = 10.0) -> WebsocketsTransport:
        ws = await websockets.connect(
            url,
            open_timeout=open_timeout,
            ping_interval=20,
            ping_timeout=20,
        )
        return cls(ws)

    async def send(self, raw: str) -> None:
        try:
            await self._ws.send(raw)
        except ConnectionClosed as exc:
            raise TransportClosed(*_close_info(exc)) from exc

    async def recv(self) -> str:
        try:
            msg = await self._ws.recv()
        except ConnectionClosed as exc:
            raise TransportClosed(*_close_info(exc)) from exc
        return msg if isinstance(msg, str) else msg.decode("utf-8", errors="replace")

    async def close(self, code: int = CloseCode.NORMAL, reason: str = "") -> None:
        await self._ws.close(code=code, reason=reason)


def _close_info(exc: ConnectionClosed) -> tuple[int, str]:
    if exc.rcvd is not None:
        return exc.rcvd.code, exc.rcvd.reason
    return ABNORMAL_CLOSURE, ""


async def websockets_connector(url: str) -> Transport:
    return await WebsocketsTransport.connect(url)
