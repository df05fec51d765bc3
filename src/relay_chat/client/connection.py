"""Client side of the relay connection.

State machine::

    disconnected -> connecting -> awaiting-auth -> authenticated
         ^              |              |                |
         +--------------+--------------+----------------+   (close / error)

Outbound frames sent while not authenticated wait in a FIFO queue and are
flushed, in order, as soon as the relay acknowledges the auth frame. After a
close the manager reconnects after a fixed delay unless the close was
intentional or an authentication rejection (see ``NO_RECONNECT_CODES``).
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import suppress
from typing import Callable

from pydantic import BaseModel

from relay_chat.client.scheduler import Liveness, LoopScheduler, Scheduler, TimerHandle
from relay_chat.client.transport import Connector, Transport, TransportClosed, websockets_connector
from relay_chat.domain.value_objects.close_codes import CloseCode, should_reconnect
from relay_chat.domain.value_objects.enums import ConnectionState
from relay_chat.infrastructure.ws.protocol import (
    AuthFrame,
    AuthResult,
    OutboundFrame,
    ProtocolError,
    encode,
    parse_outbound,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]
EventHandler = Callable[[OutboundFrame], None]
StateHandler = Callable[[ConnectionState], None]
AuthRejectedHandler = Callable[[int], None]


class ConnectionManager:
    def __init__(
        self,
        url: str,
        token_provider: TokenProvider,
        *,
        on_event: EventHandler,
        on_state_change: StateHandler | None = None,
        on_auth_rejected: AuthRejectedHandler | None = None,
        connector: Connector | None = None,
        scheduler: Scheduler | None = None,
        reconnect_delay: float = 3.0,
    ) -> None:
        self._url = url
        self._token_provider = token_provider
        self._on_event = on_event
        self._on_state_change = on_state_change
        self._on_auth_rejected = on_auth_rejected
        self._connector = connector or websockets_connector
        self._scheduler = scheduler or LoopScheduler()
        self._reconnect_delay = reconnect_delay

        self._state = ConnectionState.DISCONNECTED
        self._live = Liveness()
        self._transport: Transport | None = None
        self._task: asyncio.Task[None] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._reconnect_handle: TimerHandle | None = None

        # Frames waiting for an authenticated transport.
        self._outbox: deque[str] = deque()
        # Frames handed to the writer of the current transport.
        self._wire: asyncio.Queue[str] | None = None
        self._inflight: str | None = None

        self.last_close_code: int | None = None
        self.attempts = 0

    # -- public API ---------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state is ConnectionState.AUTHENTICATED

    @property
    def queued(self) -> int:
        return len(self._outbox)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def start(self) -> None:
        if not self._live.alive:
            raise RuntimeError("connection manager was closed")
        if self._task is not None and not self._task.done():
            return
        self._cancel_reconnect()
        self._task = asyncio.get_running_loop().create_task(
            self._connect_once(), name="relay-connection",
        )

    def send(self, frame: BaseModel) -> None:
        """Send ``frame`` now if authenticated, otherwise queue it."""
        raw = encode(frame)
        if self._state is ConnectionState.AUTHENTICATED and self._wire is not None:
            self._wire.put_nowait(raw)
        else:
            self._outbox.append(raw)
            logger.debug("Queued %s frame (queued=%d)", getattr(frame, "type", "?"), len(self._outbox))

    async def close(self) -> None:
        """Tear the session down for good: no reconnect, intentional close code."""
        if not self._live.alive:
            return
        self._live.kill()
        self._cancel_reconnect()
        transport = self._transport
        if transport is not None:
            with suppress(Exception):
                await transport.close(CloseCode.NORMAL, "Client closing")
        if self._task is not None and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._stop_writer()
        self._transport = None
        self._set_state(ConnectionState.DISCONNECTED)

    # -- lifecycle ----------------------------------------------------------

    async def _connect_once(self) -> None:
        self.attempts += 1
        self._set_state(ConnectionState.CONNECTING)
        try:
            transport = await self._connector(self._url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Relay connection to %s failed: %s", self._url, exc)
            self._handle_closed(None, str(exc))
            return

        if not self._live.alive:
            with suppress(Exception):
                await transport.close(CloseCode.NORMAL, "Client closing")
            return

        self._transport = transport
        code: int | None
        reason = ""
        try:
            token = self._token_provider()
            if not token:
                logger.warning("No auth token available, closing relay connection")
                await transport.close(CloseCode.AUTH_TOKEN_MISSING, "No auth token")
                code = CloseCode.AUTH_TOKEN_MISSING
            else:
                await transport.send(encode(AuthFrame(token=token)))
                self._set_state(ConnectionState.AWAITING_AUTH)
                code, reason = await self._read_loop(transport)
        except TransportClosed as exc:
            code, reason = exc.code, exc.reason
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Relay connection error")
            code, reason = None, str(exc)
        self._handle_closed(code, reason)

    async def _read_loop(self, transport: Transport) -> tuple[int | None, str]:
        while True:
            try:
                raw = await transport.recv()
            except TransportClosed as exc:
                return exc.code, exc.reason

            event = parse_outbound(raw)
            if isinstance(event, ProtocolError):
                logger.warning("Dropping malformed frame from relay: %s %s", event.code, event.detail)
                continue

            if isinstance(event, AuthResult):
                if event.success and self._state is ConnectionState.AWAITING_AUTH:
                    self._on_authenticated(transport)
                elif not event.success:
                    logger.warning("Relay rejected authentication")
                continue

            if self._state is not ConnectionState.AUTHENTICATED:
                logger.debug("Ignoring %s frame before authentication", event.type)
                continue

            try:
                self._on_event(event)
            except Exception:
                logger.exception("Event handler failed for %s frame", event.type)

    def _on_authenticated(self, transport: Transport) -> None:
        self._wire = asyncio.Queue()
        while self._outbox:
            self._wire.put_nowait(self._outbox.popleft())
        self._writer = asyncio.get_running_loop().create_task(
            self._write_loop(transport, self._wire), name="relay-writer",
        )
        self.attempts = 0
        self._set_state(ConnectionState.AUTHENTICATED)
        logger.info("Relay connection authenticated")

    async def _write_loop(self, transport: Transport, wire: asyncio.Queue[str]) -> None:
        while True:
            raw = await wire.get()
            self._inflight = raw
            try:
                await transport.send(raw)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Relay send failed, will retry after reconnect: %s", exc)
                return
            self._inflight = None

    def _stop_writer(self) -> None:
        """Cancel the writer and put every unsent frame back in the outbox."""
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None
        pending: list[str] = []
        if self._inflight is not None:
            pending.append(self._inflight)
            self._inflight = None
        if self._wire is not None:
            while not self._wire.empty():
                pending.append(self._wire.get_nowait())
            self._wire = None
        self._outbox.extendleft(reversed(pending))

    def _handle_closed(self, code: int | None, reason: str) -> None:
        self._stop_writer()
        self._transport = None
        self.last_close_code = code
        self._set_state(ConnectionState.DISCONNECTED)
        if not self._live.alive:
            return

        if should_reconnect(code):
            logger.info(
                "Relay connection closed (code=%s %s), reconnecting in %.1fs",
                code, reason, self._reconnect_delay,
            )
            self._schedule_reconnect()
            return

        logger.warning("Relay connection closed (code=%s %s), not reconnecting", code, reason)
        if code != CloseCode.NORMAL and self._on_auth_rejected is not None:
            self._on_auth_rejected(code)

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        self._reconnect_handle = self._scheduler.call_later(
            self._reconnect_delay, self._live.guard(self._reconnect),
        )

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self.start()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.exception("State change handler failed")
