"""One chat session: login, relay connection, message view and typing state."""
from __future__ import annotations

import logging
from typing import Callable

from relay_chat.client.config import ClientSettings
from relay_chat.client.connection import ConnectionManager
from relay_chat.client.http import ChatHttpClient
from relay_chat.client.reconciliation import MessageView
from relay_chat.client.scheduler import LoopScheduler, Scheduler
from relay_chat.client.transport import Connector
from relay_chat.client.typing import RemoteTypingTracker, TypingNotifier
from relay_chat.domain.entities.message import Message
from relay_chat.domain.value_objects.enums import ConnectionState
from relay_chat.infrastructure.ws.protocol import (
    ChatMessageFrame,
    DeleteMessageFrame,
    EditMessageFrame,
    ErrorEvent,
    MessageDeletedEvent,
    MessageEditedEvent,
    MessageEvent,
    MessageSeenFrame,
    MessageStatusEvent,
    OutboundFrame,
    TypingEvent,
    TypingFrame,
)

logger = logging.getLogger(__name__)


class ChatSession:
    """Ties the client components together for a single logged-in user.

    History is fetched once after login; live events may already be flowing
    by then, and the view merges both regardless of which lands first.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        http: ChatHttpClient | None = None,
        connector: Connector | None = None,
        scheduler: Scheduler | None = None,
        on_messages: Callable[[list[Message]], None] | None = None,
        on_typing: Callable[[frozenset[str]], None] | None = None,
        on_state_change: Callable[[ConnectionState], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        on_auth_lost: Callable[[int], None] | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.http = http or ChatHttpClient(
            self.settings.BASE_URL, cookie_name=self.settings.AUTH_COOKIE_NAME,
        )
        self._scheduler = scheduler or LoopScheduler()
        self._on_error = on_error
        self._on_auth_lost = on_auth_lost

        self.view = MessageView(
            display_cap=self.settings.DISPLAY_CAP,
            working_set_cap=self.settings.WORKING_SET_CAP,
            on_change=on_messages,
        )
        self.remote_typing = RemoteTypingTracker(
            self._scheduler,
            expiry=self.settings.REMOTE_TYPING_EXPIRY,
            on_change=on_typing,
        )
        self.connection = ConnectionManager(
            self.settings.ws_url,
            lambda: self.http.token,
            on_event=self._dispatch,
            on_state_change=on_state_change,
            on_auth_rejected=self._auth_rejected,
            connector=connector,
            scheduler=self._scheduler,
            reconnect_delay=self.settings.RECONNECT_DELAY,
        )
        self.typing = TypingNotifier(
            lambda is_typing: self.connection.send(TypingFrame(is_typing=is_typing)),
            self._scheduler,
            debounce=self.settings.TYPING_DEBOUNCE,
            idle_timeout=self.settings.TYPING_IDLE_TIMEOUT,
        )
        self.username: str | None = None
        self.user_id: str | None = None

    @property
    def messages(self) -> list[Message]:
        return self.view.messages

    @property
    def typing_users(self) -> frozenset[str]:
        return self.remote_typing.typing_users

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    async def open(self, username: str, password: str) -> None:
        user = await self.http.login(username, password)
        self.username = user["username"]
        self.user_id = user["id"]
        self.remote_typing.self_name = self.username
        self.connection.start()
        await self.refresh_history()

    async def refresh_history(self) -> None:
        history = await self.http.fetch_history(self.settings.DISPLAY_CAP)
        self.view.load_history(history)
        logger.info("Loaded %d history messages", len(history))

    def send_text(self, content: str, *, reply_to: Message | None = None) -> bool:
        text = content.strip()[: self.settings.MESSAGE_MAX_CHARS]
        if not text:
            return False
        self.typing.stop()
        reply = _reply_fields(reply_to, self.settings.REPLY_PREVIEW_CHARS)
        self.connection.send(ChatMessageFrame(content=text, **reply))
        return True

    def send_file(
        self,
        url: str,
        name: str,
        size: int,
        mime_type: str,
        *,
        caption: str = "",
        reply_to: Message | None = None,
    ) -> None:
        self.typing.stop()
        self.connection.send(
            ChatMessageFrame(
                content=caption.strip()[: self.settings.MESSAGE_MAX_CHARS],
                file_url=url,
                file_name=name,
                file_size=size,
                file_type=mime_type,
                **_reply_fields(reply_to, self.settings.REPLY_PREVIEW_CHARS),
            )
        )

    def keystroke(self) -> None:
        self.typing.keystroke()

    def clear_input(self) -> None:
        self.typing.stop()

    def mark_seen(self, message_id: str) -> None:
        msg = self.view.get(message_id)
        if msg is None or msg.sender == self.username or self.user_id in msg.seen_by:
            return
        self.connection.send(MessageSeenFrame(message_id=message_id))

    def edit(self, message_id: str, content: str) -> None:
        self.connection.send(EditMessageFrame(message_id=message_id, content=content))

    def delete(self, message_id: str) -> None:
        self.connection.send(DeleteMessageFrame(message_id=message_id))

    async def close(self, *, logout: bool = False) -> None:
        self.typing.close()
        self.remote_typing.close()
        await self.connection.close()
        try:
            if logout:
                await self.http.logout()
        finally:
            await self.http.aclose()

    def _dispatch(self, event: OutboundFrame) -> None:
        if isinstance(event, MessageEvent):
            self.view.apply_live(event.data)
            # A message from a peer ends their typing indicator.
            self.remote_typing.on_event(event.data.sender, False)
        elif isinstance(event, TypingEvent):
            self.remote_typing.on_event(event.sender, event.is_typing)
        elif isinstance(event, MessageStatusEvent):
            self.view.apply_status(event.message_id, event.status, event.user_id)
        elif isinstance(event, MessageEditedEvent):
            self.view.apply_edit(event.data)
        elif isinstance(event, MessageDeletedEvent):
            self.view.apply_delete(event.message_id)
        elif isinstance(event, ErrorEvent):
            logger.warning("Relay error (%s): %s", event.code, event.message)
            if self._on_error is not None:
                self._on_error(event.message)

    def _auth_rejected(self, code: int) -> None:
        logger.warning("Relay session rejected (code=%s), login required", code)
        if self._on_auth_lost is not None:
            self._on_auth_lost(code)


def _reply_fields(reply_to: Message | None, preview_chars: int) -> dict[str, str | None]:
    if reply_to is None:
        return {}
    return {
        "reply_to_id": reply_to.id,
        "reply_to_message": (reply_to.content or "")[:preview_chars],
        "reply_to_sender": reply_to.sender,
    }
