"""Merge REST history and live relay events into one ordered view.

The authoritative state is a mapping ``id -> Message``. Both sources upsert
into it, so arrival order between the history fetch and the live stream does
not matter, and re-applying an event is a no-op. The display sequence is
derived from the mapping on every change: sort by timestamp (ties keep
first-seen order), apply display filters, keep the newest ``display_cap``.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import replace
from typing import Any, Callable, Iterable

from relay_chat.domain.entities.message import Message
from relay_chat.domain.value_objects.enums import DeliveryStatus
from relay_chat.infrastructure.ws.protocol import MessagePayload, normalize_timestamp

logger = logging.getLogger(__name__)

_STATUS_RANK = {
    DeliveryStatus.SENT: 0,
    DeliveryStatus.DELIVERED: 1,
    DeliveryStatus.SEEN: 2,
}

MessageLike = Message | MessagePayload | dict[str, Any]
ChangeHandler = Callable[[list[Message]], None]


def is_displayable(msg: Message) -> bool:
    return bool(msg.content.strip()) or msg.has_attachment


def coerce_message(item: MessageLike) -> Message:
    """Normalize any accepted message shape to a Message with an aware UTC timestamp."""
    if isinstance(item, Message):
        return replace(item, timestamp=normalize_timestamp(item.timestamp))
    if isinstance(item, MessagePayload):
        return item.to_entity()
    return MessagePayload.model_validate(item).to_entity()


def _merge(existing: Message, incoming: Message) -> Message:
    # A late copy of a message must not undo an edit or regress its status.
    merged = incoming
    if existing.edited and not incoming.edited:
        merged = replace(merged, content=existing.content, edited=True, edited_at=existing.edited_at)
    if _STATUS_RANK[existing.delivery_status] > _STATUS_RANK[merged.delivery_status]:
        merged = replace(merged, delivery_status=existing.delivery_status)
    if existing.seen_by:
        seen = tuple(dict.fromkeys((*existing.seen_by, *merged.seen_by)))
        merged = replace(merged, seen_by=seen)
    return merged


class MessageView:
    def __init__(
        self,
        *,
        display_cap: int = 50,
        working_set_cap: int = 100,
        include: Callable[[Message], bool] = is_displayable,
        on_change: ChangeHandler | None = None,
    ) -> None:
        if display_cap < 1 or working_set_cap < display_cap:
            raise ValueError("need 1 <= display_cap <= working_set_cap")
        self._display_cap = display_cap
        self._working_set_cap = working_set_cap
        self._include = include
        self._on_change = on_change

        self._by_id: dict[str, Message] = {}
        self._seq: dict[str, int] = {}
        self._next_seq = 0
        # Deleted ids stay blocked so a stale history page cannot revive them;
        # only the most recent working_set_cap deletions are remembered.
        self._deleted: OrderedDict[str, None] = OrderedDict()
        self._derived: list[Message] = []
        self.history_loaded = False

    # -- reads --------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return list(self._derived)

    def get(self, message_id: str) -> Message | None:
        return self._by_id.get(message_id)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    # -- writes -------------------------------------------------------------

    def load_history(self, items: Iterable[MessageLike]) -> None:
        changed = False
        for item in items:
            changed |= self._upsert(coerce_message(item))
        self.history_loaded = True
        if changed:
            self._rebuild()

    def apply_live(self, item: MessageLike) -> bool:
        """Upsert one live message. Returns False if nothing changed."""
        if self._upsert(coerce_message(item)):
            self._rebuild()
            return True
        return False

    def apply_edit(self, item: MessageLike) -> bool:
        msg = coerce_message(item)
        if msg.id in self._deleted:
            return False
        existing = self._by_id.get(msg.id)
        if existing is None:
            # Editing something outside the working set; treat as new.
            return self.apply_live(msg)
        updated = replace(
            existing,
            content=msg.content,
            edited=True,
            edited_at=msg.edited_at or existing.edited_at,
        )
        if updated == existing:
            return False
        self._by_id[msg.id] = updated
        self._rebuild()
        return True

    def apply_delete(self, message_id: str) -> bool:
        self._tombstone(message_id)
        if self._by_id.pop(message_id, None) is None:
            return False
        self._seq.pop(message_id, None)
        self._rebuild()
        return True

    def apply_status(self, message_id: str, status: DeliveryStatus, user_id: str | None = None) -> bool:
        existing = self._by_id.get(message_id)
        if existing is None:
            return False
        updated = existing
        if _STATUS_RANK[status] > _STATUS_RANK[existing.delivery_status]:
            updated = replace(updated, delivery_status=status)
        if status is DeliveryStatus.SEEN and user_id and user_id not in updated.seen_by:
            updated = replace(updated, seen_by=(*updated.seen_by, user_id))
        if updated == existing:
            return False
        self._by_id[message_id] = updated
        self._rebuild()
        return True

    def clear(self) -> None:
        self._by_id.clear()
        self._seq.clear()
        self._deleted.clear()
        self.history_loaded = False
        self._rebuild()

    # -- internals ----------------------------------------------------------

    def _tombstone(self, message_id: str) -> None:
        self._deleted[message_id] = None
        self._deleted.move_to_end(message_id)
        while len(self._deleted) > self._working_set_cap:
            self._deleted.popitem(last=False)

    def _upsert(self, msg: Message) -> bool:
        if msg.id in self._deleted:
            logger.debug("Ignoring deleted message %s", msg.id)
            return False
        existing = self._by_id.get(msg.id)
        if existing is None:
            self._by_id[msg.id] = msg
            self._seq[msg.id] = self._next_seq
            self._next_seq += 1
            return True
        merged = _merge(existing, msg)
        if merged == existing:
            return False
        self._by_id[msg.id] = merged
        return True

    def _sort_key(self, msg: Message) -> tuple[Any, int]:
        return msg.timestamp, self._seq[msg.id]

    def _rebuild(self) -> None:
        ordered = sorted(self._by_id.values(), key=self._sort_key)
        overflow = len(ordered) - self._working_set_cap
        if overflow > 0:
            for old in ordered[:overflow]:
                del self._by_id[old.id]
                del self._seq[old.id]
            ordered = ordered[overflow:]
        visible = [m for m in ordered if self._include(m)]
        self._derived = visible[-self._display_cap:]
        if self._on_change is not None:
            try:
                self._on_change(self.messages)
            except Exception:
                logger.exception("View change handler failed")
