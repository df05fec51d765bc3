"""Typing indicator timers.

``TypingNotifier`` turns local keystrokes into sparse start/stop frames: a
short debounce before announcing, and an idle timeout that announces the
stop if the user goes quiet. ``RemoteTypingTracker`` keeps the set of peers
currently typing, expiring each one if its stop frame never arrives.
"""
from __future__ import annotations

import logging
from typing import Callable

from relay_chat.client.scheduler import Liveness, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class TypingNotifier:
    def __init__(
        self,
        emit: Callable[[bool], None],
        scheduler: Scheduler,
        *,
        debounce: float = 0.3,
        idle_timeout: float = 3.0,
    ) -> None:
        self._emit = emit
        self._scheduler = scheduler
        self._debounce = debounce
        self._idle_timeout = idle_timeout
        self._live = Liveness()
        self._debounce_handle: TimerHandle | None = None
        self._idle_handle: TimerHandle | None = None
        self._typing = False

    @property
    def is_typing(self) -> bool:
        return self._typing

    def keystroke(self) -> None:
        if not self._live.alive:
            return
        if not self._typing and self._debounce_handle is None:
            self._debounce_handle = self._scheduler.call_later(
                self._debounce, self._live.guard(self._on_debounce),
            )
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = self._scheduler.call_later(
            self._idle_timeout, self._live.guard(self._on_idle),
        )

    def stop(self) -> None:
        """Cancel pending timers and announce the stop if we had started."""
        self._cancel_timers()
        if self._typing:
            self._typing = False
            self._send(False)

    def close(self) -> None:
        self._live.kill()
        self._cancel_timers()
        self._typing = False

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        if not self._typing:
            self._typing = True
            self._send(True)

    def _on_idle(self) -> None:
        self._idle_handle = None
        self.stop()

    def _cancel_timers(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _send(self, is_typing: bool) -> None:
        try:
            self._emit(is_typing)
        except Exception:
            logger.exception("Failed to emit typing=%s", is_typing)


class RemoteTypingTracker:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        expiry: float = 2.0,
        on_change: Callable[[frozenset[str]], None] | None = None,
        self_name: str | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._expiry = expiry
        self._on_change = on_change
        self.self_name = self_name
        self._live = Liveness()
        self._timers: dict[str, TimerHandle] = {}

    @property
    def typing_users(self) -> frozenset[str]:
        return frozenset(self._timers)

    def __contains__(self, sender: object) -> bool:
        return sender in self._timers

    def on_event(self, sender: str, is_typing: bool) -> None:
        if not self._live.alive or sender == self.self_name:
            return
        if is_typing:
            added = sender not in self._timers
            self._cancel(sender)
            self._timers[sender] = self._scheduler.call_later(
                self._expiry, self._live.guard(lambda: self._expire(sender)),
            )
            if added:
                self._notify()
        elif self._cancel(sender):
            self._notify()

    def close(self) -> None:
        self._live.kill()
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _expire(self, sender: str) -> None:
        if self._timers.pop(sender, None) is not None:
            logger.debug("Typing indicator for %s expired", sender)
            self._notify()

    def _cancel(self, sender: str) -> bool:
        handle = self._timers.pop(sender, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.typing_users)
        except Exception:
            logger.exception("Typing change handler failed")
