"""Timer primitives for the client state machines.

Components never touch the event loop directly; they take a ``Scheduler``
so tests can drive time by hand. Every timer callback is wrapped by the
owning component's ``Liveness`` token, so a timer that fires after
teardown does nothing.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay, callback)


class Liveness:
    """Cancellation token shared by the timers of one component."""

    def __init__(self) -> None:
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def kill(self) -> None:
        self._alive = False

    def guard(self, callback: Callable[[], None]) -> Callable[[], None]:
        def _guarded() -> None:
            if self._alive:
                callback()

        return _guarded
