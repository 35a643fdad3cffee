"""Scheduled continuations owned by a single duel.

Clocks, feedback pauses and chaser thinking delays are all callbacks scheduled
on the event loop rather than tasks of their own. Each duel owns one scheduler
so tearing the duel down cancels every continuation it ever scheduled.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol


log = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Cancellable: ...

    def cancel_all(self) -> None: ...


class ScheduledCall:
    """Handle for one pending continuation."""

    def __init__(self, owner: LoopScheduler, delay: float) -> None:
        self._owner = owner
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        if not self.pending:
            return
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        self._owner._forget(self)


class LoopScheduler:
    """Schedules callbacks on an asyncio event loop and remembers them.

    The loop is resolved lazily so a scheduler can be built before the duel
    starts, as long as ``call_later`` runs inside the loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._calls: set[ScheduledCall] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending(self) -> int:
        return len(self._calls)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledCall:
        call = ScheduledCall(self, delay)
        call._handle = self.loop.call_later(max(0.0, delay), self._fire, call, callback, args)
        self._calls.add(call)
        return call

    def cancel_all(self) -> None:
        calls = list(self._calls)
        for call in calls:
            call.cancel()
        if calls:
            log.debug("Cancelled %d pending continuation(s)", len(calls))

    def _fire(self, call: ScheduledCall, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        if call.cancelled:
            return
        call.fired = True
        self._forget(call)
        callback(*args)

    def _forget(self, call: ScheduledCall) -> None:
        self._calls.discard(call)
