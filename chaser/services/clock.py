from __future__ import annotations

import logging
from typing import Callable

from ..models.quiz import format_clock
from .scheduler import Cancellable, Scheduler


log = logging.getLogger(__name__)


TICK_SECONDS = 1.0


class CountdownClock:
    """Per-side countdown with pause/resume and a one-shot completion.

    While running, a 1 second tick decrements ``remaining`` and reports the
    new value to ``on_tick``. Reaching zero stops the clock and fires
    ``on_complete`` once; later ticks do nothing until ``reset``.
    """

    def __init__(
        self,
        initial_seconds: int,
        scheduler: Scheduler,
        on_tick: Callable[[int], None] | None = None,
        on_complete: Callable[[], None] | None = None,
        name: str = "clock",
    ) -> None:
        self.initial_seconds = max(0, int(initial_seconds))
        self.remaining = self.initial_seconds
        self.running = False
        self.completed = False
        self.name = name
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._on_complete = on_complete
        self._pending: Cancellable | None = None

    @property
    def formatted(self) -> str:
        return format_clock(self.remaining)

    def start(self) -> None:
        if self.running or self.remaining <= 0:
            return
        self.running = True
        self._schedule_tick()

    def pause(self) -> None:
        self.running = False
        self._cancel_pending()

    def reset(self, seconds: int | None = None) -> None:
        self.pause()
        self.remaining = max(0, int(seconds if seconds is not None else self.initial_seconds))
        self.completed = False

    def close(self) -> None:
        self.pause()

    def tick(self) -> None:
        """Apply one elapsed second."""
        if not self.running or self.remaining <= 0:
            return
        self.remaining -= 1
        if self._on_tick is not None:
            self._on_tick(self.remaining)
        if self.remaining <= 0:
            self.remaining = 0
            self.running = False
            self._cancel_pending()
            if not self.completed:
                self.completed = True
                log.debug("%s expired", self.name)
                if self._on_complete is not None:
                    self._on_complete()

    def _schedule_tick(self) -> None:
        self._cancel_pending()
        self._pending = self._scheduler.call_later(TICK_SECONDS, self._interval_elapsed)

    def _interval_elapsed(self) -> None:
        self._pending = None
        self.tick()
        if self.running:
            self._schedule_tick()

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
