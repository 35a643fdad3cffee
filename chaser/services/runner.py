from __future__ import annotations

import logging
from collections import deque
from typing import Any, Callable, Generic, TypeVar

from ..models.quiz import Question, Side
from .chaser_ai import ChaserBrain, ThinkingTask
from .clock import CountdownClock
from .scheduler import Cancellable, LoopScheduler, Scheduler


log = logging.getLogger(__name__)


StateT = TypeVar("StateT")


class DuelRunner(Generic[StateT]):
    """Drives a pure transition function from timers and host input.

    Events go through a FIFO queue, so an effect that triggers another event
    (a chaser answering straight after a turn change) is handled by the same
    loop instead of by a nested call. Once ``closed`` is set every queued or
    late-arriving event is dropped.
    """

    def __init__(self, state: StateT, scheduler: Scheduler | None = None, label: str = "duel") -> None:
        self.state = state
        self.scheduler: Scheduler = scheduler or LoopScheduler()
        self.label = label
        self.closed = False
        self.clocks: dict[Side, CountdownClock] = {}
        self._queue: deque[Any] = deque()
        self._dispatching = False
        self._thinking: ThinkingTask | None = None
        self._feedback: Cancellable | None = None

    def _step(self, state: StateT, event: Any) -> tuple[StateT, list[Any]]:
        raise NotImplementedError

    def _apply(self, effect: Any) -> None:
        raise NotImplementedError

    def _broadcast(self) -> None:
        raise NotImplementedError

    def _make_clock(self, side: Side, seconds: int, expired_event: Any) -> CountdownClock:
        return CountdownClock(
            seconds,
            self.scheduler,
            on_tick=lambda _remaining: self._broadcast(),
            on_complete=lambda: self._dispatch(expired_event),
            name=f"{self.label} {side.value} clock",
        )

    def _dispatch(self, event: Any) -> None:
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                current = self._queue.popleft()
                if self.closed:
                    log.debug("%s closed, dropping %s", self.label, current)
                    continue
                new_state, effects = self._step(self.state, current)
                if new_state is self.state and not effects:
                    log.debug("%s ignored %s", self.label, current)
                    continue
                self.state = new_state
                for effect in effects:
                    if self.closed:
                        break
                    self._apply(effect)
                if not self.closed:
                    self._broadcast()
        finally:
            self._dispatching = False
            if self.closed:
                self._queue.clear()

    def _schedule_feedback(self, delay: float, event: Any) -> None:
        self._cancel_feedback()
        self._feedback = self.scheduler.call_later(delay, self._feedback_elapsed, event)

    def _feedback_elapsed(self, event: Any) -> None:
        self._feedback = None
        self._dispatch(event)

    def _cancel_feedback(self) -> None:
        if self._feedback is not None:
            self._feedback.cancel()
            self._feedback = None

    def _begin_thinking(self, brain: ChaserBrain, question: Question, make_event: Callable[[int], Any]) -> None:
        self._cancel_thinking()

        def _answered(index: int) -> None:
            self._thinking = None
            self._dispatch(make_event(index))

        self._thinking = brain.think(question, self.scheduler, _answered)

    def _cancel_thinking(self) -> None:
        if self._thinking is not None:
            self._thinking.cancel()
            self._thinking = None

    def _teardown(self) -> None:
        self.closed = True
        self._cancel_thinking()
        self._cancel_feedback()
        for clock in self.clocks.values():
            clock.close()
        self.scheduler.cancel_all()

    def exit(self) -> None:
        """Tear the duel down without reporting an outcome."""
        if self.closed:
            return
        log.info("%s torn down before completion", self.label)
        self._teardown()

    def _notify(self, callback: Callable[[Any], Any] | None, payload: Any, what: str) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:  # noqa: BLE001
            log.error("%s %s callback failed: %s", self.label, what, e, exc_info=True)
