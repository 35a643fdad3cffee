"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from typing import Any, Callable

import pytest

from chaser.models.quiz import Question


class ManualCall:
    """Pending callback in a ManualScheduler."""

    def __init__(self, owner: ManualScheduler, due: float, seq: int, callback: Callable[..., Any], args: tuple) -> None:
        self._owner = owner
        self.due = due
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        if self.cancelled or self.fired:
            return
        self.cancelled = True
        self._owner._calls.discard(self)


class ManualScheduler:
    """Virtual-time scheduler: nothing runs until ``advance`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self._calls: set[ManualCall] = set()
        self._seq = 0
        self.cancel_all_calls = 0

    @property
    def pending(self) -> int:
        return len(self._calls)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualCall:
        self._seq += 1
        call = ManualCall(self, self.now + max(0.0, delay), self._seq, callback, args)
        self._calls.add(call)
        return call

    def cancel_all(self) -> None:
        self.cancel_all_calls += 1
        for call in list(self._calls):
            call.cancel()

    def advance(self, seconds: float) -> None:
        """Run every callback due within the next ``seconds``, in due order."""
        target = self.now + seconds
        while True:
            due = [c for c in self._calls if c.due <= target + 1e-9]
            if not due:
                break
            call = min(due, key=lambda c: (c.due, c.seq))
            self._calls.discard(call)
            self.now = max(self.now, call.due)
            call.fired = True
            call.callback(*call.args)
        self.now = target


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


def make_question(n: int, correct: int = 0) -> Question:
    return Question(
        prompt=f"Question {n}?",
        options=(f"{n}-a", f"{n}-b", f"{n}-c", f"{n}-d"),
        correct_index=correct,
    )


@pytest.fixture
def questions() -> Callable[[int], list[Question]]:
    """Factory for ``count`` questions whose correct answer is always option 0."""

    def _make(count: int) -> list[Question]:
        return [make_question(i + 1) for i in range(count)]

    return _make
