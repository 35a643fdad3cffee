"""Simulated chaser: thinks for a while, then answers with tier accuracy."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable

from ..models.quiz import OPTION_COUNT, Difficulty, Question
from .scheduler import Cancellable, LoopScheduler, Scheduler


log = logging.getLogger(__name__)


class ThinkingTask:
    """One pending chaser decision. Cancelling it drops the answer."""

    def __init__(self, brain: ChaserBrain, question: Question, on_answer: Callable[[int], None]) -> None:
        self._brain = brain
        self.question = question
        self._on_answer = on_answer
        self._call: Cancellable | None = None
        self.done = False
        self.answer: int | None = None

    def cancel(self) -> None:
        if self.done:
            return
        self.done = True
        if self._call is not None:
            self._call.cancel()
            self._call = None
        self._brain._finish_thinking(self)
        log.debug("Chaser thinking cancelled")

    def _resolve(self) -> None:
        if self.done:
            return
        self.done = True
        self._call = None
        self._brain._finish_thinking(self)
        self.answer = self._brain.pick_answer(self.question)
        self._on_answer(self.answer)


class ChaserBrain:
    """Decision service for a computer-controlled chaser.

    Accuracy is a single uniform draw per question: below the threshold the
    chaser picks the correct option, otherwise one of the three wrong ones.
    Nothing carries over between questions.

    Args:
        difficulty: Tier that supplies accuracy and thinking range.
        rng: Random source; pass a seeded ``random.Random`` for repeatable runs.
        accuracy: Override for the tier's accuracy.
        thinking_seconds: Fixed thinking delay instead of the tier range.
    """

    def __init__(
        self,
        difficulty: Difficulty,
        rng: random.Random | None = None,
        accuracy: float | None = None,
        thinking_seconds: float | None = None,
    ) -> None:
        self.difficulty = difficulty
        self.rng = rng or random.Random()
        self.accuracy = difficulty.profile.accuracy if accuracy is None else min(1.0, max(0.0, accuracy))
        self.thinking_seconds = thinking_seconds
        self._current: ThinkingTask | None = None

    @classmethod
    def banded(
        cls,
        difficulty: Difficulty,
        rng: random.Random | None = None,
        thinking_seconds: float | None = None,
    ) -> ChaserBrain:
        """Build a brain whose accuracy is drawn once from the tier's band."""
        rng = rng or random.Random()
        low, high = difficulty.profile.accuracy_band
        return cls(difficulty, rng=rng, accuracy=low + rng.random() * (high - low), thinking_seconds=thinking_seconds)

    @property
    def is_thinking(self) -> bool:
        return self._current is not None

    def pick_answer(self, question: Question) -> int:
        if self.rng.random() < self.accuracy:
            return question.correct_index
        wrong = [i for i in range(OPTION_COUNT) if i != question.correct_index]
        return self.rng.choice(wrong)

    def thinking_time(self) -> float:
        if self.thinking_seconds is not None:
            return max(0.0, self.thinking_seconds)
        low, high = self.difficulty.profile.thinking_range
        return low + self.rng.random() * (high - low)

    def think(self, question: Question, scheduler: Scheduler, on_answer: Callable[[int], None]) -> ThinkingTask:
        """Schedule a decision on ``question``; ``on_answer`` gets the index."""
        if self._current is not None:
            self._current.cancel()
        task = ThinkingTask(self, question, on_answer)
        self._current = task
        delay = self.thinking_time()
        log.debug("Chaser (%s) thinking for %.2fs", self.difficulty.value, delay)
        task._call = scheduler.call_later(delay, task._resolve)
        return task

    async def answer(self, question: Question, scheduler: Scheduler | None = None) -> int:
        """Await a decision. Cancelling the caller cancels the thinking delay."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[int] = loop.create_future()

        def _deliver(index: int) -> None:
            # The caller may have been cancelled in the same loop iteration
            if not future.done():
                future.set_result(index)

        task = self.think(question, scheduler or LoopScheduler(loop), _deliver)
        try:
            return await future
        except asyncio.CancelledError:
            task.cancel()
            raise

    def _finish_thinking(self, task: ThinkingTask) -> None:
        if self._current is task:
            self._current = None
