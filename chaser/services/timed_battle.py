"""Timed battle orchestrator: owns both clocks and the simulated chaser."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from ..models.battle import (
    AnswerSubmitted,
    AwaitFeedback,
    BattleEffect,
    BattleEvent,
    BattleResult,
    BattleSnapshot,
    BattleStarted,
    BattleState,
    BeginThinking,
    ClockExpired,
    DeclareWinner,
    FeedbackElapsed,
    PauseClock,
    StartClock,
    ThinkingElapsed,
    TurnPhase,
    battle_step,
)
from ..models.quiz import (
    CONTESTANT_START_TIME,
    OPTION_COUNT,
    Difficulty,
    Question,
    Side,
    split_questions,
)
from .chaser_ai import ChaserBrain
from .runner import DuelRunner
from .scheduler import Scheduler


log = logging.getLogger(__name__)


@dataclass
class BattleConfig:
    contestant_seconds: int = CONTESTANT_START_TIME
    chaser_seconds: int = 45
    difficulty: Difficulty = Difficulty.MEDIUM
    chaser_simulated: bool = True
    feedback_seconds: float = 0.8
    thinking_seconds: float | None = None  # None: draw from the tier's range

    @classmethod
    def for_difficulty(cls, difficulty: Difficulty, chaser_simulated: bool = True, **overrides) -> BattleConfig:
        """Tier defaults: the chaser's starting time depends on difficulty."""
        values = {
            "contestant_seconds": CONTESTANT_START_TIME,
            "chaser_seconds": difficulty.profile.chaser_start_time,
            "difficulty": difficulty,
            "chaser_simulated": chaser_simulated,
        }
        values.update(overrides)
        return cls(**values)


class TimedBattle(DuelRunner[BattleState]):
    """Alternating-turn duel between the contestant and the chaser.

    Args:
        config: Starting times, tier and control mode.
        contestant_questions: Contestant's queue.
        chaser_questions: Chaser's queue.
        on_complete: Receives the ``BattleResult`` exactly once.
        on_state: Receives a ``BattleSnapshot`` on every tick and transition.
        scheduler: Continuation scheduler; defaults to the running event loop.
        brain: Decision service for a simulated chaser.
    """

    def __init__(
        self,
        config: BattleConfig,
        contestant_questions: Sequence[Question],
        chaser_questions: Sequence[Question],
        on_complete: Callable[[BattleResult], None],
        on_state: Callable[[BattleSnapshot], None] | None = None,
        scheduler: Scheduler | None = None,
        brain: ChaserBrain | None = None,
    ) -> None:
        state = BattleState(
            contestant_questions=tuple(contestant_questions),
            chaser_questions=tuple(chaser_questions),
            chaser_simulated=config.chaser_simulated,
        )
        super().__init__(state, scheduler, label="timed battle")
        self.config = config
        self.on_complete = on_complete
        self.on_state = on_state
        self.brain = brain
        if self.brain is None and config.chaser_simulated:
            self.brain = ChaserBrain(config.difficulty, thinking_seconds=config.thinking_seconds)
        self.result: BattleResult | None = None
        self.clocks = {
            Side.CONTESTANT: self._make_clock(Side.CONTESTANT, config.contestant_seconds, ClockExpired(Side.CONTESTANT)),
            Side.CHASER: self._make_clock(Side.CHASER, config.chaser_seconds, ClockExpired(Side.CHASER)),
        }

    @classmethod
    def from_pool(
        cls,
        config: BattleConfig,
        questions: Sequence[Question],
        on_complete: Callable[[BattleResult], None],
        **kwargs,
    ) -> TimedBattle:
        """Build a battle from one pool: even positions to the contestant, odd to the chaser."""
        contestant, chaser = split_questions(questions)
        return cls(config, contestant, chaser, on_complete, **kwargs)

    @property
    def awaiting_side(self) -> Side | None:
        """The human side allowed to answer right now, if any."""
        state = self.state
        if self.closed or state.ended or not state.started:
            return None
        if state.phase is TurnPhase.ANSWERING and not state.is_simulated(state.active_side):
            return state.active_side
        return None

    @property
    def current_question(self) -> Question | None:
        return self.state.current_question

    def start(self) -> None:
        log.info(
            "Timed battle starting: contestant %ss vs chaser %ss (%s, %s)",
            self.config.contestant_seconds,
            self.config.chaser_seconds,
            self.config.difficulty.value,
            "simulated" if self.config.chaser_simulated else "manual",
        )
        self._dispatch(BattleStarted())

    def submit_answer(self, side: Side, index: int) -> None:
        """Answer for ``side``. Calls that are not valid right now are ignored."""
        if not 0 <= index < OPTION_COUNT:
            log.debug("Ignoring out-of-range answer %s from %s", index, side.value)
            return
        self._dispatch(AnswerSubmitted(side, index))

    def snapshot(self) -> BattleSnapshot:
        return BattleSnapshot(
            contestant_time_remaining=self.clocks[Side.CONTESTANT].remaining,
            chaser_time_remaining=self.clocks[Side.CHASER].remaining,
            active_side=self.state.active_side,
            phase=self.state.phase,
            chaser_thinking=bool(self.brain and self.brain.is_thinking),
        )

    def _step(self, state: BattleState, event: BattleEvent) -> tuple[BattleState, list[BattleEffect]]:
        return battle_step(state, event)

    def _apply(self, effect: BattleEffect) -> None:
        if isinstance(effect, StartClock):
            self.clocks[effect.side].start()
        elif isinstance(effect, PauseClock):
            self.clocks[effect.side].pause()
        elif isinstance(effect, AwaitFeedback):
            self._schedule_feedback(self.config.feedback_seconds, FeedbackElapsed())
        elif isinstance(effect, BeginThinking):
            if self.brain is None:
                log.warning("Chaser marked simulated but no brain is attached")
                return
            self._begin_thinking(self.brain, effect.question, ThinkingElapsed)
        elif isinstance(effect, DeclareWinner):
            self._finish(effect.side)

    def _broadcast(self) -> None:
        if self.closed:
            return
        self._notify(self.on_state, self.snapshot(), "state")

    def _finish(self, winner: Side) -> None:
        for clock in self.clocks.values():
            clock.pause()
        self._cancel_thinking()
        self._broadcast()
        self.result = BattleResult(
            winner=winner,
            contestant_time_remaining=self.clocks[Side.CONTESTANT].remaining,
            chaser_time_remaining=self.clocks[Side.CHASER].remaining,
        )
        log.info(
            "Timed battle over: %s wins (contestant %ss, chaser %ss left)",
            winner.value,
            self.result.contestant_time_remaining,
            self.result.chaser_time_remaining,
        )
        self._teardown()
        self._notify(self.on_complete, self.result, "completion")
