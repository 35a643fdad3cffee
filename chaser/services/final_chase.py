from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from ..models.final_chase import (
    AnswerSubmitted,
    AwaitFeedback,
    BeginThinking,
    ChaseEffect,
    ChaseEvent,
    ChasePhase,
    ChaserRoundStarted,
    ClockExpired,
    FeedbackElapsed,
    FeedbackKind,
    FinalChaseResult,
    FinalChaseSnapshot,
    FinalChaseState,
    Finish,
    Outcome,
    PauseClock,
    RoundStarted,
    StartClock,
    ThinkingElapsed,
    chase_step,
)
from ..models.quiz import OPTION_COUNT, Difficulty, Question, Side
from .chaser_ai import ChaserBrain
from .runner import DuelRunner
from .scheduler import Scheduler


log = logging.getLogger(__name__)


@dataclass
class FinalChaseConfig:
    contestant_seconds: int = 120
    chaser_seconds: int = 120
    difficulty: Difficulty = Difficulty.MEDIUM
    chaser_simulated: bool = True
    contestant_feedback_seconds: float = 0.3
    chaser_correct_seconds: float = 0.8
    chaser_wrong_seconds: float = 1.0
    pushback_feedback_seconds: float = 1.0
    thinking_seconds: float | None = 1.5  # None: draw from the tier's range

    def feedback_delay(self, kind: FeedbackKind) -> float:
        return {
            FeedbackKind.CONTESTANT: self.contestant_feedback_seconds,
            FeedbackKind.CHASER_CORRECT: self.chaser_correct_seconds,
            FeedbackKind.CHASER_WRONG: self.chaser_wrong_seconds,
            FeedbackKind.PUSHBACK: self.pushback_feedback_seconds,
        }[kind]


class FinalChase(DuelRunner[FinalChaseState]):
    """Two-phase catch-up duel over one shared question list.

    The host drives the phase boundaries that need a human: ``begin`` opens
    the contestant round and ``start_chaser_round`` opens the chaser round
    once the transition screen has been shown.
    """

    def __init__(
        self,
        config: FinalChaseConfig,
        questions: Sequence[Question],
        on_complete: Callable[[FinalChaseResult], None],
        on_state: Callable[[FinalChaseSnapshot], None] | None = None,
        scheduler: Scheduler | None = None,
        brain: ChaserBrain | None = None,
    ) -> None:
        super().__init__(
            FinalChaseState(questions=tuple(questions), chaser_simulated=config.chaser_simulated),
            scheduler,
            label="final chase",
        )
        self.config = config
        self.on_complete = on_complete
        self.on_state = on_state
        self.brain = brain
        if self.brain is None and config.chaser_simulated:
            self.brain = ChaserBrain(config.difficulty, thinking_seconds=config.thinking_seconds)
        self.result: FinalChaseResult | None = None
        self.clocks = {
            Side.CONTESTANT: self._make_clock(Side.CONTESTANT, config.contestant_seconds, ClockExpired(Side.CONTESTANT)),
            Side.CHASER: self._make_clock(Side.CHASER, config.chaser_seconds, ClockExpired(Side.CHASER)),
        }

    @property
    def phase(self) -> ChasePhase:
        return self.state.phase

    @property
    def awaiting_side(self) -> Side | None:
        """The human side allowed to answer right now, if any."""
        state = self.state
        if self.closed or state.ended or state.awaiting_feedback:
            return None
        if state.phase in (ChasePhase.CONTESTANT_ROUND, ChasePhase.PUSHBACK_OPPORTUNITY):
            return Side.CONTESTANT if state.current_question is not None else None
        if state.phase is ChasePhase.CHASER_ROUND and not state.chaser_simulated:
            return Side.CHASER if state.current_question is not None else None
        return None

    @property
    def current_question(self) -> Question | None:
        return self.state.current_question

    def begin(self) -> None:
        log.info("Final chase starting (%s, %s)", self.config.difficulty.value,
                 "simulated" if self.config.chaser_simulated else "manual")
        self._dispatch(RoundStarted())

    def start_chaser_round(self) -> None:
        log.info("Final chase: chaser round, target %d", self.state.effective_target)
        self._dispatch(ChaserRoundStarted())

    def submit_answer(self, side: Side, index: int) -> None:
        if not 0 <= index < OPTION_COUNT:
            log.debug("Ignoring out-of-range answer %s from %s", index, side.value)
            return
        self._dispatch(AnswerSubmitted(side, index))

    def snapshot(self) -> FinalChaseSnapshot:
        state = self.state
        return FinalChaseSnapshot(
            phase=state.phase,
            contestant_time_remaining=self.clocks[Side.CONTESTANT].remaining,
            chaser_time_remaining=self.clocks[Side.CHASER].remaining,
            contestant_score=state.contestant_score,
            chaser_score=state.chaser_score,
            pushbacks_earned=state.pushbacks_earned,
            effective_target=state.effective_target,
            chaser_thinking=state.chaser_thinking,
            last_correct=state.last_correct,
        )

    def _step(self, state: FinalChaseState, event: ChaseEvent) -> tuple[FinalChaseState, list[ChaseEffect]]:
        before = state.phase
        new_state, effects = chase_step(state, event)
        if new_state.phase is not before:
            log.debug("Final chase: %s -> %s", before.value, new_state.phase.value)
        if new_state.pushbacks_earned > state.pushbacks_earned:
            log.info("Final chase: pushback earned, target now %d", new_state.effective_target)
        return new_state, effects

    def _apply(self, effect: ChaseEffect) -> None:
        if isinstance(effect, StartClock):
            self.clocks[effect.side].start()
        elif isinstance(effect, PauseClock):
            self.clocks[effect.side].pause()
        elif isinstance(effect, AwaitFeedback):
            self._schedule_feedback(self.config.feedback_delay(effect.kind), FeedbackElapsed())
        elif isinstance(effect, BeginThinking):
            if self.brain is None:
                log.warning("Chaser marked simulated but no brain is attached")
                return
            self._begin_thinking(self.brain, effect.question, ThinkingElapsed)
        elif isinstance(effect, Finish):
            self._finish(effect.outcome)

    def _broadcast(self) -> None:
        if self.closed:
            return
        self._notify(self.on_state, self.snapshot(), "state")

    def _finish(self, outcome: Outcome) -> None:
        for clock in self.clocks.values():
            clock.pause()
        self._cancel_thinking()
        self._broadcast()
        state = self.state
        self.result = FinalChaseResult(
            outcome=outcome,
            contestant_score=state.contestant_score,
            chaser_score=state.chaser_score,
            pushbacks_earned=state.pushbacks_earned,
        )
        log.info(
            "Final chase over: contestant %s (%d + %d pushbacks vs chaser %d)",
            outcome.value,
            state.contestant_score,
            state.pushbacks_earned,
            state.chaser_score,
        )
        self._teardown()
        self._notify(self.on_complete, self.result, "completion")
