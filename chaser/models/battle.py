"""Alternating-turn timed battle: state and pure transitions.

Both sides hold a clock. Only the active side's clock runs; a correct answer
passes the turn, a wrong answer moves the same side on to its next question.
A side loses when its clock reaches zero or it runs out of questions.

``battle_step`` never touches clocks or timers itself. It returns the new
state plus a list of effects for the orchestrator to carry out.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from .quiz import Question, Side


class TurnPhase(Enum):
    ANSWERING = "answering"
    FEEDBACK_CORRECT = "feedback-correct"
    FEEDBACK_WRONG = "feedback-wrong"
    THINKING = "thinking"


@dataclass(frozen=True)
class BattleState:
    """Snapshot of a timed battle.

    Attributes:
        contestant_questions: Contestant's queue, consumed by index.
        chaser_questions: Chaser's queue, consumed by index.
        chaser_simulated: True when the chaser's answers come from the brain.
        active_side: Side whose turn it is.
        phase: Sub-state of the current turn.
        contestant_index: Contestant's current question.
        chaser_index: Chaser's current question.
        selected_answer: Answer shown during feedback, if any.
        ended: Sticky terminal flag.
        winner: Set once ``ended`` is true.
    """

    contestant_questions: tuple[Question, ...]
    chaser_questions: tuple[Question, ...]
    chaser_simulated: bool = True
    active_side: Side = Side.CONTESTANT
    phase: TurnPhase = TurnPhase.ANSWERING
    contestant_index: int = 0
    chaser_index: int = 0
    selected_answer: int | None = None
    started: bool = False
    ended: bool = False
    winner: Side | None = None

    def queue(self, side: Side) -> tuple[Question, ...]:
        return self.contestant_questions if side is Side.CONTESTANT else self.chaser_questions

    def index(self, side: Side) -> int:
        return self.contestant_index if side is Side.CONTESTANT else self.chaser_index

    def has_question(self, side: Side) -> bool:
        return self.index(side) < len(self.queue(side))

    def question_for(self, side: Side) -> Question | None:
        if not self.has_question(side):
            return None
        return self.queue(side)[self.index(side)]

    @property
    def current_question(self) -> Question | None:
        return self.question_for(self.active_side)

    def is_simulated(self, side: Side) -> bool:
        return side is Side.CHASER and self.chaser_simulated

    def with_index(self, side: Side, value: int) -> BattleState:
        if side is Side.CONTESTANT:
            return replace(self, contestant_index=value)
        return replace(self, chaser_index=value)


# Events


@dataclass(frozen=True)
class BattleStarted:
    pass


@dataclass(frozen=True)
class AnswerSubmitted:
    side: Side
    index: int


@dataclass(frozen=True)
class ThinkingElapsed:
    index: int


@dataclass(frozen=True)
class FeedbackElapsed:
    pass


@dataclass(frozen=True)
class ClockExpired:
    side: Side


BattleEvent = Union[BattleStarted, AnswerSubmitted, ThinkingElapsed, FeedbackElapsed, ClockExpired]


# Effects


@dataclass(frozen=True)
class StartClock:
    side: Side


@dataclass(frozen=True)
class PauseClock:
    side: Side


@dataclass(frozen=True)
class AwaitFeedback:
    pass


@dataclass(frozen=True)
class BeginThinking:
    question: Question


@dataclass(frozen=True)
class DeclareWinner:
    side: Side


BattleEffect = Union[StartClock, PauseClock, AwaitFeedback, BeginThinking, DeclareWinner]


@dataclass(frozen=True)
class BattleSnapshot:
    """What a passive scoreboard needs after every tick or turn change."""

    contestant_time_remaining: int
    chaser_time_remaining: int
    active_side: Side
    phase: TurnPhase
    chaser_thinking: bool = False


@dataclass(frozen=True)
class BattleResult:
    winner: Side
    contestant_time_remaining: int
    chaser_time_remaining: int


def battle_step(state: BattleState, event: BattleEvent) -> tuple[BattleState, list[BattleEffect]]:
    """Apply one event. Events that are not valid right now change nothing."""
    if state.ended:
        return state, []

    if isinstance(event, BattleStarted):
        if state.started:
            return state, []
        return _open(state)

    if not state.started:
        return state, []

    if isinstance(event, AnswerSubmitted):
        if (
            state.phase is not TurnPhase.ANSWERING
            or event.side is not state.active_side
            or state.is_simulated(event.side)
        ):
            return state, []
        return _judge(state, event.index)

    if isinstance(event, ThinkingElapsed):
        if state.phase is not TurnPhase.THINKING or not state.is_simulated(state.active_side):
            return state, []
        return _judge(state, event.index)

    if isinstance(event, FeedbackElapsed):
        if state.phase is TurnPhase.FEEDBACK_CORRECT:
            return _after_correct(state)
        if state.phase is TurnPhase.FEEDBACK_WRONG:
            return _after_wrong(state)
        return state, []

    if isinstance(event, ClockExpired):
        # Only the running clock can expire, and only the active side's clock runs.
        if event.side is not state.active_side:
            return state, []
        return _finish(state, event.side.other)

    return state, []


def _open(state: BattleState) -> tuple[BattleState, list[BattleEffect]]:
    # The contestant's clock starts first.
    state = replace(state, started=True)
    if not state.has_question(state.active_side):
        return _finish(state, state.active_side.other)
    return _enter_turn(state, state.active_side, [])


def _judge(state: BattleState, index: int) -> tuple[BattleState, list[BattleEffect]]:
    question = state.current_question
    side = state.active_side
    # Feedback must not burn the answering side's time.
    effects: list[BattleEffect] = [PauseClock(side)]
    correct = question is not None and question.is_correct(index)
    phase = TurnPhase.FEEDBACK_CORRECT if correct else TurnPhase.FEEDBACK_WRONG
    effects.append(AwaitFeedback())
    return replace(state, phase=phase, selected_answer=index), effects


def _after_correct(state: BattleState) -> tuple[BattleState, list[BattleEffect]]:
    side = state.active_side
    state = state.with_index(side, state.index(side) + 1)
    receiver = side.other
    if not state.has_question(receiver):
        return _finish(state, side)
    state = replace(state, active_side=receiver, selected_answer=None)
    return _enter_turn(state, receiver, [PauseClock(side)])


def _after_wrong(state: BattleState) -> tuple[BattleState, list[BattleEffect]]:
    side = state.active_side
    state = state.with_index(side, state.index(side) + 1)
    if not state.has_question(side):
        return _finish(state, side.other)
    state = replace(state, selected_answer=None)
    return _enter_turn(state, side, [])


def _enter_turn(
    state: BattleState, side: Side, effects: list[BattleEffect]
) -> tuple[BattleState, list[BattleEffect]]:
    effects.append(StartClock(side))
    if state.is_simulated(side):
        question = state.question_for(side)
        assert question is not None
        effects.append(BeginThinking(question))
        return replace(state, phase=TurnPhase.THINKING), effects
    return replace(state, phase=TurnPhase.ANSWERING), effects


def _finish(state: BattleState, winner: Side) -> tuple[BattleState, list[BattleEffect]]:
    return replace(state, ended=True, winner=winner), [DeclareWinner(winner)]
