"""Final chase: a solo contestant round, then the chaser tries to catch up.

The contestant banks one point per correct answer against their own clock.
The chaser then works through the same questions against a second clock and
wins as soon as its score exceeds ``contestant_score + pushbacks_earned``.
Every chaser mistake pauses the chaser clock and hands the missed question to
the contestant; a correct pushback raises the target by one.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from .quiz import Question, Side


class ChasePhase(Enum):
    INTRO = "intro"
    CONTESTANT_ROUND = "contestant-round"
    TRANSITION = "transition"
    CHASER_ROUND = "chaser-round"
    PUSHBACK_OPPORTUNITY = "pushback-opportunity"
    COMPLETE = "complete"


class Outcome(Enum):
    """Result from the contestant's point of view."""

    WIN = "win"
    LOSS = "loss"


class FeedbackKind(Enum):
    CONTESTANT = "contestant"
    CHASER_CORRECT = "chaser-correct"
    CHASER_WRONG = "chaser-wrong"
    PUSHBACK = "pushback"


@dataclass(frozen=True)
class FinalChaseState:
    """Snapshot of a final chase.

    Attributes:
        questions: Shared question list; the index restarts for the chaser.
        chaser_simulated: True when the chaser's answers come from the brain.
        phase: Current phase.
        question_index: Index into ``questions``; may run past the end.
        contestant_score: Points banked in the contestant round.
        chaser_score: Points scored by the chaser.
        pushbacks_earned: Successful pushbacks; only ever increases.
        pushback_question: Held question, present only during a pushback.
        awaiting_feedback: True while an answer's feedback is on screen.
        chaser_thinking: True while a simulated chaser decision is pending.
        last_correct: Whether the answer under feedback was right.
        outcome: Set when the phase becomes ``COMPLETE``.
    """

    questions: tuple[Question, ...]
    chaser_simulated: bool = True
    phase: ChasePhase = ChasePhase.INTRO
    question_index: int = 0
    contestant_score: int = 0
    chaser_score: int = 0
    pushbacks_earned: int = 0
    pushback_question: Question | None = None
    awaiting_feedback: bool = False
    chaser_thinking: bool = False
    last_correct: bool | None = None
    outcome: Outcome | None = None

    @property
    def ended(self) -> bool:
        return self.phase is ChasePhase.COMPLETE

    @property
    def effective_target(self) -> int:
        """Score the chaser must exceed; never cached."""
        return self.contestant_score + self.pushbacks_earned

    @property
    def current_question(self) -> Question | None:
        if self.phase is ChasePhase.PUSHBACK_OPPORTUNITY:
            return self.pushback_question
        if 0 <= self.question_index < len(self.questions):
            return self.questions[self.question_index]
        return None


# Events


@dataclass(frozen=True)
class RoundStarted:
    pass


@dataclass(frozen=True)
class ChaserRoundStarted:
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


ChaseEvent = Union[RoundStarted, ChaserRoundStarted, AnswerSubmitted, ThinkingElapsed, FeedbackElapsed, ClockExpired]


# Effects


@dataclass(frozen=True)
class StartClock:
    side: Side


@dataclass(frozen=True)
class PauseClock:
    side: Side


@dataclass(frozen=True)
class AwaitFeedback:
    kind: FeedbackKind


@dataclass(frozen=True)
class BeginThinking:
    question: Question


@dataclass(frozen=True)
class Finish:
    outcome: Outcome


ChaseEffect = Union[StartClock, PauseClock, AwaitFeedback, BeginThinking, Finish]


@dataclass(frozen=True)
class FinalChaseSnapshot:
    phase: ChasePhase
    contestant_time_remaining: int
    chaser_time_remaining: int
    contestant_score: int
    chaser_score: int
    pushbacks_earned: int
    effective_target: int
    chaser_thinking: bool = False
    last_correct: bool | None = None

    @property
    def active_side(self) -> Side | None:
        """Whose question is on the board; None between rounds."""
        if self.phase in (ChasePhase.CONTESTANT_ROUND, ChasePhase.PUSHBACK_OPPORTUNITY):
            return Side.CONTESTANT
        if self.phase is ChasePhase.CHASER_ROUND:
            return Side.CHASER
        return None

    @property
    def chaser_needs(self) -> int:
        """Correct answers the chaser still needs to win."""
        return max(0, self.effective_target - self.chaser_score + 1)


@dataclass(frozen=True)
class FinalChaseResult:
    outcome: Outcome
    contestant_score: int
    chaser_score: int
    pushbacks_earned: int = 0


def chase_step(state: FinalChaseState, event: ChaseEvent) -> tuple[FinalChaseState, list[ChaseEffect]]:
    """Apply one event. Events that are not valid right now change nothing."""
    if state.ended:
        return state, []

    if isinstance(event, RoundStarted):
        if state.phase is not ChasePhase.INTRO:
            return state, []
        if not state.questions:
            return replace(state, phase=ChasePhase.TRANSITION), []
        return replace(state, phase=ChasePhase.CONTESTANT_ROUND), [StartClock(Side.CONTESTANT)]

    if isinstance(event, ChaserRoundStarted):
        if state.phase is not ChasePhase.TRANSITION:
            return state, []
        state = replace(state, phase=ChasePhase.CHASER_ROUND, question_index=0, last_correct=None)
        return _resume_chaser(state, [])

    if isinstance(event, AnswerSubmitted):
        if state.awaiting_feedback:
            return state, []
        if event.side is Side.CONTESTANT:
            if state.phase is ChasePhase.CONTESTANT_ROUND:
                return _contestant_answer(state, event.index)
            if state.phase is ChasePhase.PUSHBACK_OPPORTUNITY:
                return _pushback_answer(state, event.index)
            return state, []
        if state.phase is not ChasePhase.CHASER_ROUND or state.chaser_simulated:
            return state, []
        return _chaser_answer(state, event.index)

    if isinstance(event, ThinkingElapsed):
        if state.phase is not ChasePhase.CHASER_ROUND or not state.chaser_thinking:
            return state, []
        return _chaser_answer(replace(state, chaser_thinking=False), event.index)

    if isinstance(event, FeedbackElapsed):
        if not state.awaiting_feedback:
            return state, []
        return _after_feedback(replace(state, awaiting_feedback=False))

    if isinstance(event, ClockExpired):
        if event.side is Side.CONTESTANT and state.phase is ChasePhase.CONTESTANT_ROUND:
            # Time up mid-feedback: the pending feedback no longer applies.
            return replace(state, phase=ChasePhase.TRANSITION, awaiting_feedback=False, last_correct=None), []
        if event.side is Side.CHASER and state.phase is ChasePhase.CHASER_ROUND:
            return _complete(state, Outcome.WIN, [])
        return state, []

    return state, []


def _contestant_answer(state: FinalChaseState, index: int) -> tuple[FinalChaseState, list[ChaseEffect]]:
    question = state.current_question
    if question is None:
        return state, []
    correct = question.is_correct(index)
    state = replace(
        state,
        contestant_score=state.contestant_score + (1 if correct else 0),
        awaiting_feedback=True,
        last_correct=correct,
    )
    return state, [AwaitFeedback(FeedbackKind.CONTESTANT)]


def _chaser_answer(state: FinalChaseState, index: int) -> tuple[FinalChaseState, list[ChaseEffect]]:
    question = state.current_question
    if question is None:
        return state, []
    if question.is_correct(index):
        state = replace(state, chaser_score=state.chaser_score + 1, last_correct=True)
        if state.chaser_score > state.effective_target:
            return _complete(state, Outcome.LOSS, [PauseClock(Side.CHASER)])
        return replace(state, awaiting_feedback=True), [AwaitFeedback(FeedbackKind.CHASER_CORRECT)]
    state = replace(state, last_correct=False, awaiting_feedback=True)
    return state, [PauseClock(Side.CHASER), AwaitFeedback(FeedbackKind.CHASER_WRONG)]


def _pushback_answer(state: FinalChaseState, index: int) -> tuple[FinalChaseState, list[ChaseEffect]]:
    question = state.pushback_question
    if question is None:
        return state, []
    correct = question.is_correct(index)
    state = replace(
        state,
        pushbacks_earned=state.pushbacks_earned + (1 if correct else 0),
        awaiting_feedback=True,
        last_correct=correct,
    )
    return state, [AwaitFeedback(FeedbackKind.PUSHBACK)]


def _after_feedback(state: FinalChaseState) -> tuple[FinalChaseState, list[ChaseEffect]]:
    if state.phase is ChasePhase.CONTESTANT_ROUND:
        state = replace(state, question_index=state.question_index + 1, last_correct=None)
        if state.current_question is None:
            return replace(state, phase=ChasePhase.TRANSITION), [PauseClock(Side.CONTESTANT)]
        return state, []

    if state.phase is ChasePhase.CHASER_ROUND:
        if state.last_correct:
            state = replace(state, question_index=state.question_index + 1, last_correct=None)
            return _next_chaser_question(state, [])
        held = state.current_question
        return replace(state, phase=ChasePhase.PUSHBACK_OPPORTUNITY, pushback_question=held, last_correct=None), []

    if state.phase is ChasePhase.PUSHBACK_OPPORTUNITY:
        state = replace(
            state,
            phase=ChasePhase.CHASER_ROUND,
            pushback_question=None,
            question_index=state.question_index + 1,
            last_correct=None,
        )
        return _resume_chaser(state, [])

    return state, []


def _resume_chaser(
    state: FinalChaseState, effects: list[ChaseEffect]
) -> tuple[FinalChaseState, list[ChaseEffect]]:
    effects.append(StartClock(Side.CHASER))
    return _next_chaser_question(state, effects)


def _next_chaser_question(
    state: FinalChaseState, effects: list[ChaseEffect]
) -> tuple[FinalChaseState, list[ChaseEffect]]:
    # Out of questions: the chaser can only wait for its clock to run out.
    question = state.current_question
    if state.chaser_simulated and question is not None:
        effects.append(BeginThinking(question))
        return replace(state, chaser_thinking=True), effects
    return state, effects


def _complete(
    state: FinalChaseState, outcome: Outcome, effects: list[ChaseEffect]
) -> tuple[FinalChaseState, list[ChaseEffect]]:
    state = replace(
        state,
        phase=ChasePhase.COMPLETE,
        outcome=outcome,
        awaiting_feedback=False,
        chaser_thinking=False,
    )
    effects.append(Finish(outcome))
    return state, effects
