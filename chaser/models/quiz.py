"""Questions, sides and difficulty tiers shared by both duel formats."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# Contestant starting time for the alternating duel, same for every tier
CONTESTANT_START_TIME = 45

OPTION_COUNT = 4


class Question(BaseModel):
    """A single multiple-choice question.

    Generated questions arrive with the wire names ``question`` and
    ``correctAnswerIndex``; both spellings are accepted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prompt: str = Field(min_length=1, validation_alias=AliasChoices("prompt", "question"))
    options: tuple[str, str, str, str]
    correct_index: int = Field(
        ge=0,
        le=OPTION_COUNT - 1,
        validation_alias=AliasChoices("correct_index", "correctAnswerIndex"),
    )
    explanation: str = ""

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt must not be blank")
        return value

    def is_correct(self, index: int) -> bool:
        return index == self.correct_index

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]


class Side(Enum):
    """Which participant a clock, queue or turn belongs to."""

    CONTESTANT = "contestant"
    CHASER = "chaser"

    @property
    def other(self) -> Side:
        return Side.CHASER if self is Side.CONTESTANT else Side.CONTESTANT


@dataclass(frozen=True)
class DifficultyProfile:
    """Accuracy and pacing for one chaser tier.

    Attributes:
        accuracy: Probability the chaser answers correctly.
        accuracy_band: Range a per-duel accuracy may be drawn from.
        thinking_range: Min/max seconds the chaser "thinks" before answering.
        chaser_start_time: Chaser clock for the alternating duel, in seconds.
        label: Short display label.
        chaser_label: How the chaser is introduced.
        description: Help text for contestants.
    """

    accuracy: float
    accuracy_band: tuple[float, float]
    thinking_range: tuple[float, float]
    chaser_start_time: int
    label: str
    chaser_label: str
    description: str


class Difficulty(Enum):
    """Chaser difficulty tier."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def profile(self) -> DifficultyProfile:
        return DIFFICULTY_PROFILES[self]

    @classmethod
    def parse(cls, value: str | Difficulty | None, default: Difficulty | None = None) -> Difficulty:
        """Resolve a tier from user input, falling back to ``default`` (or medium)."""
        if isinstance(value, Difficulty):
            return value
        fallback = default or cls.MEDIUM
        if not value:
            return fallback
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return fallback


DIFFICULTY_PROFILES: dict[Difficulty, DifficultyProfile] = {
    Difficulty.EASY: DifficultyProfile(
        accuracy=0.60,
        accuracy_band=(0.50, 0.60),
        thinking_range=(4.0, 7.0),
        chaser_start_time=55,
        label="Easy",
        chaser_label="The Dim Chaser",
        description="Not very bright - needs 55 seconds and makes lots of mistakes",
    ),
    Difficulty.MEDIUM: DifficultyProfile(
        accuracy=0.75,
        accuracy_band=(0.70, 0.80),
        thinking_range=(3.0, 5.0),
        chaser_start_time=45,
        label="Medium",
        chaser_label="The Average Chaser",
        description="Fairly clever - takes 45 seconds with decent accuracy",
    ),
    Difficulty.HARD: DifficultyProfile(
        accuracy=0.90,
        accuracy_band=(0.85, 0.95),
        thinking_range=(2.0, 4.0),
        chaser_start_time=35,
        label="Hard",
        chaser_label="The Genius Chaser",
        description="Super smart - only needs 35 seconds and rarely wrong",
    ),
}


def split_questions(questions: Sequence[Question]) -> tuple[tuple[Question, ...], tuple[Question, ...]]:
    """Split one question list into contestant (even) and chaser (odd) queues."""
    contestant = tuple(q for i, q in enumerate(questions) if i % 2 == 0)
    chaser = tuple(q for i, q in enumerate(questions) if i % 2 == 1)
    return contestant, chaser


def format_clock(seconds: int) -> str:
    """Format whole seconds as ``m:ss``."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"
