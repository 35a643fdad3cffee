"""Per-channel chase session tracked by the Discord host."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable

from .battle import BattleSnapshot
from .final_chase import FinalChaseSnapshot
from .quiz import Difficulty, Side


log = logging.getLogger(__name__)


# Pause on the transition screen before the chaser's round opens
FINAL_TRANSITION_SECONDS = 5.0


class ChaseMode(Enum):
    """Which duel format a session runs."""

    BATTLE = "battle"
    FINAL = "final"


def refresh_key(snapshot: BattleSnapshot | FinalChaseSnapshot) -> Hashable:
    """Everything except the clocks: a change here always refreshes the board."""
    if isinstance(snapshot, BattleSnapshot):
        return (snapshot.active_side, snapshot.phase, snapshot.chaser_thinking)
    return (
        snapshot.phase,
        snapshot.contestant_score,
        snapshot.chaser_score,
        snapshot.pushbacks_earned,
        snapshot.last_correct,
        snapshot.chaser_thinking,
    )


@dataclass
class ChaseSession:
    """Tracks one running chase in a channel.

    Attributes:
        channel_id: Discord channel ID where the chase is taking place
        mode: Duel format
        topic: What the questions are about
        difficulty: Chaser tier
        contestant_id: User answering as the contestant
        chaser_id: User answering as the chaser, None when the chaser is simulated
        runner: The running ``TimedBattle`` or ``FinalChase``
        channel: Discord channel the chase is posted in
        status_message: Discord message holding the live board
        last_refresh: Monotonic time of the last board edit
        last_key: ``refresh_key`` of the last rendered snapshot
        transition_scheduled: Final chase only, chaser round already queued
        started_at: Monotonic timestamp when the session was created
    """

    channel_id: int
    mode: ChaseMode
    topic: str
    difficulty: Difficulty
    contestant_id: int
    chaser_id: int | None = None
    runner: Any = None
    channel: Any = None
    status_message: Any = None
    last_refresh: float = 0.0
    last_key: Hashable | None = None
    transition_scheduled: bool = False
    started_at: float = field(default_factory=time.monotonic)

    @property
    def chaser_simulated(self) -> bool:
        return self.chaser_id is None

    def side_for(self, user_id: int) -> Side | None:
        """Which side ``user_id`` plays in this session, if any."""
        if user_id == self.contestant_id:
            return Side.CONTESTANT
        if self.chaser_id is not None and user_id == self.chaser_id:
            return Side.CHASER
        return None

    def refresh_due(self, snapshot: BattleSnapshot | FinalChaseSnapshot, now: float, interval: float) -> bool:
        """Whether the board should be re-rendered for ``snapshot``.

        Turn, phase and score changes always refresh; clock ticks refresh at
        most once per ``interval`` seconds.
        """
        if refresh_key(snapshot) != self.last_key:
            return True
        return now - self.last_refresh >= interval

    def mark_refreshed(self, snapshot: BattleSnapshot | FinalChaseSnapshot, now: float) -> None:
        self.last_key = refresh_key(snapshot)
        self.last_refresh = now

    def get_elapsed_time(self) -> float:
        return time.monotonic() - self.started_at


def close_sessions(sessions: dict[int, ChaseSession], reason: str = "shutdown") -> int:
    """Tear down every running chase without reporting outcomes. Returns how many were closed."""
    closed = 0
    for channel_id in list(sessions):
        session = sessions.pop(channel_id)
        if session.runner is not None and not session.runner.closed:
            session.runner.exit()
            closed += 1
    if closed:
        log.info("Closed %d running chase(s) (%s)", closed, reason)
    return closed
