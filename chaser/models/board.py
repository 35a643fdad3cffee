"""Text scoreboards for the Discord host."""

from __future__ import annotations

from .battle import BattleResult, BattleSnapshot, TurnPhase
from .final_chase import ChasePhase, FinalChaseResult, FinalChaseSnapshot, Outcome
from .quiz import Difficulty, Question, Side, format_clock


OPTION_LABELS = ("1", "2", "3", "4")

_SIDE_NAMES = {Side.CONTESTANT: "Contestant", Side.CHASER: "Chaser"}


def format_question(question: Question) -> str:
    lines = [f"**Q:** {question.prompt}"]
    for label, text in zip(OPTION_LABELS, question.options):
        lines.append(f"`{label}` {text}")
    return "\n".join(lines)


def format_battle_board(snapshot: BattleSnapshot, question: Question | None, difficulty: Difficulty) -> str:
    """Render the alternating duel: both clocks, whose turn, and the live question."""
    profile = difficulty.profile
    contestant_marker = "▶ " if snapshot.active_side is Side.CONTESTANT else ""
    chaser_marker = "▶ " if snapshot.active_side is Side.CHASER else ""
    lines = [
        f"**TIMED BATTLE** vs {profile.chaser_label}",
        f"{contestant_marker}Contestant `{format_clock(snapshot.contestant_time_remaining)}`"
        f"  |  {chaser_marker}Chaser `{format_clock(snapshot.chaser_time_remaining)}`",
        "",
    ]
    side_name = _SIDE_NAMES[snapshot.active_side]
    if snapshot.phase is TurnPhase.FEEDBACK_CORRECT:
        lines.append(f"**{side_name}: correct!** The turn passes.")
    elif snapshot.phase is TurnPhase.FEEDBACK_WRONG:
        lines.append(f"**{side_name}: wrong.** Next question, clock still running.")
    elif snapshot.chaser_thinking or snapshot.phase is TurnPhase.THINKING:
        lines.append("The chaser is thinking...")
    else:
        lines.append(f"{side_name} to answer with `/chase answer`.")
    if question is not None and snapshot.phase in (TurnPhase.ANSWERING, TurnPhase.THINKING):
        lines.append("")
        lines.append(format_question(question))
    return "\n".join(lines)


def format_battle_result(result: BattleResult, difficulty: Difficulty) -> str:
    if result.winner is Side.CONTESTANT:
        headline = f"**YOU BEAT {difficulty.profile.chaser_label.upper()}!**"
    else:
        headline = f"**{difficulty.profile.chaser_label.upper()} WINS**"
    return (
        f"{headline}\n\n"
        f"Time left: contestant `{format_clock(result.contestant_time_remaining)}`, "
        f"chaser `{format_clock(result.chaser_time_remaining)}`"
    )


def format_final_board(snapshot: FinalChaseSnapshot, question: Question | None, difficulty: Difficulty) -> str:
    """Render the final chase: phase, scores, target and the live question."""
    lines = [f"**FINAL CHASE** vs {difficulty.profile.chaser_label}"]
    phase = snapshot.phase
    if phase is ChasePhase.INTRO:
        lines.append("Get ready...")
        return "\n".join(lines)
    if phase is ChasePhase.CONTESTANT_ROUND:
        lines.append(
            f"Contestant round `{format_clock(snapshot.contestant_time_remaining)}`"
            f"  |  Score **{snapshot.contestant_score}**"
        )
    elif phase is ChasePhase.TRANSITION:
        lines.append(
            f"Time! The contestant banked **{snapshot.contestant_score}**. "
            f"The chaser needs **{snapshot.chaser_needs}** to catch them."
        )
        return "\n".join(lines)
    else:
        lines.append(
            f"Chaser `{format_clock(snapshot.chaser_time_remaining)}`"
            f"  |  Chaser **{snapshot.chaser_score}** / target **{snapshot.effective_target}**"
            f"  |  Pushbacks **{snapshot.pushbacks_earned}**"
        )
    lines.append("")
    if snapshot.last_correct is not None:
        if phase is ChasePhase.PUSHBACK_OPPORTUNITY:
            lines.append("**Pushback!**" if snapshot.last_correct else "**No pushback.**")
        else:
            lines.append("**Correct!**" if snapshot.last_correct else "**Wrong.**")
    elif phase is ChasePhase.PUSHBACK_OPPORTUNITY:
        lines.append("The chaser got it wrong! Contestant, answer for a pushback. The chaser's clock is stopped.")
    elif snapshot.chaser_thinking:
        lines.append("The chaser is thinking...")
    if question is not None and snapshot.last_correct is None and phase is not ChasePhase.COMPLETE:
        lines.append(format_question(question))
    return "\n".join(lines)


def format_final_result(result: FinalChaseResult, difficulty: Difficulty) -> str:
    target = result.contestant_score + result.pushbacks_earned
    if result.outcome is Outcome.WIN:
        headline = f"**THE CONTESTANT ESCAPES {difficulty.profile.chaser_label.upper()}!**"
    else:
        headline = f"**CAUGHT by {difficulty.profile.chaser_label}!**"
    return (
        f"{headline}\n\n"
        f"Contestant {result.contestant_score} (+{result.pushbacks_earned} pushbacks = {target})"
        f" vs chaser {result.chaser_score}"
    )
