"""Chase cog: /chase slash commands for timed battles and final chases."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine

import discord
from discord.commands import SlashCommandGroup, option

from chaser.models.battle import BattleResult, BattleSnapshot
from chaser.models.board import (
    format_battle_board,
    format_battle_result,
    format_final_board,
    format_final_result,
)
from chaser.models.final_chase import ChasePhase, FinalChaseResult, FinalChaseSnapshot
from chaser.models.quiz import OPTION_COUNT, Difficulty, Side
from chaser.models.session import (
    FINAL_TRANSITION_SECONDS,
    ChaseMode,
    ChaseSession,
    close_sessions,
)
from chaser.services.final_chase import FinalChase, FinalChaseConfig
from chaser.services.question_writer import QuestionWriterError
from chaser.services.scheduler import Scheduler
from chaser.services.timed_battle import BattleConfig, TimedBattle

log = logging.getLogger(__name__)

DIFFICULTY_CHOICES = [d.value for d in Difficulty]

# A timed battle needs at least one question per side
MIN_BATTLE_QUESTIONS = 2


class ChaseCog(discord.Cog):
    """Cog for running chases against a simulated or human chaser."""

    def __init__(self, bot: discord.Bot):
        self.bot = bot
        self._tasks: set[asyncio.Task] = set()
        # Builds each duel's scheduler; None means a LoopScheduler on the running loop
        self.scheduler_factory: Callable[[], Scheduler] | None = None

    chase = SlashCommandGroup("chase", "Quiz chase commands")

    @property
    def sessions(self) -> dict[int, ChaseSession]:
        return self.bot.chase_active_duels  # type: ignore[attr-defined]

    @property
    def refresh_seconds(self) -> float:
        cfg = getattr(self.bot, "chase_cfg", None)
        return float(getattr(cfg, "status_refresh_seconds", 5.0))

    @chase.command(name="battle", description="Alternating timed battle against the chaser")
    @option("topic", str, description="What the questions should be about", required=True)
    @option("difficulty", str, description="Chaser difficulty", required=False, default=None, choices=DIFFICULTY_CHOICES)
    @option("chaser", discord.Member, description="Play the chaser yourself instead of the computer", required=False, default=None)
    async def chase_battle(
        self,
        ctx: discord.ApplicationContext,  # type: ignore[override]
        topic: str,
        difficulty: str | None = None,
        chaser: discord.Member | None = None,
    ):
        """Start an alternating timed battle in this channel."""
        await self._start(ctx, ChaseMode.BATTLE, topic, difficulty, chaser)

    @chase.command(name="final", description="Final chase: bank answers, then hold off the chaser")
    @option("topic", str, description="What the questions should be about", required=True)
    @option("difficulty", str, description="Chaser difficulty", required=False, default=None, choices=DIFFICULTY_CHOICES)
    @option("chaser", discord.Member, description="Play the chaser yourself instead of the computer", required=False, default=None)
    async def chase_final(
        self,
        ctx: discord.ApplicationContext,  # type: ignore[override]
        topic: str,
        difficulty: str | None = None,
        chaser: discord.Member | None = None,
    ):
        """Start a final chase in this channel."""
        await self._start(ctx, ChaseMode.FINAL, topic, difficulty, chaser)

    @chase.command(name="answer", description="Answer the current question")
    @option("choice", int, description="Option number (1-4)", required=True, min_value=1, max_value=OPTION_COUNT)
    async def chase_answer(self, ctx: discord.ApplicationContext, choice: int):  # type: ignore[override]
        await self._answer(ctx, choice)

    @chase.command(name="stop", description="Stop the chase in this channel")
    async def chase_stop(self, ctx: discord.ApplicationContext):  # type: ignore[override]
        await self._stop(ctx)

    def cog_unload(self) -> None:
        close_sessions(self.sessions, reason="cog unloaded")
        for task in list(self._tasks):
            task.cancel()

    async def _answer(self, ctx: discord.ApplicationContext, choice: int) -> None:
        session = self.sessions.get(ctx.channel.id)
        if session is None or session.runner is None:
            await ctx.respond("There is no chase running in this channel.", ephemeral=True)
            return
        side = session.side_for(ctx.author.id)
        if side is None:
            await ctx.respond("You're not playing in this chase.", ephemeral=True)
            return
        if session.runner.awaiting_side is not side:
            await ctx.respond("It's not your turn to answer.", ephemeral=True)
            return
        session.runner.submit_answer(side, choice - 1)
        await ctx.respond(f"Answer {choice} locked in.", ephemeral=True)

    async def _stop(self, ctx: discord.ApplicationContext) -> None:
        await ctx.defer(ephemeral=False)
        session = self.sessions.pop(ctx.channel.id, None)
        if session is None:
            await ctx.respond("There is no chase running in this channel.")
            return
        if session.runner is not None:
            session.runner.exit()
        log.info("Chase cancelled via /chase stop in channel %s (%s on '%s')", session.channel_id, session.mode.value, session.topic)
        await ctx.respond(f"**Chase Cancelled**\n\nThe {session.mode.value} on \"{session.topic}\" has been stopped. No result will be posted.")

    async def _start(
        self,
        ctx: discord.ApplicationContext,
        mode: ChaseMode,
        topic: str,
        difficulty: str | None,
        chaser: discord.Member | None,
    ) -> None:
        await ctx.defer(ephemeral=False)
        channel_id = ctx.channel.id

        if channel_id in self.sessions:
            await ctx.respond("A chase is already running in this channel. Use `/chase stop` to cancel it first.")
            return
        if chaser is not None and (chaser.id == ctx.author.id or getattr(chaser, "bot", False)):
            await ctx.respond("The chaser must be a different, human player.")
            return

        cfg = getattr(self.bot, "chase_cfg", None)
        tier = Difficulty.parse(difficulty, default=getattr(cfg, "default_difficulty", None))
        session = ChaseSession(
            channel_id=channel_id,
            mode=mode,
            topic=topic,
            difficulty=tier,
            contestant_id=ctx.author.id,
            chaser_id=chaser.id if chaser is not None else None,
            channel=ctx.channel,
        )
        # Reserve the channel while questions are written
        self.sessions[channel_id] = session

        try:
            count = int(getattr(cfg, "question_count", 20))
            questions = await self.bot.chase_writer.write_questions(topic, count)  # type: ignore[attr-defined]
        except QuestionWriterError as e:
            log.warning("Question writing failed (channel=%s): %s", channel_id, e)
            self._cleanup_session(session, reason="no_questions")
            await ctx.respond("Couldn't write questions for that topic. Please try again or pick another topic.")
            return
        except asyncio.CancelledError:
            self._cleanup_session(session, reason="task_cancelled")
            raise

        if self.sessions.get(channel_id) is not session:
            # Stopped while questions were being written
            return
        if mode is ChaseMode.BATTLE and len(questions) < MIN_BATTLE_QUESTIONS:
            self._cleanup_session(session, reason="too_few_questions")
            await ctx.respond("Not enough questions came back for a battle. Please try again.")
            return

        session.runner = self._build_runner(session, questions)
        opponent = chaser.display_name if chaser is not None else tier.profile.chaser_label
        try:
            await ctx.respond(
                f"**{'TIMED BATTLE' if mode is ChaseMode.BATTLE else 'FINAL CHASE'} STARTING!**\n\n"
                f"**{ctx.author.display_name}** vs **{opponent}**\n"
                f"**Topic:** {topic}\n"
                f"**Difficulty:** {tier.profile.label} ({tier.profile.description})\n\n"
                f"Answer with `/chase answer`."
            )
            session.status_message = await ctx.channel.send(self._render(session))
        except discord.HTTPException as e:
            # NotFound and Forbidden are HTTPException subclasses
            log.warning("Could not post chase board (channel=%s): %s", channel_id, e)
            self._cleanup_session(session, reason="board_failed")
            return

        if self.sessions.get(channel_id) is not session:
            return
        if mode is ChaseMode.BATTLE:
            session.runner.start()
        else:
            session.runner.begin()

    def _build_runner(self, session: ChaseSession, questions: list) -> TimedBattle | FinalChase:
        scheduler = self.scheduler_factory() if self.scheduler_factory is not None else None
        if session.mode is ChaseMode.BATTLE:
            config = BattleConfig.for_difficulty(session.difficulty, chaser_simulated=session.chaser_simulated)
            return TimedBattle.from_pool(
                config,
                questions,
                on_complete=lambda result: self._on_battle_complete(session, result),
                on_state=lambda snapshot: self._on_state(session, snapshot),
                scheduler=scheduler,
            )
        return FinalChase(
            FinalChaseConfig(difficulty=session.difficulty, chaser_simulated=session.chaser_simulated),
            questions,
            on_complete=lambda result: self._on_final_complete(session, result),
            on_state=lambda snapshot: self._on_state(session, snapshot),
            scheduler=scheduler,
        )

    def _render(self, session: ChaseSession) -> str:
        runner = session.runner
        if session.mode is ChaseMode.BATTLE:
            return format_battle_board(runner.snapshot(), runner.current_question, session.difficulty)
        return format_final_board(runner.snapshot(), runner.current_question, session.difficulty)

    def _on_state(self, session: ChaseSession, snapshot: BattleSnapshot | FinalChaseSnapshot) -> None:
        if self.sessions.get(session.channel_id) is not session:
            return
        if (
            isinstance(snapshot, FinalChaseSnapshot)
            and snapshot.phase is ChasePhase.TRANSITION
            and not session.transition_scheduled
        ):
            session.transition_scheduled = True
            session.runner.scheduler.call_later(FINAL_TRANSITION_SECONDS, session.runner.start_chaser_round)
        if session.status_message is None:
            return
        now = time.monotonic()
        if not session.refresh_due(snapshot, now, self.refresh_seconds):
            return
        session.mark_refreshed(snapshot, now)
        self._spawn(self._edit_board(session, self._render(session)))

    def _on_battle_complete(self, session: ChaseSession, result: BattleResult) -> None:
        self._cleanup_session(session, reason="completed")
        self._spawn(self._post_result(session, format_battle_result(result, session.difficulty)))

    def _on_final_complete(self, session: ChaseSession, result: FinalChaseResult) -> None:
        self._cleanup_session(session, reason="completed")
        self._spawn(self._post_result(session, format_final_result(result, session.difficulty)))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _edit_board(self, session: ChaseSession, content: str) -> None:
        try:
            await session.status_message.edit(content=content)
        except discord.NotFound as e:
            log.warning("Chase interrupted - board message not found (channel=%s): %s", session.channel_id, e)
            self._abort(session, reason="message_deleted")
        except discord.Forbidden as e:
            log.warning("Chase interrupted - permission denied (channel=%s): %s", session.channel_id, e)
            self._abort(session, reason="permission_denied")
        except discord.HTTPException as e:
            log.error("Chase interrupted - Discord API error (channel=%s): %s", session.channel_id, e, exc_info=True)
            self._abort(session, reason="discord_api_error")

    async def _post_result(self, session: ChaseSession, text: str) -> None:
        if session.status_message is not None:
            await self._edit_board(session, self._render(session))
        try:
            await session.channel.send(text)
        except discord.HTTPException as e:
            # NotFound and Forbidden are HTTPException subclasses
            log.warning("Could not post chase result (channel=%s): %s", session.channel_id, e)

    def _abort(self, session: ChaseSession, reason: str) -> None:
        if session.runner is not None:
            session.runner.exit()
        self._cleanup_session(session, reason=reason)

    def _cleanup_session(self, session: ChaseSession, reason: str = "completed") -> None:
        """Remove ``session`` from the active chases if it is still the registered one."""
        if self.sessions.get(session.channel_id) is session:
            del self.sessions[session.channel_id]
            log.info(
                "Chase cleanup (%s) in channel %s: %s on '%s' after %.0fs",
                reason, session.channel_id, session.mode.value, session.topic, session.get_elapsed_time()
            )


def setup(bot: discord.Bot):
    """Setup the ChaseCog and optionally scope commands to specific guilds."""
    if not hasattr(bot, "chase_active_duels"):
        bot.chase_active_duels = {}  # type: ignore[attr-defined]
    gids = getattr(getattr(bot, "chase_cfg", None), "command_guild_ids", None)
    if gids:
        try:
            ChaseCog.chase.guild_ids = gids  # type: ignore[attr-defined]
            for sc in getattr(ChaseCog.chase, "subcommands", []) or []:
                try:
                    setattr(sc, "guild_ids", gids)
                except AttributeError:
                    # Some subcommand types may not support guild_ids
                    pass
            log.info("chase commands scoped to guilds: %s", ",".join(str(g) for g in gids))
        except Exception:
            log.warning("Failed to scope chase commands to guilds", exc_info=True)
    bot.add_cog(ChaseCog(bot))
