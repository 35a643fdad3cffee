"""Tests for the /chase cog commands."""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from chaser.cogs.chase import ChaseCog
from chaser.models.battle import TurnPhase
from chaser.models.final_chase import ChasePhase
from chaser.models.quiz import Difficulty, Side
from chaser.models.session import FINAL_TRANSITION_SECONDS, ChaseMode, close_sessions
from chaser.services.question_writer import QuestionWriterError


CHANNEL_ID = 123456789
CONTESTANT_ID = 100
CHASER_ID = 200


class MockMessage:
    """Mock Discord message holding the live board."""

    def __init__(self):
        self.edit = AsyncMock()


class MockChannel:
    """Mock Discord channel for testing chase commands."""

    def __init__(self, channel_id: int = CHANNEL_ID):
        self.id = channel_id
        self.board = MockMessage()
        self.send = AsyncMock(return_value=self.board)


class MockApplicationContext:
    """Mock Discord ApplicationContext for testing cog commands."""

    def __init__(self, channel: MockChannel, user_id: int = CONTESTANT_ID, name: str = "Sam"):
        self.channel = channel
        self.author = MagicMock(id=user_id, display_name=name)
        self.respond = AsyncMock()
        self.defer = AsyncMock()


def last_response(ctx) -> str:
    return ctx.respond.call_args.args[0]


async def drain(cog):
    """Let every board edit and result post spawned by the cog finish."""
    for _ in range(10):
        if not cog._tasks:
            return
        await asyncio.gather(*list(cog._tasks))
        await asyncio.sleep(0)


@pytest.fixture
def bot(questions):
    bot = MagicMock()
    bot.chase_active_duels = {}
    bot.chase_cfg = SimpleNamespace(
        default_difficulty=Difficulty.MEDIUM,
        question_count=10,
        status_refresh_seconds=5.0,
        command_guild_ids=None,
    )
    bot.chase_writer = MagicMock()
    bot.chase_writer.write_questions = AsyncMock(return_value=questions(10))
    return bot


@pytest.fixture
def cog(bot, scheduler):
    cog = ChaseCog(bot)
    cog.scheduler_factory = lambda: scheduler
    yield cog
    close_sessions(bot.chase_active_duels, reason="test finished")


@pytest.fixture
def channel():
    return MockChannel()


@pytest.fixture
def human_chaser():
    return MagicMock(id=CHASER_ID, display_name="Alex", bot=False)


class TestChaseStartCommand:
    """Tests for /chase battle and /chase final."""

    @pytest.mark.asyncio
    async def test_battle_start_posts_board_and_starts(self, cog, bot, channel, scheduler):
        """Test a battle writes questions, posts the board and starts the contestant's clock."""
        ctx = MockApplicationContext(channel)

        await cog._start(ctx, ChaseMode.BATTLE, "Rivers", "hard", None)

        bot.chase_writer.write_questions.assert_awaited_once_with("Rivers", 10)
        session = bot.chase_active_duels[CHANNEL_ID]
        assert session.difficulty is Difficulty.HARD
        assert session.chaser_simulated is True
        assert session.runner.state.started is True
        assert session.runner.awaiting_side is Side.CONTESTANT
        assert "TIMED BATTLE STARTING" in last_response(ctx)
        channel.send.assert_awaited_once()
        assert session.status_message is channel.board

    @pytest.mark.asyncio
    async def test_rejects_second_chase_in_channel(self, cog, bot, channel):
        """Test only one chase may run per channel."""
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, None)
        first = bot.chase_active_duels[CHANNEL_ID]

        ctx = MockApplicationContext(channel, user_id=300)
        await cog._start(ctx, ChaseMode.FINAL, "Mountains", None, None)

        assert "already running" in last_response(ctx)
        assert bot.chase_active_duels[CHANNEL_ID] is first
        assert bot.chase_writer.write_questions.await_count == 1

    @pytest.mark.asyncio
    async def test_stop_while_writing_questions(self, cog, bot, channel, questions):
        """Test a chase stopped before its questions arrive never starts."""
        stop_ctx = MockApplicationContext(channel)

        async def write_then_get_stopped(topic, count):
            await cog._stop(stop_ctx)
            return questions(count)

        bot.chase_writer.write_questions = AsyncMock(side_effect=write_then_get_stopped)
        ctx = MockApplicationContext(channel)

        await cog._start(ctx, ChaseMode.BATTLE, "Rivers", None, None)

        assert "Chase Cancelled" in last_response(stop_ctx)
        assert CHANNEL_ID not in bot.chase_active_duels
        channel.send.assert_not_called()
        ctx.respond.assert_not_called()

    @pytest.mark.asyncio
    async def test_announcement_failure_releases_channel(self, cog, bot, channel, scheduler):
        """Test a failed announcement frees the channel and leaves nothing scheduled."""
        built = []
        build = cog._build_runner
        cog._build_runner = lambda session, qs: built.append(build(session, qs)) or built[-1]
        ctx = MockApplicationContext(channel)
        ctx.respond.side_effect = discord.HTTPException(MagicMock(status=500, reason="Server Error"), "boom")

        await cog._start(ctx, ChaseMode.BATTLE, "Rivers", None, None)

        assert CHANNEL_ID not in bot.chase_active_duels
        assert built[0].state.started is False
        channel.send.assert_not_called()
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_question_writer_failure(self, cog, bot, channel):
        """Test a writer error is reported and frees the channel."""
        bot.chase_writer.write_questions = AsyncMock(side_effect=QuestionWriterError("both failed"))
        ctx = MockApplicationContext(channel)

        await cog._start(ctx, ChaseMode.FINAL, "Rivers", None, None)

        assert "Couldn't write questions" in last_response(ctx)
        assert bot.chase_active_duels == {}

    @pytest.mark.asyncio
    async def test_rejects_self_as_chaser(self, cog, bot, channel):
        ctx = MockApplicationContext(channel)
        me = MagicMock(id=CONTESTANT_ID, bot=False)

        await cog._start(ctx, ChaseMode.BATTLE, "Rivers", None, me)

        assert "different, human player" in last_response(ctx)
        bot.chase_writer.write_questions.assert_not_called()


class TestChaseAnswerCommand:
    """Tests for /chase answer gating."""

    @pytest.mark.asyncio
    async def test_no_chase_running(self, cog, channel):
        ctx = MockApplicationContext(channel)

        await cog._answer(ctx, 1)

        assert "no chase running" in last_response(ctx)

    @pytest.mark.asyncio
    async def test_only_players_may_answer(self, cog, channel, human_chaser):
        """Test onlookers are turned away."""
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, human_chaser)
        onlooker = MockApplicationContext(channel, user_id=999)

        await cog._answer(onlooker, 1)

        assert "not playing" in last_response(onlooker)
        assert onlooker.respond.call_args.kwargs["ephemeral"] is True

    @pytest.mark.asyncio
    async def test_answers_follow_the_turn(self, cog, bot, channel, human_chaser, scheduler):
        """Test each side may only answer on its own turn."""
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, human_chaser)
        runner = bot.chase_active_duels[CHANNEL_ID].runner
        contestant = MockApplicationContext(channel)
        chaser = MockApplicationContext(channel, user_id=CHASER_ID, name="Alex")

        await cog._answer(chaser, 1)
        assert "not your turn" in last_response(chaser)
        assert runner.state.phase is TurnPhase.ANSWERING

        await cog._answer(contestant, 1)
        assert "Answer 1 locked in" in last_response(contestant)
        assert runner.state.phase is TurnPhase.FEEDBACK_CORRECT

        scheduler.advance(0.8)
        assert runner.awaiting_side is Side.CHASER

        await cog._answer(chaser, 1)
        assert "locked in" in last_response(chaser)
        assert runner.state.chaser_index == 0
        assert runner.state.phase is TurnPhase.FEEDBACK_CORRECT


class TestChaseStopCommand:
    """Tests for /chase stop."""

    @pytest.mark.asyncio
    async def test_stop_tears_down_running_chase(self, cog, bot, channel, scheduler):
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, None)
        runner = bot.chase_active_duels[CHANNEL_ID].runner
        ctx = MockApplicationContext(channel)

        await cog._stop(ctx)

        assert runner.closed is True
        assert scheduler.pending == 0
        assert CHANNEL_ID not in bot.chase_active_duels
        assert "Chase Cancelled" in last_response(ctx)

    @pytest.mark.asyncio
    async def test_stop_without_chase(self, cog, channel):
        ctx = MockApplicationContext(channel)

        await cog._stop(ctx)

        assert "no chase running" in last_response(ctx)


class TestFinalChaseHosting:
    """Tests for the host-driven final chase phases."""

    @pytest.mark.asyncio
    async def test_transition_opens_chaser_round(self, cog, bot, channel, scheduler):
        """Test the chaser round opens once the transition pause has elapsed."""
        await cog._start(MockApplicationContext(channel), ChaseMode.FINAL, "Rivers", "easy", None)
        session = bot.chase_active_duels[CHANNEL_ID]
        runner = session.runner
        assert runner.phase is ChasePhase.CONTESTANT_ROUND

        scheduler.advance(120)
        assert runner.phase is ChasePhase.TRANSITION
        assert session.transition_scheduled is True

        scheduler.advance(FINAL_TRANSITION_SECONDS - 0.1)
        assert runner.phase is ChasePhase.TRANSITION

        scheduler.advance(0.1)
        assert runner.phase is ChasePhase.CHASER_ROUND
        assert runner.snapshot().chaser_thinking is True
        await drain(cog)

    @pytest.mark.asyncio
    async def test_stop_during_transition_cancels_chaser_round(self, cog, bot, channel, scheduler):
        """Test a chase stopped on the transition screen never opens the chaser round."""
        await cog._start(MockApplicationContext(channel), ChaseMode.FINAL, "Rivers", None, None)
        runner = bot.chase_active_duels[CHANNEL_ID].runner
        scheduler.advance(120)

        await cog._stop(MockApplicationContext(channel))
        scheduler.advance(FINAL_TRANSITION_SECONDS * 2)

        assert runner.phase is ChasePhase.TRANSITION
        assert scheduler.pending == 0


class TestBoardUpdates:
    """Tests for board edits and results."""

    @pytest.mark.asyncio
    async def test_board_deleted_aborts_chase(self, cog, bot, channel, scheduler):
        """Test a deleted board message tears the chase down."""
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, None)
        await drain(cog)
        runner = bot.chase_active_duels[CHANNEL_ID].runner
        channel.board.edit.side_effect = discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Message")

        await cog._answer(MockApplicationContext(channel), 1)
        await drain(cog)

        assert runner.closed is True
        assert CHANNEL_ID not in bot.chase_active_duels
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_permission_loss_aborts_chase(self, cog, bot, channel, scheduler):
        """Test a forbidden edit tears the chase down."""
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, None)
        await drain(cog)
        runner = bot.chase_active_duels[CHANNEL_ID].runner
        channel.board.edit.side_effect = discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "Missing Access")

        await cog._answer(MockApplicationContext(channel), 1)
        await drain(cog)

        assert runner.closed is True
        assert CHANNEL_ID not in bot.chase_active_duels

    @pytest.mark.asyncio
    async def test_clock_ticks_are_throttled(self, cog, bot, channel, scheduler):
        """Test ticks inside the refresh interval do not edit the board."""
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, None)
        await drain(cog)
        edits = channel.board.edit.await_count

        scheduler.advance(3)
        await drain(cog)

        assert channel.board.edit.await_count == edits

    @pytest.mark.asyncio
    async def test_result_posted_on_completion(self, cog, bot, channel, human_chaser, scheduler, questions):
        """Test the winner is announced and the channel freed."""
        bot.chase_writer.write_questions = AsyncMock(return_value=questions(2))
        await cog._start(MockApplicationContext(channel), ChaseMode.BATTLE, "Rivers", None, human_chaser)
        await drain(cog)

        await cog._answer(MockApplicationContext(channel), 2)
        scheduler.advance(0.8)
        await drain(cog)

        assert CHANNEL_ID not in bot.chase_active_duels
        result_text = channel.send.call_args.args[0]
        assert "WINS" in result_text
