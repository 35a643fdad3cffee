from __future__ import annotations

import asyncio
import logging

from .config import Config, load_config
from .logging import setup_logging
from .models.session import close_sessions
from .services.question_writer import QuestionWriter, QuestionWriterConfig


log = logging.getLogger(__name__)


def build_bot(cfg: Config):
    # Lazy import so config and logging errors surface before discord loads
    import discord  # type: ignore

    intents = discord.Intents.default()
    bot = discord.Bot(intents=intents)
    return bot


def register_events(bot) -> None:
    @bot.event
    async def on_ready():
        log.info("Logged in as %s (%s)", bot.user, bot.user and bot.user.id)
        gids = getattr(bot.chase_cfg, "command_guild_ids", None)  # type: ignore[attr-defined]
        if not gids:
            return
        try:
            await bot.sync_commands(guild_ids=gids, force=True, method="auto")  # type: ignore[arg-type]
            log.info("Synced commands to guilds: %s", ",".join(str(g) for g in gids))
        except Exception as e:  # noqa: BLE001
            log.exception("Guild command sync failed: %s", e)

    @bot.event
    async def on_connect():
        log.info("Connected to Discord gateway")

    @bot.event
    async def on_disconnect():
        log.warning("Disconnected from Discord gateway")


def _install_loop_exception_handler(loop: asyncio.AbstractEventLoop) -> None:
    def _loop_exception_handler(loop, context):
        logger = logging.getLogger("asyncio")
        exc = context.get("exception")
        msg = context.get("message") or ""
        src = context.get("task") or context.get("future") or context.get("handle") or "loop"
        if exc is not None:
            logger.error("Unhandled asyncio exception in %s: %s", src, msg, exc_info=exc)
        else:
            logger.error("Unhandled asyncio error in %s: %s", src, msg)

    loop.set_exception_handler(_loop_exception_handler)


async def amain() -> None:
    cfg = load_config()
    setup_logging(cfg.log_level)
    log.info("Starting chaser bot")
    loop = asyncio.get_running_loop()
    _install_loop_exception_handler(loop)

    bot = build_bot(cfg)
    writer = QuestionWriter(
        QuestionWriterConfig(
            api_key=cfg.openrouter_api_key,
            default_model=cfg.default_model,
            fallback_model=cfg.fallback_model,
            site_url=cfg.openrouter_site_url,
            app_name=cfg.openrouter_app_name,
        )
    )
    bot.chase_cfg = cfg  # type: ignore[attr-defined]
    bot.chase_writer = writer  # type: ignore[attr-defined]
    bot.chase_active_duels = {}  # type: ignore[attr-defined]

    register_events(bot)
    from .cogs.chase import setup as setup_chase

    setup_chase(bot)

    # Graceful shutdown on SIGINT/SIGTERM
    try:
        import signal

        def _graceful_signal(sig_name: str) -> None:
            log.info("Received %s, requesting graceful shutdown...", sig_name)
            loop.create_task(bot.close())

        for _sig, _name in ((signal.SIGINT, "SIGINT"), (signal.SIGTERM, "SIGTERM")):
            loop.add_signal_handler(_sig, _graceful_signal, _name)
    except (ImportError, NotImplementedError, RuntimeError):
        # Not available on some platforms (e.g., Windows)
        log.debug("Signal handlers not installed")

    try:
        log.info("Logging in to Discord...")
        await bot.start(cfg.discord_token)
    except KeyboardInterrupt:
        log.info("Received Ctrl-C, shutting down gracefully...")
    except asyncio.CancelledError:
        log.info("Cancelled, shutting down gracefully...")
    except Exception as e:  # noqa: BLE001
        log.exception("Bot failed to start: %s", e)
        raise
    finally:
        # Running chases hold timers on this loop; stop them before the loop goes away
        close_sessions(bot.chase_active_duels)  # type: ignore[attr-defined]
        try:
            if not bot.is_closed():
                await bot.close()
        finally:
            await writer.aclose()


def main() -> None:
    try:
        asyncio.run(amain())
    except KeyboardInterrupt:
        print("Interrupted, exiting cleanly.")


if __name__ == "__main__":
    main()
