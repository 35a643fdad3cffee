from __future__ import annotations

import logging
import os
import sys
import threading
from logging import FileHandler
from logging.handlers import TimedRotatingFileHandler


DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

_orig_excepthook = None  # type: ignore[var-annotated]
_setup_lock = threading.Lock()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)) or default)
    except ValueError:
        return default


def _is_writable(directory: str) -> bool:
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError:
        return False
    probe = os.path.join(directory, ".write-test")
    try:
        with open(probe, "a", encoding="utf-8"):
            pass
        os.remove(probe)
    except OSError:
        return False
    return True


def _pick_logs_dir() -> str:
    candidates: list[str] = []
    env_dir = os.getenv("CHASER_LOG_DIR")
    if env_dir:
        candidates.append(env_dir)
    candidates.append(os.path.join(os.getcwd(), "logs"))
    xdg_state = os.getenv("XDG_STATE_HOME")
    home = os.path.expanduser("~")
    if xdg_state:
        candidates.append(os.path.join(xdg_state, "chaser", "logs"))
    elif home:
        candidates.append(os.path.join(home, ".local", "state", "chaser", "logs"))
    try:
        uid = os.getuid()
    except AttributeError:
        uid = os.getpid()
    candidates.append(os.path.join("/tmp", f"chaser-{uid}", "logs"))
    for d in candidates:
        if _is_writable(d):
            return d
    return "/tmp"


class _NonErrorFilter(logging.Filter):
    """Keeps ERROR and above out of the main log; they go to errors.log."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def _daily_handler(path: str, retention_days: int, formatter: logging.Formatter) -> FileHandler:
    handler = TimedRotatingFileHandler(path, when="midnight", interval=1, backupCount=retention_days, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: str = "INFO") -> str:
    """Configure root, file and discord logging. Returns the log directory."""
    global _orig_excepthook

    logs_dir = _pick_logs_dir()

    root = logging.getLogger()
    root.setLevel(level.upper())

    fmt = os.getenv("CHASER_LOG_FORMAT", DEFAULT_FORMAT)
    datefmt = os.getenv("CHASER_LOG_DATEFMT", DEFAULT_DATEFMT)
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    # Game log (DEBUG/INFO/WARNING)
    app_log = _daily_handler(os.path.join(logs_dir, "chaser.log"), _int_env("LOG_RETENTION_DAYS", 14), formatter)
    app_log.addFilter(_NonErrorFilter())

    # Error-only log with longer retention
    error_log = _daily_handler(os.path.join(logs_dir, "errors.log"), _int_env("ERROR_LOG_RETENTION_DAYS", 90), formatter)
    error_log.setLevel(logging.ERROR)

    discord_handler = _daily_handler(
        os.path.join(logs_dir, "discord.log"), _int_env("DISCORD_LOG_RETENTION_DAYS", 14), formatter
    )

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console_handler)
    root.addHandler(app_log)
    root.addHandler(error_log)

    discord_logger = logging.getLogger("discord")
    for handler in list(discord_logger.handlers):
        discord_logger.removeHandler(handler)
        handler.close()
    discord_logger.addHandler(discord_handler)
    discord_level = os.getenv("DISCORD_LOG_LEVEL", "INFO").upper()
    discord_logger.setLevel(getattr(logging, discord_level, logging.INFO))
    # discord logs only appear in discord.log
    discord_logger.propagate = False

    logging.captureWarnings(True)

    with _setup_lock:
        if _orig_excepthook is None:
            _orig_excepthook = sys.excepthook

            def _log_excepthook(exc_type, exc, tb):
                try:
                    logging.getLogger("unhandled").error("Unhandled exception", exc_info=(exc_type, exc, tb))
                finally:
                    _orig_excepthook(exc_type, exc, tb)  # type: ignore[misc]

            sys.excepthook = _log_excepthook  # type: ignore[assignment]

    logging.getLogger(__name__).debug("Logging to %s", logs_dir)
    return logs_dir
