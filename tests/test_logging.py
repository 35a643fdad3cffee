"""Tests for logging module."""
import logging
import os
import sys
from unittest.mock import patch

import pytest

from chaser import logging as chaser_logging
from chaser.logging import _int_env, _NonErrorFilter, _pick_logs_dir, setup_logging


@pytest.fixture
def restore_logging():
    """Put root and discord handlers back after setup_logging replaced them."""
    root = logging.getLogger()
    discord_logger = logging.getLogger("discord")
    saved = (list(root.handlers), root.level, list(discord_logger.handlers), discord_logger.propagate)
    saved_hook = sys.excepthook
    saved_orig = chaser_logging._orig_excepthook
    yield
    for logger in (root, discord_logger):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
    for handler in saved[0]:
        root.addHandler(handler)
    root.setLevel(saved[1])
    for handler in saved[2]:
        discord_logger.addHandler(handler)
    discord_logger.propagate = saved[3]
    sys.excepthook = saved_hook
    chaser_logging._orig_excepthook = saved_orig
    logging.captureWarnings(False)


def flush_all():
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestIntEnv:
    """Tests for _int_env helper function."""

    def test_int_env_default(self):
        """Test _int_env returns default when var not set."""
        with patch.dict(os.environ, {}, clear=True):
            assert _int_env("NONEXISTENT_VAR", 42) == 42

    def test_int_env_valid_value(self):
        """Test _int_env parses valid integer."""
        with patch.dict(os.environ, {"TEST_VAR": "100"}):
            assert _int_env("TEST_VAR", 42) == 100

    def test_int_env_invalid_value(self):
        """Test _int_env returns default for invalid value."""
        with patch.dict(os.environ, {"TEST_VAR": "not_a_number"}):
            assert _int_env("TEST_VAR", 42) == 42

    def test_int_env_empty_value(self):
        """Test _int_env returns default for empty value."""
        with patch.dict(os.environ, {"TEST_VAR": ""}):
            assert _int_env("TEST_VAR", 42) == 42


class TestPickLogsDir:
    """Tests for _pick_logs_dir function."""

    def test_pick_logs_dir_explicit_env(self, tmp_path):
        """Test _pick_logs_dir uses CHASER_LOG_DIR when set."""
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(tmp_path)}):
            assert _pick_logs_dir() == str(tmp_path)

    def test_pick_logs_dir_creates_directory(self, tmp_path):
        """Test _pick_logs_dir creates directory if needed."""
        log_dir = tmp_path / "new_logs"
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(log_dir)}):
            assert _pick_logs_dir() == str(log_dir)
        assert log_dir.is_dir()

    def test_pick_logs_dir_skips_unwritable(self, tmp_path):
        """Test an unwritable candidate falls through to cwd/logs."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(blocker / "logs")}), \
             patch("os.getcwd", return_value=str(tmp_path)):
            result = _pick_logs_dir()
        assert result == os.path.join(str(tmp_path), "logs")


class TestNonErrorFilter:
    """Tests for the filter that keeps errors out of chaser.log."""

    @pytest.mark.parametrize(
        "level, allowed",
        [(logging.DEBUG, True), (logging.WARNING, True), (logging.ERROR, False), (logging.CRITICAL, False)],
    )
    def test_filter(self, level, allowed):
        record = logging.LogRecord("test", level, "", 0, "msg", (), None)
        assert _NonErrorFilter().filter(record) is allowed


@pytest.mark.usefixtures("restore_logging")
class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_creates_log_files(self, tmp_path):
        """Test setup_logging creates the three log files and returns the directory."""
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(tmp_path)}):
            logs_dir = setup_logging("DEBUG")

        assert logs_dir == str(tmp_path)
        assert logging.getLogger().level == logging.DEBUG
        assert len(logging.getLogger().handlers) == 3
        for name in ("chaser.log", "errors.log", "discord.log"):
            assert (tmp_path / name).exists()

    def test_setup_logging_is_repeatable(self, tmp_path):
        """Test calling setup_logging twice does not stack handlers."""
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(tmp_path)}):
            setup_logging("INFO")
            setup_logging("WARNING")

        assert logging.getLogger().level == logging.WARNING
        assert len(logging.getLogger().handlers) == 3
        assert len(logging.getLogger("discord").handlers) == 1

    def test_discord_logger_isolated(self, tmp_path):
        """Test discord records go to discord.log only."""
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(tmp_path), "DISCORD_LOG_LEVEL": "DEBUG"}):
            setup_logging("INFO")

        discord_logger = logging.getLogger("discord")
        assert discord_logger.propagate is False
        assert discord_logger.level == logging.DEBUG

        discord_logger.info("gateway hello")
        for handler in discord_logger.handlers:
            handler.flush()
        flush_all()

        assert "gateway hello" in (tmp_path / "discord.log").read_text()
        assert "gateway hello" not in (tmp_path / "chaser.log").read_text()

    def test_errors_split_from_game_log(self, tmp_path):
        """Test errors land in errors.log and stay out of chaser.log."""
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(tmp_path)}):
            setup_logging("DEBUG")

        logging.getLogger("test.duel").info("Duel started")
        logging.getLogger("test.duel").error("Board edit failed")
        flush_all()

        app_log = (tmp_path / "chaser.log").read_text()
        error_log = (tmp_path / "errors.log").read_text()
        assert "Duel started" in app_log
        assert "Board edit failed" not in app_log
        assert "Board edit failed" in error_log
        assert "Duel started" not in error_log

    def test_setup_logging_custom_format(self, tmp_path):
        """Test setup_logging uses custom format from env."""
        env = {
            "CHASER_LOG_DIR": str(tmp_path),
            "CHASER_LOG_FORMAT": "%(levelname)s - %(message)s",
            "CHASER_LOG_DATEFMT": "%H:%M:%S",
        }
        with patch.dict(os.environ, env):
            setup_logging("INFO")

        for handler in logging.getLogger().handlers:
            assert handler.formatter._fmt == "%(levelname)s - %(message)s"
            assert handler.formatter.datefmt == "%H:%M:%S"

    def test_setup_logging_excepthook(self, tmp_path):
        """Test uncaught exceptions are logged before the original hook runs."""
        chaser_logging._orig_excepthook = None
        original = sys.excepthook
        with patch.dict(os.environ, {"CHASER_LOG_DIR": str(tmp_path)}):
            setup_logging("INFO")

        assert sys.excepthook is not original
        assert chaser_logging._orig_excepthook is original
