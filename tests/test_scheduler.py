"""Tests for the event-loop scheduler."""
import asyncio
from unittest.mock import MagicMock

import pytest

from chaser.services.scheduler import LoopScheduler


class TestLoopScheduler:
    """Tests for call_later and cancel_all on a real loop."""

    @pytest.mark.asyncio
    async def test_call_later_fires_with_args(self):
        """Test a scheduled callback runs once with its arguments."""
        scheduler = LoopScheduler()
        callback = MagicMock()

        call = scheduler.call_later(0.01, callback, "a", 2)
        assert scheduler.pending == 1
        await asyncio.sleep(0.05)

        callback.assert_called_once_with("a", 2)
        assert call.fired is True
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_single_call(self):
        """Test a cancelled call never runs."""
        scheduler = LoopScheduler()
        callback = MagicMock()

        call = scheduler.call_later(0.01, callback)
        call.cancel()
        await asyncio.sleep(0.05)

        callback.assert_not_called()
        assert call.cancelled is True
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        """Test cancel_all drops every pending continuation."""
        scheduler = LoopScheduler()
        callback = MagicMock()
        calls = [scheduler.call_later(0.01 * i, callback) for i in range(1, 4)]

        scheduler.cancel_all()
        await asyncio.sleep(0.06)

        callback.assert_not_called()
        assert all(not c.pending for c in calls)
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_negative_delay_runs_soon(self):
        """Test a negative delay is treated as zero."""
        scheduler = LoopScheduler()
        callback = MagicMock()

        scheduler.call_later(-5, callback)
        await asyncio.sleep(0.01)

        callback.assert_called_once()
