"""Unit tests for TimerManager in isolation."""

import asyncio

import pytest

from game.logic.enums import TimerKind
from game.session.timer_manager import TimerManager


@pytest.fixture
def fired():
    """Accumulator for timer callbacks."""
    return []


@pytest.fixture
def timers():
    return TimerManager()


def _recorder(fired: list, label: str):
    async def callback() -> None:
        fired.append(label)

    return callback


class TestTimerManager:
    async def test_callback_runs_after_delay(self, timers, fired):
        timers.schedule("m1", TimerKind.COUNTDOWN, 0.01, _recorder(fired, "countdown"))
        assert timers.is_pending("m1", TimerKind.COUNTDOWN)

        await asyncio.sleep(0.05)

        assert fired == ["countdown"]
        assert not timers.is_pending("m1", TimerKind.COUNTDOWN)

    async def test_rescheduling_replaces_previous(self, timers, fired):
        timers.schedule("m1", TimerKind.ROUND_TIMEOUT, 0.01, _recorder(fired, "first"))
        timers.schedule("m1", TimerKind.ROUND_TIMEOUT, 0.01, _recorder(fired, "second"))

        await asyncio.sleep(0.05)

        assert fired == ["second"]

    async def test_cancel(self, timers, fired):
        timers.schedule("m1", TimerKind.CLEANUP, 0.01, _recorder(fired, "cleanup"))
        assert timers.cancel("m1", TimerKind.CLEANUP)
        assert not timers.cancel("m1", TimerKind.CLEANUP)

        await asyncio.sleep(0.05)

        assert fired == []

    async def test_cancel_all_is_scoped_to_match(self, timers, fired):
        timers.schedule("m1", TimerKind.COUNTDOWN, 0.01, _recorder(fired, "m1-countdown"))
        timers.schedule("m1", TimerKind.CLEANUP, 0.01, _recorder(fired, "m1-cleanup"))
        timers.schedule("m2", TimerKind.COUNTDOWN, 0.01, _recorder(fired, "m2-countdown"))

        timers.cancel_all("m1")
        assert timers.pending_kinds("m1") == set()
        assert timers.pending_kinds("m2") == {TimerKind.COUNTDOWN}

        await asyncio.sleep(0.05)

        assert fired == ["m2-countdown"]

    async def test_callback_may_cancel_own_match_timers(self, timers, fired):
        async def callback() -> None:
            timers.cancel_all("m1")
            fired.append("ran")

        timers.schedule("m1", TimerKind.NEXT_ROUND, 0.01, callback)
        timers.schedule("m1", TimerKind.CLEANUP, 1.0, _recorder(fired, "cleanup"))

        await asyncio.sleep(0.05)

        assert fired == ["ran"]
        assert timers.pending_kinds("m1") == set()

    async def test_failing_callback_is_logged(self, timers, caplog):
        async def boom() -> None:
            raise RuntimeError("boom")

        timers.schedule("m1", TimerKind.ROUND_START, 0.0, boom)
        await asyncio.sleep(0.02)

        assert "timer callback failed" in caplog.text
        assert not timers.is_pending("m1", TimerKind.ROUND_START)
