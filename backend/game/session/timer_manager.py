"""Cancellable scheduled callbacks keyed by match and timer kind."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from game.logic.enums import TimerKind

logger = structlog.get_logger()

TimerCallback = Callable[[], Awaitable[None]]


class TimerManager:
    """Own every deferred action of every live match.

    At most one task exists per (match_id, kind). Scheduling an existing key
    cancels the previous task. A task unregisters itself before running its
    callback, so the callback may freely cancel the match's other timers.
    """

    def __init__(self) -> None:
        self._tasks: dict[tuple[str, TimerKind], asyncio.Task[None]] = {}

    def schedule(self, match_id: str, kind: TimerKind, delay_seconds: float, callback: TimerCallback) -> None:
        self.cancel(match_id, kind)
        key = (match_id, kind)
        self._tasks[key] = asyncio.create_task(self._run(key, delay_seconds, callback))

    def cancel(self, match_id: str, kind: TimerKind) -> bool:
        task = self._tasks.pop((match_id, kind), None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self, match_id: str) -> None:
        for key in [k for k in self._tasks if k[0] == match_id]:
            self._tasks.pop(key).cancel()

    def cancel_everything(self) -> None:
        """Cancel all timers of all matches (server shutdown)."""
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()

    def is_pending(self, match_id: str, kind: TimerKind) -> bool:
        return (match_id, kind) in self._tasks

    def pending_kinds(self, match_id: str) -> set[TimerKind]:
        return {kind for mid, kind in self._tasks if mid == match_id}

    async def _run(self, key: tuple[str, TimerKind], delay_seconds: float, callback: TimerCallback) -> None:
        try:
            await asyncio.sleep(delay_seconds)
        except asyncio.CancelledError:
            return
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except Exception:
            logger.exception("timer callback failed", match_id=key[0], timer=key[1])
