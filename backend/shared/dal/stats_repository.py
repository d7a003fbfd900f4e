"""Abstract interface for per-player duel stats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import PlayerStats


class StatsRepository(ABC):
    @abstractmethod
    async def apply_result(self, user_id: str, *, won: bool, best_time: int | None) -> None:
        """Record one finished match for a player.

        Increments games played, increments games won when won is True and
        lowers best_time if the new value is smaller. A None best_time leaves
        the stored value untouched.
        """

    @abstractmethod
    async def get_stats(self, user_id: str) -> PlayerStats | None: ...
