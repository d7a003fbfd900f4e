"""SQLite-backed player stats repository."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING

from shared.dal.exceptions import InfrastructureError
from shared.dal.models import PlayerStats
from shared.dal.stats_repository import StatsRepository

if TYPE_CHECKING:
    from shared.db.connection import Database

# best_time only ever moves down; a NULL incoming value keeps the stored one
_APPLY_RESULT_SQL = """\
INSERT INTO player_stats (user_id, games_played, games_won, best_time)
VALUES (?, 1, ?, ?)
ON CONFLICT (user_id) DO UPDATE SET
    games_played = games_played + 1,
    games_won = games_won + excluded.games_won,
    best_time = CASE
        WHEN excluded.best_time IS NULL THEN best_time
        WHEN best_time IS NULL OR excluded.best_time < best_time THEN excluded.best_time
        ELSE best_time
    END
"""


class SqliteStatsRepository(StatsRepository):
    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def apply_result(self, user_id: str, *, won: bool, best_time: int | None) -> None:
        async with self._lock:
            conn = self._db.connection
            try:
                conn.execute(_APPLY_RESULT_SQL, (user_id, int(won), best_time))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise InfrastructureError(f"failed to apply result for {user_id}") from e

    async def get_stats(self, user_id: str) -> PlayerStats | None:
        try:
            row = self._db.connection.execute(
                "SELECT games_played, games_won, best_time FROM player_stats WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise InfrastructureError(f"failed to read stats for {user_id}") from e
        if row is None:
            return None
        return PlayerStats(user_id=user_id, games_played=row[0], games_won=row[1], best_time=row[2])
