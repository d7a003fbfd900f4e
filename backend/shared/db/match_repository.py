"""SQLite-backed match repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from shared.dal.exceptions import InfrastructureError
from shared.dal.match_repository import MatchRepository
from shared.dal.models import OPEN_STATUSES, Match, MatchStatus, match_adapter

if TYPE_CHECKING:
    from shared.db.connection import Database

logger = structlog.get_logger()

_STALE_STATUSES = (MatchStatus.STARTING.value, MatchStatus.ACTIVE.value)


class SqliteMatchRepository(MatchRepository):
    """SQLite implementation of MatchRepository.

    Stores the full match as JSON next to indexed status/player/updated_at columns.
    Writes are serialized through an asyncio lock; the status compare-and-swap
    happens inside a single UPDATE statement.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def create_match(self, match: Match) -> None:
        async with self._lock:
            conn = self._db.connection
            try:
                conn.execute(
                    "INSERT INTO matches (id, kind, player1, player2, status, updated_at, data) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        match.match_id,
                        match.kind,
                        match.player1,
                        match.player2,
                        match.status.value,
                        match.updated_at.isoformat(),
                        match.model_dump_json(),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise ValueError(f"Match {match.match_id} already exists") from e
            except sqlite3.Error as e:
                conn.rollback()
                raise InfrastructureError(f"failed to create match {match.match_id}") from e

    async def get_match(self, match_id: str) -> Match | None:
        rows = self._query("SELECT data FROM matches WHERE id = ?", (match_id,))
        if not rows:
            return None
        return match_adapter.validate_json(rows[0][0])

    async def save_match(self, match: Match, *, expected_status: MatchStatus) -> bool:
        stamped = match.model_copy(update={"updated_at": datetime.now(UTC)})
        async with self._lock:
            conn = self._db.connection
            try:
                cursor = conn.execute(
                    "UPDATE matches SET status = ?, updated_at = ?, data = ? WHERE id = ? AND status = ?",
                    (
                        stamped.status.value,
                        stamped.updated_at.isoformat(),
                        stamped.model_dump_json(),
                        stamped.match_id,
                        expected_status.value,
                    ),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise InfrastructureError(f"failed to save match {match.match_id}") from e

        if cursor.rowcount == 0:
            logger.warning(
                "match save skipped, stored status changed",
                match_id=match.match_id,
                expected_status=expected_status,
            )
            return False
        return True

    async def find_active_match_for_user(self, user_id: str) -> Match | None:
        placeholders = ", ".join("?" for _ in OPEN_STATUSES)
        rows = self._query(
            f"SELECT data FROM matches WHERE status IN ({placeholders}) "  # noqa: S608
            "AND (player1 = ? OR player2 = ?) ORDER BY updated_at DESC LIMIT 1",
            (*(s.value for s in OPEN_STATUSES), user_id, user_id),
        )
        if not rows:
            return None
        return match_adapter.validate_json(rows[0][0])

    async def find_stale_matches(self, updated_before: datetime) -> list[Match]:
        rows = self._query(
            "SELECT data FROM matches WHERE status IN (?, ?) AND updated_at < ? ORDER BY updated_at",
            (*_STALE_STATUSES, updated_before.astimezone(UTC).isoformat()),
        )
        return [match_adapter.validate_json(row[0]) for row in rows]

    async def find_stale_challenges(self, updated_before: datetime) -> list[Match]:
        rows = self._query(
            "SELECT data FROM matches WHERE status = ? AND updated_at < ? ORDER BY updated_at",
            (MatchStatus.WAITING.value, updated_before.astimezone(UTC).isoformat()),
        )
        return [match_adapter.validate_json(row[0]) for row in rows]

    def _query(self, sql: str, params: tuple) -> list[tuple]:
        try:
            return self._db.connection.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise InfrastructureError("match query failed") from e
