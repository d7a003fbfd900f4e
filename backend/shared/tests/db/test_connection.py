"""Tests for Database connection and schema."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from shared.db.connection import Database

if TYPE_CHECKING:
    from pathlib import Path


class TestConnect:
    def test_creates_schema(self, db: Database) -> None:
        tables = db.connection.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name").fetchall()
        assert [t[0] for t in tables] == ["matches", "player_stats"]

    def test_reconnect_keeps_existing_schema(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "duel.db")
        db.connect()
        db.connection.execute("INSERT INTO player_stats (user_id) VALUES ('alice')")
        db.connection.commit()
        db.close()

        db.connect()
        assert db.connection.execute("SELECT COUNT(*) FROM player_stats").fetchone()[0] == 1
        db.close()

    def test_connection_raises_when_disconnected(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "duel.db")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_close_is_idempotent(self, db: Database) -> None:
        db.close()
        db.close()
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "nested" / "dir" / "duel.db")
        db.connect()
        assert (tmp_path / "nested" / "dir" / "duel.db").exists()
        db.close()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
class TestPermissions:
    def test_db_file_has_restricted_permissions(self, tmp_path: Path) -> None:
        db_path = tmp_path / "duel.db"
        db = Database(db_path)
        db.connect()

        assert db_path.stat().st_mode & 0o777 == 0o600
        db.close()

    def test_harden_permissions_failure_is_not_fatal(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "duel.db")
        with patch("pathlib.Path.chmod", side_effect=OSError("permission denied")):
            db.connect()
        assert db.connection is not None
        db.close()
