from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from game.logic.enums import SessionPhase
from shared.dal.models import PlayerRole

if TYPE_CHECKING:
    from game.messaging.protocol import ConnectionProtocol


@dataclass
class PlayerSlot:
    """One side of a live session: the identity and its current connection, if any."""

    user_id: str
    connection: ConnectionProtocol | None = None

    @property
    def connected(self) -> bool:
        return self.connection is not None

    @property
    def connection_id(self) -> str | None:
        return self.connection.connection_id if self.connection is not None else None


@dataclass
class RaceLock:
    """First-click token for one round.

    try_acquire is a synchronous test-and-set: it runs without yielding to the
    event loop, so two click handlers can never both observe an empty lock.
    """

    round_number: int = 0
    holder: str | None = None
    committed: bool = False  # the holder's click has been persisted
    losers: set[str] = field(default_factory=set)

    def try_acquire(self, user_id: str) -> bool:
        if self.holder is None:
            self.holder = user_id
            return True
        return self.holder == user_id

    def release(self) -> None:
        """Drop an uncommitted hold (the holder's click failed to persist)."""
        self.holder = None
        self.committed = False

    def reset(self, round_number: int) -> None:
        self.round_number = round_number
        self.holder = None
        self.committed = False
        self.losers.clear()


@dataclass
class LiveSession:
    """Ephemeral real-time state for one match. Never persisted."""

    match_id: str
    player1: PlayerSlot
    player2: PlayerSlot
    phase: SessionPhase = SessionPhase.WAITING_PLAYERS
    countdown_started_at: int | None = None  # epoch ms
    round_started_at: int | None = None  # epoch ms
    race: RaceLock = field(default_factory=RaceLock)
    last_activity: float = field(default_factory=time.monotonic)

    def slot(self, role: PlayerRole) -> PlayerSlot:
        return self.player1 if role is PlayerRole.PLAYER1 else self.player2

    def role_of_connection(self, connection_id: str) -> PlayerRole | None:
        if self.player1.connection_id == connection_id:
            return PlayerRole.PLAYER1
        if self.player2.connection_id == connection_id:
            return PlayerRole.PLAYER2
        return None

    @property
    def connected_count(self) -> int:
        return int(self.player1.connected) + int(self.player2.connected)

    @property
    def both_connected(self) -> bool:
        return self.connected_count == 2  # noqa: PLR2004

    @property
    def connections(self) -> list[ConnectionProtocol]:
        return [s.connection for s in (self.player1, self.player2) if s.connection is not None]

    def touch(self) -> None:
        self.last_activity = time.monotonic()
