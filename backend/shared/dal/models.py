"""Persistence models for duel matches and player stats."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

GOAL_TIME_MIN_MS = 5000
GOAL_TIME_MAX_MS = 10000
DEFAULT_TOTAL_ROUNDS = 3


class MatchStatus(StrEnum):
    WAITING = "waiting"
    STARTING = "starting"
    ACTIVE = "active"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


TERMINAL_STATUSES = frozenset({MatchStatus.FINISHED, MatchStatus.CANCELLED, MatchStatus.TIMEOUT})
# a player holding a match in one of these statuses cannot be challenged again
OPEN_STATUSES = frozenset({MatchStatus.WAITING, MatchStatus.STARTING, MatchStatus.ACTIVE})


class PlayerRole(StrEnum):
    PLAYER1 = "player1"
    PLAYER2 = "player2"

    @property
    def opponent(self) -> "PlayerRole":
        return PlayerRole.PLAYER2 if self is PlayerRole.PLAYER1 else PlayerRole.PLAYER1


class RoundResult(BaseModel, frozen=True):
    """Outcome of one settled round."""

    round_number: int
    goal_time: int
    player1_time: int | None = None  # elapsed ms; None if the player never clicked
    player2_time: int | None = None
    player1_difference: int | None = None
    player2_difference: int | None = None
    round_winner: str | None = None  # user id; None on a draw
    completed_at: datetime

    def difference_of(self, role: PlayerRole) -> int | None:
        return getattr(self, f"{role}_difference")


class _MatchBase(BaseModel, frozen=True):
    match_id: str
    player1: str
    player2: str
    goal_time: int = Field(ge=GOAL_TIME_MIN_MS, le=GOAL_TIME_MAX_MS)
    total_rounds: int = Field(default=DEFAULT_TOTAL_ROUNDS, ge=1)
    current_round: int = Field(default=1, ge=1)
    status: MatchStatus = MatchStatus.WAITING
    player1_time: int | None = None
    player2_time: int | None = None
    player1_clicked_at: datetime | None = None
    player2_clicked_at: datetime | None = None
    player1_score: int = 0
    player2_score: int = 0
    rounds: tuple[RoundResult, ...] = ()
    winner: str | None = None
    forfeit: bool = False
    cancel_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    game_started_at: datetime | None = None
    game_ended_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_round_complete(self) -> bool:
        """True once both players have a recorded time for the current round."""
        return self.player1_time is not None and self.player2_time is not None

    def role_of(self, user_id: str) -> PlayerRole | None:
        if user_id == self.player1:
            return PlayerRole.PLAYER1
        if user_id == self.player2:
            return PlayerRole.PLAYER2
        return None

    def player_id(self, role: PlayerRole) -> str:
        return getattr(self, str(role))

    def time_of(self, role: PlayerRole) -> int | None:
        return getattr(self, f"{role}_time")

    def score_of(self, role: PlayerRole) -> int:
        return getattr(self, f"{role}_score")


class RegisteredMatch(_MatchBase, frozen=True):
    """Challenge between two registered identities; both receive stat updates."""

    kind: Literal["registered"] = "registered"

    @property
    def stat_player_ids(self) -> tuple[str, ...]:
        return (self.player1, self.player2)


class GuestChallengeMatch(_MatchBase, frozen=True):
    """Challenge issued by a guest; player1 is the guest and has no stats row."""

    kind: Literal["guest_challenge"] = "guest_challenge"
    guest_name: str = ""

    @property
    def stat_player_ids(self) -> tuple[str, ...]:
        return (self.player2,)


Match = Annotated[RegisteredMatch | GuestChallengeMatch, Field(discriminator="kind")]

match_adapter: TypeAdapter[Match] = TypeAdapter(Match)


class PlayerStats(BaseModel, frozen=True):
    """Aggregate duel stats for one identity."""

    user_id: str
    games_played: int = 0
    games_won: int = 0
    best_time: int | None = None  # smallest |click - goal| ever observed, in ms
