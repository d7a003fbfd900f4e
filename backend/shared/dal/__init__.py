"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.exceptions import InfrastructureError
from shared.dal.match_repository import MatchRepository
from shared.dal.models import (
    GuestChallengeMatch,
    Match,
    MatchStatus,
    PlayerRole,
    PlayerStats,
    RegisteredMatch,
    RoundResult,
)
from shared.dal.stats_repository import StatsRepository

__all__ = [
    "GuestChallengeMatch",
    "InfrastructureError",
    "Match",
    "MatchRepository",
    "MatchStatus",
    "PlayerRole",
    "PlayerStats",
    "RegisteredMatch",
    "RoundResult",
    "StatsRepository",
]
