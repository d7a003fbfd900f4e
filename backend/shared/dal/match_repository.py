"""Abstract interface for match persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from shared.dal.models import Match, MatchStatus


class MatchRepository(ABC):
    """Abstract interface for match persistence.

    Implementations raise InfrastructureError when the storage layer fails.
    """

    @abstractmethod
    async def create_match(self, match: Match) -> None:
        """Insert a new match. Raises ValueError if the match_id is taken."""

    @abstractmethod
    async def get_match(self, match_id: str) -> Match | None: ...

    @abstractmethod
    async def save_match(self, match: Match, *, expected_status: MatchStatus) -> bool:
        """Write the match only if its stored status still equals expected_status.

        The check and the write are a single atomic operation. Returns False
        when the stored status changed underneath the caller (or the match is gone).
        """

    @abstractmethod
    async def find_active_match_for_user(self, user_id: str) -> Match | None:
        """Return the most recently updated waiting/starting/active match of a player."""

    @abstractmethod
    async def find_stale_matches(self, updated_before: datetime) -> list[Match]:
        """Return starting/active matches not updated since the given instant."""

    @abstractmethod
    async def find_stale_challenges(self, updated_before: datetime) -> list[Match]:
        """Return waiting matches (unanswered challenges) not updated since the given instant."""
