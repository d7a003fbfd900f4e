"""Create matches from a challenge between two identities."""

from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from game.logic.exceptions import AuthorizationError, InvalidStateError, NotFoundError
from game.logic.rules import generate_goal_time
from game.logic.settings import DuelSettings
from shared.dal.models import GuestChallengeMatch, RegisteredMatch

if TYPE_CHECKING:
    from game.session.registry import ConnectionRegistry
    from shared.dal.match_repository import MatchRepository
    from shared.dal.models import Match

logger = structlog.get_logger()

# (challenger_id, opponent_id) -> may they duel? Used for the friends-only rule.
EligibilityCheck = Callable[[str, str], Awaitable[bool]]


class ChallengeService:
    def __init__(
        self,
        match_repository: MatchRepository,
        *,
        registry: ConnectionRegistry | None = None,
        settings: DuelSettings | None = None,
        rng: random.Random | None = None,
        eligibility_check: EligibilityCheck | None = None,
    ) -> None:
        self._matches = match_repository
        self._registry = registry
        self._settings = settings or DuelSettings()
        self._rng = rng or random.Random()  # noqa: S311
        self._eligibility_check = eligibility_check

    async def create_challenge(
        self,
        challenger_id: str,
        opponent_id: str,
        *,
        challenger_is_guest: bool = False,
        challenger_name: str = "",
        total_rounds: int | None = None,
    ) -> Match:
        """Validate both players and store a new waiting match.

        A guest challenger produces a GuestChallengeMatch with the guest as player1.
        """
        if challenger_id == opponent_id:
            raise InvalidStateError("Cannot challenge yourself")
        if self._registry is not None and not self._registry.is_online(opponent_id):
            raise NotFoundError("Opponent is not online")
        if self._eligibility_check is not None and not await self._eligibility_check(challenger_id, opponent_id):
            raise AuthorizationError("You can only challenge friends")
        if await self._matches.find_active_match_for_user(challenger_id) is not None:
            raise InvalidStateError("You are already in an active match")
        if await self._matches.find_active_match_for_user(opponent_id) is not None:
            raise InvalidStateError("Opponent is already in an active match")

        now = datetime.now(UTC)
        fields = {
            "match_id": uuid4().hex,
            "player1": challenger_id,
            "player2": opponent_id,
            "goal_time": generate_goal_time(self._rng, self._settings),
            "total_rounds": total_rounds or self._settings.total_rounds,
            "created_at": now,
            "updated_at": now,
        }
        if challenger_is_guest:
            match: Match = GuestChallengeMatch(guest_name=challenger_name, **fields)
        else:
            match = RegisteredMatch(**fields)
        await self._matches.create_match(match)
        logger.info(
            "challenge created",
            match_id=match.match_id,
            challenger=challenger_id,
            opponent=opponent_id,
            kind=match.kind,
        )
        return match
