import random
from datetime import UTC, datetime
from typing import Any

import pytest

from game.logic.settings import DuelSettings
from game.messaging.router import MessageRouter
from game.session.challenge import ChallengeService
from game.session.manager import SessionManager
from game.tests.mocks import FakeClock, InMemoryMatchRepository, InMemoryStatsRepository, MockConnection
from shared.dal.models import GuestChallengeMatch, Match, MatchStatus, RegisteredMatch

# Timer delays short enough to run real countdowns in unit tests.
FAST_SETTINGS = DuelSettings(
    countdown_ms=10,
    next_round_delay_ms=10,
    round_start_delay_ms=10,
    round_timeout_ms=50,
    cleanup_grace_ms=60_000,
)


def create_match(
    match_id: str = "match1",
    player1: str = "alice",
    player2: str = "bob",
    *,
    goal_time: int = 7000,
    total_rounds: int = 3,
    status: MatchStatus = MatchStatus.WAITING,
    guest: bool = False,
    updated_at: datetime | None = None,
    **changes: Any,  # noqa: ANN401
) -> Match:
    """Build a match with sensible defaults for testing."""
    now = datetime.now(UTC)
    fields: dict[str, Any] = {
        "match_id": match_id,
        "player1": player1,
        "player2": player2,
        "goal_time": goal_time,
        "total_rounds": total_rounds,
        "status": status,
        "created_at": now,
        "updated_at": updated_at or now,
        **changes,
    }
    if guest:
        return GuestChallengeMatch(guest_name=player1, **fields)
    return RegisteredMatch(**fields)


@pytest.fixture
def match_repository():
    return InMemoryMatchRepository()


@pytest.fixture
def stats_repository():
    return InMemoryStatsRepository()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def duel_settings():
    return FAST_SETTINGS


@pytest.fixture
def session_manager(match_repository, stats_repository, clock, duel_settings):
    return SessionManager(
        match_repository,
        stats_repository,
        settings=duel_settings,
        clock=clock,
        rng=random.Random(42),
    )


@pytest.fixture
def challenge_service(match_repository, session_manager, duel_settings):
    return ChallengeService(
        match_repository,
        registry=session_manager.registry,
        settings=duel_settings,
        rng=random.Random(7),
    )


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()
