from game.messaging.mock import MockConnection
from game.tests.mocks.clock import FakeClock
from game.tests.mocks.repositories import InMemoryMatchRepository, InMemoryStatsRepository

__all__ = [
    "FakeClock",
    "InMemoryMatchRepository",
    "InMemoryStatsRepository",
    "MockConnection",
]
