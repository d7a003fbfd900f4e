import pytest

from game.tests.mocks import MockConnection


@pytest.fixture
def outsider():
    """A connection whose identity is in no match."""
    return MockConnection("mallory")
