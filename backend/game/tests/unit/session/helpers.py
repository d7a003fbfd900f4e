from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from game.logic.enums import SessionPhase
from game.tests.conftest import create_match
from game.tests.mocks import MockConnection

if TYPE_CHECKING:
    from game.session.manager import SessionManager
    from game.tests.mocks import FakeClock, InMemoryMatchRepository
    from shared.dal.models import Match


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true, letting timers and tasks run."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.002)


async def wait_for_phase(manager: SessionManager, match_id: str, phase: SessionPhase) -> None:
    def reached() -> bool:
        session = manager.get_session(match_id)
        return session is not None and session.phase == phase

    await wait_for(reached)


async def connect(manager: SessionManager, user_id: str) -> MockConnection:
    conn = MockConnection(user_id)
    await manager.register_connection(conn)
    return conn


async def join_both(
    manager: SessionManager,
    repository: InMemoryMatchRepository,
    match: Match | None = None,
) -> tuple[MockConnection, MockConnection]:
    """Seed a match and attach both players; the countdown starts on the second join."""
    match = repository.seed(match or create_match())
    p1 = await connect(manager, match.player1)
    p2 = await connect(manager, match.player2)
    await manager.join(p1, match.match_id)
    await manager.join(p2, match.match_id)
    return p1, p2


async def start_playing(
    manager: SessionManager,
    repository: InMemoryMatchRepository,
    match: Match | None = None,
) -> tuple[MockConnection, MockConnection]:
    """Join both players and wait until the first round is being played."""
    match = match or create_match()
    p1, p2 = await join_both(manager, repository, match)
    await wait_for_phase(manager, match.match_id, SessionPhase.PLAYING)
    p1.clear()
    p2.clear()
    return p1, p2


async def play_round(
    manager: SessionManager,
    clock: FakeClock,
    match_id: str,
    first: tuple[MockConnection, int],
    second: tuple[MockConnection, int] | None = None,
) -> None:
    """Click once per (connection, elapsed_ms) pair, in order, from the round start."""
    await wait_for_phase(manager, match_id, SessionPhase.PLAYING)
    conn, elapsed = first
    clock.advance(elapsed)
    await manager.click(conn)
    if second is not None:
        conn2, elapsed2 = second
        clock.advance(elapsed2 - elapsed)
        await manager.click(conn2)
