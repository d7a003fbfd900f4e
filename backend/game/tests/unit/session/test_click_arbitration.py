import asyncio

import pytest

from game.logic.enums import SessionPhase
from game.logic.exceptions import InvalidStateError, RaceLostError
from game.messaging.types import ServerMessageType
from game.tests.unit.session.helpers import connect, join_both, start_playing, wait_for
from shared.dal.models import MatchStatus


class TestRaceLock:
    async def test_simultaneous_clicks_have_one_winner(self, session_manager, match_repository, clock):
        p1, p2 = await start_playing(session_manager, match_repository)
        clock.advance(6900)

        results = await asyncio.gather(
            session_manager.click(p1),
            session_manager.click(p2),
            return_exceptions=True,
        )

        assert results[0] is None
        assert isinstance(results[1], RaceLostError)
        assert results[1].winner_id == "alice"
        stored = match_repository.matches["match1"]
        assert stored.player1_time == 6900
        assert stored.player2_time is None

    async def test_race_loser_cannot_click_again_in_round(self, session_manager, match_repository, clock):
        p1, p2 = await start_playing(session_manager, match_repository)
        clock.advance(6900)
        await asyncio.gather(session_manager.click(p1), session_manager.click(p2), return_exceptions=True)

        with pytest.raises(InvalidStateError, match="already clicked"):
            await session_manager.click(p2)

    async def test_race_loser_round_settles_on_timeout(self, session_manager, match_repository, clock):
        p1, p2 = await start_playing(session_manager, match_repository)
        clock.advance(6900)
        await asyncio.gather(session_manager.click(p1), session_manager.click(p2), return_exceptions=True)

        await wait_for(lambda: bool(p2.messages_of_type(ServerMessageType.ROUND_FINISHED)))

        finished = p2.messages_of_type(ServerMessageType.ROUND_FINISHED)[0]
        assert finished["round_winner"] == "alice"
        assert finished["player2"]["time"] is None

    async def test_router_turns_lost_race_into_click_rejected(
        self,
        message_router,
        session_manager,
        match_repository,
        clock,
    ):
        p1, p2 = await start_playing(session_manager, match_repository)
        clock.advance(7000)

        await asyncio.gather(
            message_router.handle_message(p2, {"type": "click"}),
            message_router.handle_message(p1, {"type": "click"}),
        )

        rejected = p1.messages_of_type(ServerMessageType.CLICK_REJECTED)
        assert rejected == [{"type": "click_rejected", "winner_id": "bob"}]
        assert p2.messages_of_type(ServerMessageType.CLICK_REJECTED) == []
        assert match_repository.matches["match1"].player2_time == 7000

    async def test_sequential_second_click_closes_round(self, session_manager, match_repository, clock):
        p1, p2 = await start_playing(session_manager, match_repository)
        clock.advance(6900)
        await session_manager.click(p1)
        clock.advance(100)
        await session_manager.click(p2)

        stored = match_repository.matches["match1"]
        assert len(stored.rounds) == 1
        assert stored.rounds[0].player2_time == 7000

    async def test_double_click_by_same_player_rejected(self, session_manager, match_repository, clock):
        p1, _ = await start_playing(session_manager, match_repository)
        clock.advance(6000)
        await session_manager.click(p1)

        with pytest.raises(InvalidStateError, match="already clicked"):
            await session_manager.click(p1)
        assert match_repository.matches["match1"].player1_time == 6000

    async def test_failed_persist_releases_race_lock(self, session_manager, match_repository, clock):
        p1, p2 = await start_playing(session_manager, match_repository)
        match_repository.fail_saves = True
        clock.advance(6000)

        await session_manager.click(p1)

        session = session_manager.get_session("match1")
        assert session.race.holder is None
        assert session.phase == SessionPhase.PAUSED


class TestClickPreconditions:
    async def test_click_without_session(self, session_manager):
        conn = await connect(session_manager, "alice")
        with pytest.raises(InvalidStateError, match="No active match session"):
            await session_manager.click(conn)

    async def test_click_during_countdown(self, session_manager, match_repository):
        p1, _ = await join_both(session_manager, match_repository)
        assert session_manager.get_session("match1").phase == SessionPhase.COUNTDOWN

        with pytest.raises(InvalidStateError, match="not in playing state"):
            await session_manager.click(p1)
        assert match_repository.matches["match1"].status == MatchStatus.STARTING

    async def test_click_after_round_settled(self, session_manager, match_repository, clock):
        p1, p2 = await start_playing(session_manager, match_repository)
        clock.advance(6800)
        await session_manager.click(p1)
        await session_manager.click(p2)

        with pytest.raises(InvalidStateError, match="not in playing state"):
            await session_manager.click(p1)
