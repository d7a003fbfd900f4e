from __future__ import annotations

import asyncio
import contextlib
import random
import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from game.logic import rules
from game.logic.enums import EndReason, ErrorCode, PresenceStatus, SessionPhase, TimerKind
from game.logic.exceptions import AuthorizationError, InvalidStateError, NotFoundError, RaceLostError
from game.logic.settings import DuelSettings
from game.messaging.types import (
    ClickRegisteredMessage,
    ConnectionUpdateMessage,
    CountdownStartMessage,
    ErrorMessage,
    GameEndedForfeitMessage,
    GameFinishedMessage,
    GameLeftMessage,
    GameStartMessage,
    JoinedMessage,
    MatchSummary,
    NextRoundStartingMessage,
    PlayerClickedMessage,
    PlayerTotal,
    PongMessage,
    RoundFinishedMessage,
    RoundPlayerResult,
    RoundSummary,
    Scores,
    SessionSummary,
)
from game.session.broadcast import broadcast
from game.session.registry import ConnectionRegistry
from game.session.session_store import SessionStore
from game.session.timer_manager import TimerCallback, TimerManager
from shared.dal.exceptions import InfrastructureError
from shared.dal.models import OPEN_STATUSES, MatchStatus, PlayerRole

if TYPE_CHECKING:
    from collections.abc import Callable

    from game.messaging.protocol import ConnectionProtocol
    from game.session.models import LiveSession
    from shared.dal.match_repository import MatchRepository
    from shared.dal.models import Match, RoundResult
    from shared.dal.stats_repository import StatsRepository

logger = structlog.get_logger()


class SessionManager:
    """Coordinate live duels: join, countdown, click arbitration, settlement and teardown.

    Every mutation of one match runs under that match's asyncio.Lock, whether it
    comes from a client message, a disconnect, a timer or the reaper. The race
    lock on the session is a synchronous test-and-set taken before the match
    lock, so two clicks delivered together can never both claim first place.
    """

    def __init__(
        self,
        match_repository: MatchRepository,
        stats_repository: StatsRepository,
        *,
        registry: ConnectionRegistry | None = None,
        settings: DuelSettings | None = None,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._matches = match_repository
        self._stats = stats_repository
        self._clock = clock
        self._registry = registry or ConnectionRegistry(clock=clock)
        self._settings = settings or DuelSettings()
        self._rng = rng or random.Random()  # noqa: S311
        self._sessions = SessionStore()
        self._timers = TimerManager()
        self._match_locks: dict[str, asyncio.Lock] = {}
        self._attachments: dict[str, str] = {}  # connection_id -> match_id
        self._reaper_task: asyncio.Task[None] | None = None

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def settings(self) -> DuelSettings:
        return self._settings

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def playing_count(self) -> int:
        return sum(1 for s in self._sessions.all() if s.phase == SessionPhase.PLAYING)

    def get_session(self, match_id: str) -> LiveSession | None:
        return self._sessions.get(match_id)

    def attached_match(self, connection_id: str) -> str | None:
        return self._attachments.get(connection_id)

    def is_timer_pending(self, match_id: str, kind: TimerKind) -> bool:
        return self._timers.is_pending(match_id, kind)

    def _now_ms(self) -> int:
        return round(self._clock() * 1000)

    def _now(self) -> datetime:
        return self._as_datetime(self._now_ms())

    @staticmethod
    def _as_datetime(epoch_ms: int) -> datetime:
        return datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)

    def _lock_for(self, match_id: str) -> asyncio.Lock:
        return self._match_locks.setdefault(match_id, asyncio.Lock())

    def _schedule(self, match_id: str, kind: TimerKind, delay_ms: int, callback: TimerCallback) -> None:
        self._timers.schedule(match_id, kind, delay_ms / 1000, callback)

    # --- Connections and presence ---

    async def register_connection(self, connection: ConnectionProtocol) -> None:
        await self._registry.connect(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Detach a dropped connection from its match, then drop its presence.

        Safe to call more than once for the same connection.
        """
        await self._detach(connection)
        await self._registry.disconnect(connection)

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await connection.send_message(PongMessage(server_time=self._now_ms()).model_dump())

    async def send_online_users(self, connection: ConnectionProtocol) -> None:
        await self._registry.send_online_users(connection)

    async def set_status(self, connection: ConnectionProtocol, status: PresenceStatus) -> None:
        await self._registry.set_user_status(
            connection.user_id,
            status,
            exclude_connection_id=connection.connection_id,
        )

    # --- Join ---

    async def join(self, connection: ConnectionProtocol, match_id: str) -> None:
        """Attach a participant's connection to the match room.

        Authorization is checked before any session state is touched.
        """
        match = await self._matches.get_match(match_id)
        if match is None:
            raise NotFoundError("Match not found")
        role = match.role_of(connection.user_id)
        if role is None:
            logger.info("join rejected, not a participant", match_id=match_id, user_id=connection.user_id)
            raise AuthorizationError("You are not part of this match")
        self._check_joinable(match)
        current = self._attachments.get(connection.connection_id)
        if current is not None and current != match_id:
            raise InvalidStateError("Leave your current match before joining another")

        async with self._lock_for(match_id):
            match = await self._matches.get_match(match_id)
            self._check_joinable(match)
            session = self._sessions.get_or_create(match_id, match.player1, match.player2)
            slot = session.slot(role)
            previous_id = slot.connection_id
            if previous_id is not None and previous_id != connection.connection_id:
                logger.info("replacing connection of rejoining player", match_id=match_id, role=role)
                self._attachments.pop(previous_id, None)
            slot.connection = connection
            self._attachments[connection.connection_id] = match_id
            session.touch()
            logger.info("player joined match", match_id=match_id, user_id=connection.user_id, role=role)

            await connection.send_message(
                JoinedMessage(
                    match_id=match_id,
                    role=role,
                    match=self._match_summary(match),
                    session=self._session_summary(session),
                ).model_dump(),
            )
            await self._broadcast_connection_update(session)

            if session.both_connected and session.phase in (SessionPhase.WAITING_PLAYERS, SessionPhase.PAUSED):
                await self._resume(session, match)

        await self._registry.set_user_status(connection.user_id, PresenceStatus.IN_GAME)

    @staticmethod
    def _check_joinable(match: Match | None) -> None:
        if match is None:
            raise NotFoundError("Match not found")
        if match.status == MatchStatus.CANCELLED:
            raise InvalidStateError("Match was cancelled")
        if match.status not in OPEN_STATUSES:
            raise InvalidStateError(f"Match is in {match.status} state and cannot be joined")

    async def _resume(self, session: LiveSession, match: Match) -> None:
        """Start (or restart after a pause) the current round."""
        if match.is_round_complete:
            await self._settle_round(session, match)
            return
        if match.player1_time is not None or match.player2_time is not None:
            # a lone time was measured from the abandoned round start; the round is played again
            replayed = rules.replay_round(match)
            if not await self._persist(session, match, replayed):
                return
            logger.info("replaying interrupted round", match_id=session.match_id, round=match.current_round)
            match = replayed
        await self._start_countdown(session, match)

    # --- Countdown and playing ---

    async def _start_countdown(self, session: LiveSession, match: Match) -> None:
        updated = rules.transition(match, MatchStatus.STARTING) if match.status == MatchStatus.WAITING else match
        if updated is not match and not await self._persist(session, match, updated):
            return
        now = self._now_ms()
        session.phase = SessionPhase.COUNTDOWN
        session.countdown_started_at = now
        session.touch()
        round_number = updated.current_round
        logger.info("countdown started", match_id=session.match_id, round=round_number)
        await broadcast(
            session.connections,
            CountdownStartMessage(
                countdown_ms=self._settings.countdown_ms,
                goal_time=updated.goal_time,
                start_time=now,
                round=round_number,
            ).model_dump(),
        )
        self._schedule(
            session.match_id,
            TimerKind.COUNTDOWN,
            self._settings.countdown_ms,
            lambda: self._on_countdown_elapsed(session.match_id, round_number),
        )

    async def _on_countdown_elapsed(self, match_id: str, round_number: int) -> None:
        lock = self._match_locks.get(match_id)
        if lock is None:
            return
        async with lock:
            session = self._sessions.get(match_id)
            if session is None or session.phase != SessionPhase.COUNTDOWN:
                return
            if not session.both_connected:
                logger.info("countdown ended with a player missing, waiting", match_id=match_id)
                session.phase = SessionPhase.WAITING_PLAYERS
                return
            match = await self._read(session)
            if match is None or match.is_terminal or match.current_round != round_number:
                return

            now = self._now_ms()
            updated = rules.transition(
                match,
                MatchStatus.ACTIVE,
                game_started_at=match.game_started_at or self._as_datetime(now),
            )
            if updated != match and not await self._persist(session, match, updated):
                return

            session.phase = SessionPhase.PLAYING
            session.round_started_at = now
            session.race.reset(round_number)
            session.touch()
            logger.info("round started", match_id=match_id, round=round_number, goal_time=updated.goal_time)
            await broadcast(
                session.connections,
                GameStartMessage(start_time=now, goal_time=updated.goal_time, round=round_number).model_dump(),
            )

    # --- Click arbitration ---

    async def click(self, connection: ConnectionProtocol) -> None:
        clicked_at = self._now_ms()
        match_id = self._attachments.get(connection.connection_id)
        session = self._sessions.get(match_id) if match_id is not None else None
        if session is None:
            raise InvalidStateError("No active match session")
        if session.phase != SessionPhase.PLAYING:
            raise InvalidStateError("Match is not in playing state")
        role = session.role_of_connection(connection.connection_id)
        if role is None:
            raise InvalidStateError("No active match session")

        user_id = session.slot(role).user_id
        race = session.race
        round_number = race.round_number
        if user_id in race.losers:
            raise InvalidStateError("You already clicked in this round")

        # test-and-set without yielding: exactly one identity can take the lock
        newly_acquired = race.holder is None
        if not race.try_acquire(user_id) and not race.committed:
            race.losers.add(user_id)
            logger.info("click lost the race", match_id=session.match_id, user_id=user_id, winner=race.holder)
            raise RaceLostError(winner_id=race.holder)

        committed = False
        try:
            async with self._lock_for(session.match_id):
                still_playing = (
                    self._sessions.get(session.match_id) is session
                    and session.phase == SessionPhase.PLAYING
                    and race.round_number == round_number
                )
                if not still_playing:
                    raise InvalidStateError("Match is not in playing state")
                committed = await self._record_click(session, connection, role, clicked_at)
        finally:
            # an uncommitted holder must not keep the opponent locked out
            if (
                not committed
                and newly_acquired
                and race.round_number == round_number
                and race.holder == user_id
                and not race.committed
            ):
                race.release()

    async def _record_click(
        self,
        session: LiveSession,
        connection: ConnectionProtocol,
        role: PlayerRole,
        clicked_at: int,
    ) -> bool:
        match = await self._read(session)
        if match is None:
            return False
        if match.is_terminal:
            raise InvalidStateError("Match is not in playing state")

        elapsed = clicked_at - (session.round_started_at or clicked_at)
        updated = rules.record_click(match, role, elapsed, self._as_datetime(clicked_at))
        if not await self._persist(session, match, updated):
            return False

        user_id = match.player_id(role)
        if session.race.holder == user_id:
            session.race.committed = True
        session.touch()
        diff = rules.difference(elapsed, updated.goal_time)
        logger.info("click registered", match_id=session.match_id, user_id=user_id, elapsed=elapsed, difference=diff)

        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.send_message(
                ClickRegisteredMessage(elapsed=elapsed, goal_time=updated.goal_time, difference=diff).model_dump(),
            )
        await broadcast(
            session.connections,
            PlayerClickedMessage(
                player_id=user_id,
                elapsed=elapsed,
                goal_time=updated.goal_time,
                difference=diff,
            ).model_dump(),
        )

        if updated.is_round_complete:
            self._timers.cancel(session.match_id, TimerKind.ROUND_TIMEOUT)
            await self._settle_round(session, updated)
        else:
            round_number = updated.current_round
            self._schedule(
                session.match_id,
                TimerKind.ROUND_TIMEOUT,
                self._settings.round_timeout_ms,
                lambda: self._on_round_timeout(session.match_id, round_number),
            )
        return True

    async def _on_round_timeout(self, match_id: str, round_number: int) -> None:
        """Settle a round the opponent never clicked in; the missing time loses."""
        lock = self._match_locks.get(match_id)
        if lock is None:
            return
        async with lock:
            session = self._sessions.get(match_id)
            if session is None or session.phase != SessionPhase.PLAYING or session.race.round_number != round_number:
                return
            match = await self._read(session)
            if match is None or match.is_terminal or match.current_round != round_number:
                return
            if match.is_round_complete:
                return
            logger.info("round timed out", match_id=match_id, round=round_number)
            await self._settle_round(session, match)

    # --- Settlement ---

    async def _settle_round(self, session: LiveSession, match: Match) -> None:
        completed_at = self._now()
        settled, result = rules.settle_round(match, completed_at)
        decided = rules.is_match_decided(settled)
        if decided:
            updated = rules.finish(settled, completed_at)
        else:
            updated = rules.advance_round(settled, rules.generate_goal_time(self._rng, self._settings))
        if not await self._persist(session, match, updated):
            return

        session.phase = SessionPhase.FINISHED if decided else SessionPhase.WAITING_ROUND
        session.touch()
        logger.info(
            "round finished",
            match_id=session.match_id,
            round=result.round_number,
            round_winner=result.round_winner,
            player1_score=settled.player1_score,
            player2_score=settled.player2_score,
        )
        await broadcast(session.connections, self._round_finished_message(settled, result).model_dump())

        if decided:
            await self._complete_match(session, updated)
            return

        next_round = updated.current_round
        self._schedule(
            session.match_id,
            TimerKind.NEXT_ROUND,
            self._settings.next_round_delay_ms,
            lambda: self._on_next_round(session.match_id, next_round),
        )

    async def _on_next_round(self, match_id: str, round_number: int) -> None:
        lock = self._match_locks.get(match_id)
        if lock is None:
            return
        async with lock:
            session = self._sessions.get(match_id)
            if session is None or session.phase != SessionPhase.WAITING_ROUND:
                return
            match = await self._read(session)
            if match is None or match.is_terminal or match.current_round != round_number:
                return
            await broadcast(
                session.connections,
                NextRoundStartingMessage(
                    round=round_number,
                    goal_time=match.goal_time,
                    scores=Scores(player1=match.player1_score, player2=match.player2_score),
                ).model_dump(),
            )
            self._schedule(
                match_id,
                TimerKind.ROUND_START,
                self._settings.round_start_delay_ms,
                lambda: self._on_round_start(match_id, round_number),
            )

    async def _on_round_start(self, match_id: str, round_number: int) -> None:
        lock = self._match_locks.get(match_id)
        if lock is None:
            return
        async with lock:
            session = self._sessions.get(match_id)
            if session is None or session.phase != SessionPhase.WAITING_ROUND:
                return
            match = await self._read(session)
            if match is None or match.is_terminal or match.current_round != round_number:
                return
            await self._start_countdown(session, match)

    async def _complete_match(self, session: LiveSession, match: Match) -> None:
        """Announce a finished match, record stats and schedule teardown."""
        self._timers.cancel_all(session.match_id)
        session.phase = SessionPhase.FINISHED
        logger.info("match finished", match_id=match.match_id, winner=match.winner)
        await broadcast(session.connections, self._game_finished_message(match).model_dump())
        await self._apply_stats(match)
        self._schedule_cleanup(session.match_id)

    async def _apply_stats(self, match: Match) -> None:
        """Record the result for every stat-bearing player. Failures are logged, never raised."""
        for user_id in match.stat_player_ids:
            role = match.role_of(user_id)
            if role is None:
                continue
            try:
                await self._stats.apply_result(
                    user_id,
                    won=match.winner == user_id,
                    best_time=rules.best_time(match, role),
                )
            except InfrastructureError:
                logger.exception("failed to apply player stats", match_id=match.match_id, user_id=user_id)

    def _schedule_cleanup(self, match_id: str) -> None:
        self._schedule(
            match_id,
            TimerKind.CLEANUP,
            self._settings.cleanup_grace_ms,
            lambda: self._on_cleanup(match_id),
        )

    async def _on_cleanup(self, match_id: str) -> None:
        lock = self._match_locks.get(match_id)
        if lock is None:
            return
        async with lock:
            await self._teardown(match_id)

    # --- Leave, disconnect, forfeit ---

    async def leave_game(self, connection: ConnectionProtocol, match_id: str, *, force_end: bool = False) -> None:
        match = await self._matches.get_match(match_id)
        if match is None:
            raise NotFoundError("Match not found")
        if match.role_of(connection.user_id) is None:
            raise AuthorizationError("You are not part of this match")

        if force_end and not match.is_terminal:
            async with self._lock_for(match_id):
                await self._cancel_by_leave(match_id, connection)
            if self._sessions.get(match_id) is None:
                self._match_locks.pop(match_id, None)
        if self._attachments.get(connection.connection_id) == match_id:
            await self._detach(connection)

        await connection.send_message(GameLeftMessage(match_id=match_id).model_dump())

    async def _cancel_by_leave(self, match_id: str, leaver: ConnectionProtocol) -> None:
        session = self._sessions.get(match_id)
        match = await self._matches.get_match(match_id)
        if match is None or match.is_terminal:
            return
        updated = rules.terminate(match, MatchStatus.CANCELLED, EndReason.PLAYER_LEFT, self._now())
        if not await self._persist(session, match, updated):
            return
        logger.info("match cancelled by player", match_id=match_id, user_id=leaver.user_id)
        if session is not None:
            self._timers.cancel_all(match_id)
            session.phase = SessionPhase.FINISHED
            await broadcast(
                session.connections,
                GameEndedForfeitMessage(winner_id=None, reason=EndReason.OPPONENT_LEFT).model_dump(),
                exclude_connection_id=leaver.connection_id,
            )
        await self._teardown(match_id)

    async def _detach(self, connection: ConnectionProtocol) -> None:
        """Remove a connection from its match room and apply the disconnect rules.

        Both players gone from a started match cancels it. One player gone
        while a round is being played forfeits the match to the other.
        """
        match_id = self._attachments.pop(connection.connection_id, None)
        if match_id is None:
            return
        lock = self._match_locks.get(match_id)
        if lock is None:
            return
        async with lock:
            session = self._sessions.get(match_id)
            if session is None:
                return
            role = session.role_of_connection(connection.connection_id)
            if role is None:
                return
            session.slot(role).connection = None
            session.touch()
            logger.info("player detached", match_id=match_id, user_id=connection.user_id, phase=session.phase)
            await self._broadcast_connection_update(session)

            match = await self._read(session)
            if match is None or match.status not in (MatchStatus.STARTING, MatchStatus.ACTIVE):
                return
            if session.connected_count == 0:
                await self._cancel_abandoned(session, match)
            elif session.phase == SessionPhase.PLAYING:
                await self._forfeit(session, match, winner=role.opponent, reason=EndReason.OPPONENT_DISCONNECTED)

    async def _forfeit(self, session: LiveSession, match: Match, *, winner: PlayerRole, reason: EndReason) -> None:
        updated = rules.forfeit(match, winner, self._now())
        if not await self._persist(session, match, updated):
            return
        self._timers.cancel_all(session.match_id)
        session.phase = SessionPhase.FINISHED
        logger.info("match forfeited", match_id=match.match_id, winner=updated.winner, reason=reason)
        await broadcast(
            session.connections,
            GameEndedForfeitMessage(winner_id=updated.winner, reason=reason).model_dump(),
        )
        await self._apply_stats(updated)
        self._schedule_cleanup(session.match_id)

    async def _cancel_abandoned(self, session: LiveSession, match: Match) -> None:
        updated = rules.terminate(
            match,
            MatchStatus.CANCELLED,
            EndReason.BOTH_DISCONNECTED,
            self._now(),
        )
        if not await self._persist(session, match, updated):
            return
        logger.info("match cancelled, both players disconnected", match_id=match.match_id)
        await self._teardown(match.match_id)

    # --- Reaper: stale matches and idle sessions ---

    async def sweep_stale_matches(self) -> int:
        """End matches with no recent update and nobody connected.

        Starting/active matches time out after stale_match_seconds. Unanswered
        challenges (waiting) are cancelled after stale_challenge_seconds so they
        stop blocking both players from new challenges.
        """
        now = self._now()
        stale = await self._matches.find_stale_matches(now - timedelta(seconds=self._settings.stale_match_seconds))
        challenges = await self._matches.find_stale_challenges(
            now - timedelta(seconds=self._settings.stale_challenge_seconds),
        )
        swept = 0
        for candidate, status in [
            *((m, MatchStatus.TIMEOUT) for m in stale),
            *((m, MatchStatus.CANCELLED) for m in challenges),
        ]:
            session = self._sessions.get(candidate.match_id)
            if session is not None and session.connected_count > 0:
                continue
            async with self._lock_for(candidate.match_id):
                if await self._end_stale_match(candidate.match_id, status):
                    swept += 1
            if self._sessions.get(candidate.match_id) is None:
                self._match_locks.pop(candidate.match_id, None)
        return swept

    async def _end_stale_match(self, match_id: str, status: MatchStatus) -> bool:
        session = self._sessions.get(match_id)
        if session is not None and session.connected_count > 0:
            return False
        match = await self._matches.get_match(match_id)
        if match is None or match.is_terminal:
            return False
        updated = rules.terminate(match, status, EndReason.STALE_TIMEOUT, self._now())
        if not await self._persist(session, match, updated):
            return False
        logger.info("stale match ended", match_id=match_id, status=status, last_update=match.updated_at.isoformat())
        await self._teardown(match_id)
        return True

    async def expire_idle_sessions(self, now: float | None = None) -> int:
        """Drop sessions that saw no activity for session_idle_seconds (never mid-round)."""
        expired = self._sessions.idle_sessions(self._settings.session_idle_seconds, now)
        for session in expired:
            async with self._lock_for(session.match_id):
                if self._sessions.get(session.match_id) is session:
                    logger.info("expiring idle session", match_id=session.match_id, phase=session.phase)
                    await self._teardown(session.match_id)
        return len(expired)

    def start_reaper(self, interval_seconds: float) -> None:
        """Start the periodic stale-match sweep and idle-session expiry. Idempotent."""
        if self._reaper_task is not None and not self._reaper_task.done():
            return
        self._reaper_task = asyncio.create_task(self._reaper_loop(interval_seconds))

    async def stop_reaper(self) -> None:
        if self._reaper_task is not None:
            self._reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper_task
            self._reaper_task = None

    async def _reaper_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep_stale_matches()
                await self.expire_idle_sessions()
            except Exception:
                logger.exception("session reaper encountered an error")

    async def shutdown(self) -> None:
        await self.stop_reaper()
        self._timers.cancel_everything()

    # --- Persistence and teardown helpers ---

    async def _read(self, session: LiveSession) -> Match | None:
        try:
            return await self._matches.get_match(session.match_id)
        except InfrastructureError:
            logger.exception("failed to load match", match_id=session.match_id)
            await self._pause(session)
            return None

    async def _persist(self, session: LiveSession | None, current: Match, updated: Match) -> bool:
        """Compare-and-swap the match on its stored status.

        On a storage failure the transition is abandoned, the session pauses
        and both participants are told. If another writer moved the match on,
        the local session is closed.
        """
        try:
            saved = await self._matches.save_match(updated, expected_status=current.status)
        except InfrastructureError:
            logger.exception("failed to persist match transition", match_id=current.match_id, status=updated.status)
            if session is None:
                raise
            await self._pause(session)
            return False
        if not saved:
            logger.warning("match changed underneath the session, closing it", match_id=current.match_id)
            if session is not None:
                await broadcast(
                    session.connections,
                    ErrorMessage(code=ErrorCode.INVALID_STATE, message="Match is no longer active").model_dump(),
                )
            await self._teardown(current.match_id)
            return False
        return True

    async def _pause(self, session: LiveSession) -> None:
        session.phase = SessionPhase.PAUSED
        self._timers.cancel_all(session.match_id)
        await broadcast(
            session.connections,
            ErrorMessage(
                code=ErrorCode.SERVER_ERROR,
                message="Match state could not be saved. Rejoin to resume.",
            ).model_dump(),
        )

    async def _teardown(self, match_id: str) -> None:
        """Forget a session: timers, attachments, lock. Caller holds the match lock."""
        self._timers.cancel_all(match_id)
        session = self._sessions.remove(match_id)
        self._match_locks.pop(match_id, None)
        if session is None:
            return
        for slot in (session.player1, session.player2):
            if slot.connection_id is not None and self._attachments.get(slot.connection_id) == match_id:
                del self._attachments[slot.connection_id]
            if not self._in_any_session(slot.user_id):
                await self._registry.set_user_status(slot.user_id, PresenceStatus.ONLINE)
        logger.info("session closed", match_id=match_id)

    def _in_any_session(self, user_id: str) -> bool:
        return any(user_id in (s.player1.user_id, s.player2.user_id) for s in self._sessions.all())

    # --- Message builders ---

    async def _broadcast_connection_update(self, session: LiveSession) -> None:
        await broadcast(
            session.connections,
            ConnectionUpdateMessage(
                p1_connected=session.player1.connected,
                p2_connected=session.player2.connected,
                connected_count=session.connected_count,
            ).model_dump(),
        )

    @staticmethod
    def _match_summary(match: Match) -> MatchSummary:
        return MatchSummary(
            match_id=match.match_id,
            kind=match.kind,
            player1=match.player1,
            player2=match.player2,
            status=match.status,
            goal_time=match.goal_time,
            current_round=match.current_round,
            total_rounds=match.total_rounds,
            player1_score=match.player1_score,
            player2_score=match.player2_score,
        )

    @staticmethod
    def _session_summary(session: LiveSession) -> SessionSummary:
        return SessionSummary(
            phase=session.phase,
            p1_connected=session.player1.connected,
            p2_connected=session.player2.connected,
            connected_count=session.connected_count,
        )

    @staticmethod
    def _round_finished_message(match: Match, result: RoundResult) -> RoundFinishedMessage:
        return RoundFinishedMessage(
            round=result.round_number,
            goal_time=result.goal_time,
            player1=RoundPlayerResult(
                player_id=match.player1,
                time=result.player1_time,
                difference=result.player1_difference,
            ),
            player2=RoundPlayerResult(
                player_id=match.player2,
                time=result.player2_time,
                difference=result.player2_difference,
            ),
            round_winner=result.round_winner,
            scores=Scores(player1=match.player1_score, player2=match.player2_score),
        )

    @staticmethod
    def _game_finished_message(match: Match) -> GameFinishedMessage:
        return GameFinishedMessage(
            match_id=match.match_id,
            winner=match.winner,
            duration=rules.duration_ms(match),
            rounds_played=len(match.rounds),
            total_rounds=match.total_rounds,
            player1=PlayerTotal(
                player_id=match.player1,
                score=match.player1_score,
                best_time=rules.best_time(match, PlayerRole.PLAYER1),
            ),
            player2=PlayerTotal(
                player_id=match.player2,
                score=match.player2_score,
                best_time=rules.best_time(match, PlayerRole.PLAYER2),
            ),
            rounds=[
                RoundSummary(
                    round=r.round_number,
                    goal_time=r.goal_time,
                    player1_time=r.player1_time,
                    player2_time=r.player2_time,
                    player1_difference=r.player1_difference,
                    player2_difference=r.player2_difference,
                    round_winner=r.round_winner,
                )
                for r in match.rounds
            ],
        )
