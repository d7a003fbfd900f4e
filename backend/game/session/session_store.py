import time

from game.logic.enums import SessionPhase
from game.session.models import LiveSession, PlayerSlot


class SessionStore:
    """In-memory store of live sessions, one per match id."""

    def __init__(self) -> None:
        self._sessions: dict[str, LiveSession] = {}  # match_id -> LiveSession

    def get(self, match_id: str) -> LiveSession | None:
        return self._sessions.get(match_id)

    def get_or_create(self, match_id: str, player1_id: str, player2_id: str) -> LiveSession:
        """Return the session for a match, creating it on first join."""
        session = self._sessions.get(match_id)
        if session is None:
            session = LiveSession(
                match_id=match_id,
                player1=PlayerSlot(user_id=player1_id),
                player2=PlayerSlot(user_id=player2_id),
            )
            self._sessions[match_id] = session
        return session

    def remove(self, match_id: str) -> LiveSession | None:
        return self._sessions.pop(match_id, None)

    def all(self) -> list[LiveSession]:
        return list(self._sessions.values())

    def idle_sessions(self, max_idle_seconds: float, now: float | None = None) -> list[LiveSession]:
        """Sessions without activity for max_idle_seconds, excluding ones mid-round."""
        now = time.monotonic() if now is None else now
        return [
            s
            for s in self._sessions.values()
            if s.phase != SessionPhase.PLAYING and now - s.last_activity > max_idle_seconds
        ]

    def __len__(self) -> int:
        return len(self._sessions)
