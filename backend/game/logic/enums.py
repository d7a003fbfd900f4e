from enum import StrEnum


class SessionPhase(StrEnum):
    WAITING_PLAYERS = "waiting_players"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    WAITING_ROUND = "waiting_round"
    FINISHED = "finished"
    PAUSED = "paused"


class PresenceStatus(StrEnum):
    ONLINE = "online"
    AWAY = "away"
    BUSY = "busy"
    IN_GAME = "in_game"


class TimerKind(StrEnum):
    COUNTDOWN = "countdown"
    ROUND_TIMEOUT = "round_timeout"
    NEXT_ROUND = "next_round"
    ROUND_START = "round_start"
    CLEANUP = "cleanup"


class EndReason(StrEnum):
    """Why a match ended early (stored as cancel_reason or sent with forfeits)."""

    PLAYER_LEFT = "player_left"
    OPPONENT_LEFT = "opponent_left"
    OPPONENT_DISCONNECTED = "opponent_disconnected"
    BOTH_DISCONNECTED = "both_disconnected"
    STALE_TIMEOUT = "stale_timeout"


class ErrorCode(StrEnum):
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    RACE_LOST = "race_lost"
    SERVER_ERROR = "server_error"
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
