from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from game.logic.enums import EndReason, ErrorCode, PresenceStatus, SessionPhase
from shared.dal.models import MatchStatus, PlayerRole

_MATCH_ID_FIELD = Field(min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_-]+$")


class ClientMessageType(StrEnum):
    JOIN = "join"
    CLICK = "click"
    LEAVE_GAME = "leave_game"
    PING = "ping"
    GET_ONLINE_USERS = "get_online_users"
    SET_STATUS = "set_status"


class ServerMessageType(StrEnum):
    JOINED = "joined"
    CONNECTION_UPDATE = "connection_update"
    COUNTDOWN_START = "countdown_start"
    GAME_START = "game_start"
    CLICK_REGISTERED = "click_registered"
    PLAYER_CLICKED = "player_clicked"
    CLICK_REJECTED = "click_rejected"
    ROUND_FINISHED = "round_finished"
    NEXT_ROUND_STARTING = "next_round_starting"
    GAME_FINISHED = "game_finished"
    GAME_ENDED_FORFEIT = "game_ended_forfeit"
    GAME_LEFT = "game_left"
    ERROR = "game_error"
    PONG = "pong"


class PresenceMessageType(StrEnum):
    CONNECTION_ESTABLISHED = "connection_established"
    USER_CONNECTED = "user_connected"
    USER_DISCONNECTED = "user_disconnected"
    ONLINE_USERS_UPDATE = "online_users_update"
    USER_STATUS_UPDATE = "user_status_update"


# --- Client messages ---


class JoinMessage(BaseModel):
    type: Literal[ClientMessageType.JOIN] = ClientMessageType.JOIN
    match_id: str = _MATCH_ID_FIELD


class ClickMessage(BaseModel):
    type: Literal[ClientMessageType.CLICK] = ClientMessageType.CLICK


class LeaveGameMessage(BaseModel):
    type: Literal[ClientMessageType.LEAVE_GAME] = ClientMessageType.LEAVE_GAME
    match_id: str = _MATCH_ID_FIELD
    force_end: bool = False


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


class GetOnlineUsersMessage(BaseModel):
    type: Literal[ClientMessageType.GET_ONLINE_USERS] = ClientMessageType.GET_ONLINE_USERS


class SetStatusMessage(BaseModel):
    type: Literal[ClientMessageType.SET_STATUS] = ClientMessageType.SET_STATUS
    # in_game is set by the server only
    status: Literal[PresenceStatus.ONLINE, PresenceStatus.AWAY, PresenceStatus.BUSY]


ClientMessage = Annotated[
    JoinMessage | ClickMessage | LeaveGameMessage | PingMessage | GetOnlineUsersMessage | SetStatusMessage,
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    return _client_message_adapter.validate_python(data)


# --- Match room messages ---


class MatchSummary(BaseModel):
    match_id: str
    kind: str
    player1: str
    player2: str
    status: MatchStatus
    goal_time: int
    current_round: int
    total_rounds: int
    player1_score: int
    player2_score: int


class SessionSummary(BaseModel):
    phase: SessionPhase
    p1_connected: bool
    p2_connected: bool
    connected_count: int


class Scores(BaseModel):
    player1: int
    player2: int


class RoundPlayerResult(BaseModel):
    player_id: str
    time: int | None
    difference: int | None


class RoundSummary(BaseModel):
    round: int
    goal_time: int
    player1_time: int | None
    player2_time: int | None
    player1_difference: int | None
    player2_difference: int | None
    round_winner: str | None


class PlayerTotal(BaseModel):
    player_id: str
    score: int
    best_time: int | None


class JoinedMessage(BaseModel):
    type: Literal[ServerMessageType.JOINED] = ServerMessageType.JOINED
    match_id: str
    role: PlayerRole
    match: MatchSummary
    session: SessionSummary


class ConnectionUpdateMessage(BaseModel):
    type: Literal[ServerMessageType.CONNECTION_UPDATE] = ServerMessageType.CONNECTION_UPDATE
    p1_connected: bool
    p2_connected: bool
    connected_count: int


class CountdownStartMessage(BaseModel):
    type: Literal[ServerMessageType.COUNTDOWN_START] = ServerMessageType.COUNTDOWN_START
    countdown_ms: int
    goal_time: int
    start_time: int  # epoch ms
    round: int


class GameStartMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_START] = ServerMessageType.GAME_START
    start_time: int
    goal_time: int
    round: int


class ClickRegisteredMessage(BaseModel):
    type: Literal[ServerMessageType.CLICK_REGISTERED] = ServerMessageType.CLICK_REGISTERED
    elapsed: int
    goal_time: int
    difference: int


class PlayerClickedMessage(BaseModel):
    type: Literal[ServerMessageType.PLAYER_CLICKED] = ServerMessageType.PLAYER_CLICKED
    player_id: str
    elapsed: int
    goal_time: int
    difference: int


class ClickRejectedMessage(BaseModel):
    type: Literal[ServerMessageType.CLICK_REJECTED] = ServerMessageType.CLICK_REJECTED
    winner_id: str


class RoundFinishedMessage(BaseModel):
    type: Literal[ServerMessageType.ROUND_FINISHED] = ServerMessageType.ROUND_FINISHED
    round: int
    goal_time: int
    player1: RoundPlayerResult
    player2: RoundPlayerResult
    round_winner: str | None
    scores: Scores


class NextRoundStartingMessage(BaseModel):
    type: Literal[ServerMessageType.NEXT_ROUND_STARTING] = ServerMessageType.NEXT_ROUND_STARTING
    round: int
    goal_time: int
    scores: Scores


class GameFinishedMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_FINISHED] = ServerMessageType.GAME_FINISHED
    match_id: str
    winner: str | None
    duration: int  # ms
    rounds_played: int
    total_rounds: int
    player1: PlayerTotal
    player2: PlayerTotal
    rounds: list[RoundSummary]


class GameEndedForfeitMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_ENDED_FORFEIT] = ServerMessageType.GAME_ENDED_FORFEIT
    winner_id: str | None
    reason: EndReason


class GameLeftMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_LEFT] = ServerMessageType.GAME_LEFT
    match_id: str


class ErrorMessage(BaseModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: ErrorCode
    message: str


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG
    server_time: int


# --- Presence messages ---


class OnlineUser(BaseModel):
    user_id: str
    username: str
    status: PresenceStatus
    connected_at: int


class ConnectionEstablishedMessage(BaseModel):
    type: Literal[PresenceMessageType.CONNECTION_ESTABLISHED] = PresenceMessageType.CONNECTION_ESTABLISHED
    connection_id: str
    user_id: str
    username: str
    is_guest: bool
    server_time: int


class UserConnectedMessage(BaseModel):
    type: Literal[PresenceMessageType.USER_CONNECTED] = PresenceMessageType.USER_CONNECTED
    user_id: str
    username: str
    connected_at: int


class UserDisconnectedMessage(BaseModel):
    type: Literal[PresenceMessageType.USER_DISCONNECTED] = PresenceMessageType.USER_DISCONNECTED
    user_id: str
    username: str
    disconnected_at: int


class OnlineUsersUpdateMessage(BaseModel):
    type: Literal[PresenceMessageType.ONLINE_USERS_UPDATE] = PresenceMessageType.ONLINE_USERS_UPDATE
    count: int
    users: list[OnlineUser]
    timestamp: int


class UserStatusUpdateMessage(BaseModel):
    type: Literal[PresenceMessageType.USER_STATUS_UPDATE] = PresenceMessageType.USER_STATUS_UPDATE
    user_id: str
    status: PresenceStatus
