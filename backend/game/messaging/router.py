from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from game.logic.enums import ErrorCode
from game.logic.exceptions import DuelError, RaceLostError
from game.messaging.types import (
    ClickMessage,
    ClickRejectedMessage,
    ErrorMessage,
    GetOnlineUsersMessage,
    JoinMessage,
    LeaveGameMessage,
    PingMessage,
    SetStatusMessage,
    parse_client_message,
)
from shared.dal.exceptions import InfrastructureError

if TYPE_CHECKING:
    from game.messaging.protocol import ConnectionProtocol
    from game.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    Expected rejections become error events for the sending connection only;
    they never propagate into the websocket loop.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self._send_error(connection, ErrorCode.INVALID_MESSAGE, "Invalid message")
            return

        try:
            await self._dispatch(connection, message)
        except RaceLostError as e:
            await connection.send_message(ClickRejectedMessage(winner_id=e.winner_id).model_dump())
        except DuelError as e:
            logger.info("%s rejected for %s: %s", message.type, connection.connection_id, e)
            await self._send_error(connection, e.code, str(e))
        except InfrastructureError:
            logger.exception("storage failure while handling %s", message.type)
            await self._send_error(connection, ErrorCode.SERVER_ERROR, "Server error, please retry")

    async def _dispatch(self, connection: ConnectionProtocol, message: object) -> None:
        if isinstance(message, JoinMessage):
            await self._session_manager.join(connection, message.match_id)
        elif isinstance(message, ClickMessage):
            await self._session_manager.click(connection)
        elif isinstance(message, LeaveGameMessage):
            await self._session_manager.leave_game(connection, message.match_id, force_end=message.force_end)
        elif isinstance(message, PingMessage):
            await self._session_manager.handle_ping(connection)
        elif isinstance(message, GetOnlineUsersMessage):
            await self._session_manager.send_online_users(connection)
        elif isinstance(message, SetStatusMessage):
            await self._session_manager.set_status(connection, message.status)

    @staticmethod
    async def _send_error(connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
        await connection.send_message(ErrorMessage(code=code, message=message).model_dump())

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.handle_disconnect(connection)
