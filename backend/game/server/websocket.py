import contextlib
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from game.logic.enums import ErrorCode
from game.messaging.encoder import DecodeError, decode
from game.messaging.protocol import ConnectionProtocol
from game.messaging.router import MessageRouter
from game.messaging.types import ErrorMessage
from game.server.rate_limit import TokenBucket
from shared.auth.ticket import IdentityTicket, verify_ticket

logger = structlog.get_logger()

# A duel needs a handful of frames per round; anything faster is a script.
_RATE_LIMIT_RATE = 10.0
_RATE_LIMIT_BURST = 20

# Disconnect after this many consecutive undecodable frames
_MAX_DECODE_ERRORS = 3

_INVALID_TICKET_CLOSE_CODE = 4001
_POLICY_VIOLATION_CLOSE_CODE = 1008


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, ticket: IdentityTicket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._ticket = ticket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def user_id(self) -> str:
        return self._ticket.user_id

    @property
    def username(self) -> str:
        return self._ticket.username

    @property
    def is_guest(self) -> bool:
        return self._ticket.is_guest

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter, ticket_secret: str) -> None:
    ticket = verify_ticket(websocket.query_params.get("ticket", ""), ticket_secret)
    if ticket is None:
        await websocket.close(code=_INVALID_TICKET_CLOSE_CODE, reason="invalid_ticket")
        return

    await websocket.accept()

    connection = WebSocketConnection(websocket, ticket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id, user_id=connection.user_id)
    logger.info("websocket connected")

    bucket = TokenBucket(rate=_RATE_LIMIT_RATE, burst=_RATE_LIMIT_BURST)
    decode_errors = 0

    try:
        await router.handle_connect(connection)
        while True:
            raw = await connection.receive_bytes()

            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await connection.send_message(
                    ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message="Malformed frame").model_dump(),
                )
                if decode_errors >= _MAX_DECODE_ERRORS:
                    logger.info("too many decode errors, disconnecting")
                    await connection.close(code=_POLICY_VIOLATION_CLOSE_CODE, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0

            if not bucket.consume():
                await connection.send_message(
                    ErrorMessage(code=ErrorCode.RATE_LIMITED, message="Too many messages").model_dump(),
                )
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
