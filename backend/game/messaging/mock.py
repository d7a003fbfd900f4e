import asyncio
from typing import Any
from uuid import uuid4

import msgpack

from game.messaging.encoder import encode
from game.messaging.protocol import ConnectionProtocol


class MockConnection(ConnectionProtocol):
    """In-memory connection that records every message sent to it."""

    def __init__(
        self,
        user_id: str = "user-1",
        username: str | None = None,
        *,
        is_guest: bool = False,
        connection_id: str | None = None,
    ) -> None:
        self._connection_id = connection_id or str(uuid4())
        self._user_id = user_id
        self._username = username or user_id
        self._is_guest = is_guest
        self._inbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._outbox: list[dict[str, Any]] = []
        self._closed = False
        self._close_code: int | None = None
        self._close_reason: str | None = None

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def username(self) -> str:
        return self._username

    @property
    def is_guest(self) -> bool:
        return self._is_guest

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return self._outbox.copy()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def messages_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self._outbox if m.get("type") == message_type]

    def clear(self) -> None:
        self._outbox.clear()

    async def send_bytes(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Connection is closed")
        # decode so tests inspect exactly what went over the wire
        self._outbox.append(msgpack.unpackb(data, raw=False))

    async def receive_bytes(self) -> bytes:
        if self._closed:
            raise RuntimeError("Connection is closed")
        return await self._inbox.get()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._closed = True
        self._close_code = code
        self._close_reason = reason

    async def simulate_receive(self, data: dict[str, Any]) -> None:
        await self._inbox.put(encode(data))
