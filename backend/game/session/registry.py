"""Process-wide registry of connected identities and their presence."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from game.logic.enums import PresenceStatus
from game.messaging.types import (
    ConnectionEstablishedMessage,
    OnlineUser,
    OnlineUsersUpdateMessage,
    UserConnectedMessage,
    UserDisconnectedMessage,
    UserStatusUpdateMessage,
)
from game.session.broadcast import broadcast

if TYPE_CHECKING:
    from collections.abc import Callable

    from game.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()


@dataclass
class ConnectionEntry:
    connection: ConnectionProtocol
    connected_at: int  # epoch ms
    status: PresenceStatus = PresenceStatus.ONLINE

    @property
    def user_id(self) -> str:
        return self.connection.user_id

    @property
    def username(self) -> str:
        return self.connection.username


class ConnectionRegistry:
    """Map connection id -> identity and presence status.

    Nothing here is persisted; presence is rebuilt from live connections after
    a restart. One user may hold several connections (tabs); presence events
    are emitted on the first connect and the last disconnect of a user.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, ConnectionEntry] = {}
        self._broadcast_task: asyncio.Task[None] | None = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, connection_id: str) -> ConnectionEntry | None:
        return self._entries.get(connection_id)

    def is_online(self, user_id: str) -> bool:
        return any(e.user_id == user_id for e in self._entries.values())

    def connections(self) -> list[ConnectionProtocol]:
        return [e.connection for e in self._entries.values()]

    def online_users(self) -> list[OnlineUser]:
        """One row per online user, keyed on their earliest connection."""
        users: dict[str, OnlineUser] = {}
        for entry in sorted(self._entries.values(), key=lambda e: e.connected_at):
            if entry.user_id not in users:
                users[entry.user_id] = OnlineUser(
                    user_id=entry.user_id,
                    username=entry.username,
                    status=entry.status,
                    connected_at=entry.connected_at,
                )
        return list(users.values())

    def online_users_message(self) -> OnlineUsersUpdateMessage:
        users = self.online_users()
        return OnlineUsersUpdateMessage(count=len(users), users=users, timestamp=self._now_ms())

    async def connect(self, connection: ConnectionProtocol) -> ConnectionEntry:
        first_for_user = not self.is_online(connection.user_id)
        entry = ConnectionEntry(connection=connection, connected_at=self._now_ms())
        self._entries[connection.connection_id] = entry
        logger.info("user connected", user_id=connection.user_id, online=len(self._entries))

        await connection.send_message(
            ConnectionEstablishedMessage(
                connection_id=connection.connection_id,
                user_id=connection.user_id,
                username=connection.username,
                is_guest=connection.is_guest,
                server_time=entry.connected_at,
            ).model_dump(),
        )
        if first_for_user:
            await broadcast(
                self.connections(),
                UserConnectedMessage(
                    user_id=connection.user_id,
                    username=connection.username,
                    connected_at=entry.connected_at,
                ).model_dump(),
                exclude_connection_id=connection.connection_id,
            )
        return entry

    async def disconnect(self, connection: ConnectionProtocol) -> ConnectionEntry | None:
        """Remove a connection. Unknown connections are ignored."""
        entry = self._entries.pop(connection.connection_id, None)
        if entry is None:
            return None
        logger.info("user disconnected", user_id=entry.user_id, online=len(self._entries))
        if not self.is_online(entry.user_id):
            await broadcast(
                self.connections(),
                UserDisconnectedMessage(
                    user_id=entry.user_id,
                    username=entry.username,
                    disconnected_at=self._now_ms(),
                ).model_dump(),
            )
        return entry

    async def set_user_status(
        self,
        user_id: str,
        status: PresenceStatus,
        exclude_connection_id: str | None = None,
    ) -> None:
        changed = False
        for entry in self._entries.values():
            if entry.user_id == user_id and entry.status != status:
                entry.status = status
                changed = True
        if changed:
            await broadcast(
                self.connections(),
                UserStatusUpdateMessage(user_id=user_id, status=status).model_dump(),
                exclude_connection_id=exclude_connection_id,
            )

    async def send_online_users(self, connection: ConnectionProtocol) -> None:
        await connection.send_message(self.online_users_message().model_dump())

    async def broadcast_online_users(self) -> None:
        await broadcast(self.connections(), self.online_users_message().model_dump())

    # --- Periodic presence broadcast ---

    def start_broadcaster(self, interval_seconds: float) -> None:
        """Start the periodic online-users broadcast. Idempotent."""
        if self._broadcast_task is not None and not self._broadcast_task.done():
            return
        self._broadcast_task = asyncio.create_task(self._broadcast_loop(interval_seconds))

    async def stop_broadcaster(self) -> None:
        if self._broadcast_task is not None:
            self._broadcast_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._broadcast_task
            self._broadcast_task = None

    async def _broadcast_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.broadcast_online_users()
            except Exception:
                logger.exception("presence broadcast failed")
