"""Shared broadcast utility for sending one message to a group of connections."""

from __future__ import annotations

import contextlib
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from game.messaging.protocol import ConnectionProtocol


async def broadcast(
    connections: Iterable[ConnectionProtocol],
    message: dict[str, Any],
    exclude_connection_id: str | None = None,
) -> None:
    """Send to every connection, skipping one if excluded.

    Iterates over a snapshot so a concurrent disconnect cannot mutate the
    collection while we yield on send_message. Send failures of a dropped
    peer are ignored; its disconnect handler cleans up.
    """
    for connection in list(connections):
        if connection.connection_id != exclude_connection_id:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await connection.send_message(message)
