"""Typed errors for rejected duel operations.

Every expected rejection is a DuelError subclass carrying the wire error code.
The message router converts them into error events for the originating
connection; they never escape into the websocket loop.
"""

from typing import ClassVar

from game.logic.enums import ErrorCode


class DuelError(Exception):
    code: ClassVar[ErrorCode] = ErrorCode.INVALID_STATE


class AuthorizationError(DuelError):
    """The caller is not a participant of the match it acted on."""

    code = ErrorCode.FORBIDDEN


class NotFoundError(DuelError):
    """Unknown match or session."""

    code = ErrorCode.NOT_FOUND


class InvalidStateError(DuelError):
    """The operation is not valid in the current phase or match status."""

    code = ErrorCode.INVALID_STATE


class RaceLostError(DuelError):
    """Another participant claimed the round's race lock first."""

    code = ErrorCode.RACE_LOST

    def __init__(self, winner_id: str) -> None:
        self.winner_id = winner_id
        super().__init__("Opponent clicked first")
