"""Signed identity tickets shared by the HTTP and websocket surfaces."""

from shared.auth.ticket import (
    TICKET_TTL_SECONDS,
    IdentityTicket,
    create_signed_ticket,
    sign_ticket,
    verify_ticket,
)

__all__ = [
    "TICKET_TTL_SECONDS",
    "IdentityTicket",
    "create_signed_ticket",
    "sign_ticket",
    "verify_ticket",
]
