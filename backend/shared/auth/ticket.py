"""HMAC-SHA256 signed identity tickets.

The account service signs a ticket after login; the duel server verifies it
locally with the shared secret when a websocket connects or a challenge is
created over HTTP.

Token format: base64url(json_payload_bytes).base64url(hmac_sha256_signature)
"""

import base64
import binascii
import hashlib
import hmac
import json
import math
import time
from dataclasses import asdict, dataclass

import structlog

logger = structlog.get_logger()

_TOKEN_PARTS = 2

TICKET_TTL_SECONDS = 86400
CLOCK_SKEW_SECONDS = 60


@dataclass
class IdentityTicket:
    """Payload carried inside a signed identity ticket."""

    user_id: str
    username: str
    is_guest: bool
    issued_at: float
    expires_at: float


def create_signed_ticket(user_id: str, username: str, secret: str, *, is_guest: bool = False) -> str:
    """Create and sign a ticket valid for TICKET_TTL_SECONDS."""
    now = time.time()
    ticket = IdentityTicket(
        user_id=user_id,
        username=username,
        is_guest=is_guest,
        issued_at=now,
        expires_at=now + TICKET_TTL_SECONDS,
    )
    return sign_ticket(ticket, secret)


def sign_ticket(ticket: IdentityTicket, secret: str) -> str:
    payload_bytes = json.dumps(asdict(ticket), sort_keys=True).encode()
    sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    payload_b64 = base64.urlsafe_b64encode(payload_bytes).decode()
    sig_b64 = base64.urlsafe_b64encode(sig).decode()
    return f"{payload_b64}.{sig_b64}"


def verify_ticket(token: str, secret: str) -> IdentityTicket | None:
    """Verify signature, shape and expiry. Returns None on any failure."""
    parts = token.split(".")
    if len(parts) != _TOKEN_PARTS:
        return None

    try:
        payload_bytes = base64.urlsafe_b64decode(parts[0])
        provided_sig = base64.urlsafe_b64decode(parts[1])
    except (ValueError, binascii.Error):
        return None

    expected_sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    if not hmac.compare_digest(provided_sig, expected_sig):
        logger.debug("ticket signature mismatch")
        return None

    try:
        ticket = IdentityTicket(**json.loads(payload_bytes))
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        logger.debug("ticket payload malformed")
        return None

    if not isinstance(ticket.user_id, str) or not ticket.user_id or not isinstance(ticket.is_guest, bool):
        logger.debug("ticket identity claims invalid")
        return None

    if not _timestamps_valid(ticket):
        return None
    return ticket


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _timestamps_valid(ticket: IdentityTicket) -> bool:
    if not _is_finite_number(ticket.issued_at) or not _is_finite_number(ticket.expires_at):
        logger.debug("ticket non-finite timestamp")
        return False

    now = time.time()
    if ticket.issued_at > now + CLOCK_SKEW_SECONDS:
        logger.debug("ticket issued in the future")
        return False
    if ticket.expires_at <= ticket.issued_at:
        logger.debug("ticket expires before it was issued")
        return False
    if ticket.expires_at - ticket.issued_at > TICKET_TTL_SECONDS + CLOCK_SKEW_SECONDS:
        logger.debug("ticket lifetime too long")
        return False
    if now > ticket.expires_at:
        logger.debug("ticket expired")
        return False
    return True
