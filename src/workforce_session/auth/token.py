"""Unverified JWT expiry extraction.

The client never holds the signing key, so signature validation stays with the
backend.  All the client needs from a token is *when it stops being useful*,
which is read from the ``exp`` claim.  Anything that cannot be read is treated
as already expired so callers fail closed to a logged-out state.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any

import jwt

logger = logging.getLogger(__name__)

# Disabling signature verification also disables every registered-claim check.
_UNVERIFIED = {"verify_signature": False}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def decode_claims(token: str | None) -> dict[str, Any] | None:
    """Return the token's payload claims without checking the signature."""
    if not token or not isinstance(token, str) or token.count(".") != 2:
        return None
    try:
        claims = jwt.decode(token, options=_UNVERIFIED)
    except jwt.PyJWTError as exc:
        logger.debug("Unreadable token payload: %s", exc)
        return None
    if not isinstance(claims, dict):
        return None
    return claims


def get_expiry(token: str | None) -> datetime.datetime | None:
    """Return the UTC expiry embedded in *token*, or ``None`` if unreadable."""
    claims = decode_claims(token)
    if claims is None:
        return None
    exp = claims.get("exp")
    # bool is an int subclass; a boolean exp is garbage, not a timestamp.
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    try:
        return datetime.datetime.fromtimestamp(exp, datetime.UTC)
    except (OverflowError, OSError, ValueError):
        return None


def is_expired(token: str | None, now: datetime.datetime | None = None) -> bool:
    expiry = get_expiry(token)
    if expiry is None:
        return True
    return expiry <= (now or _utcnow())


def time_until_expiry(token: str | None, now: datetime.datetime | None = None) -> int:
    """Milliseconds until *token* expires; 0 for expired or unreadable tokens."""
    expiry = get_expiry(token)
    if expiry is None:
        return 0
    remaining = (expiry - (now or _utcnow())).total_seconds()
    return max(0, int(remaining * 1000))
