from __future__ import annotations

from datetime import datetime, timezone
import hashlib
import hmac
import secrets

# derived states of an issued account token, never stored
TOKEN_ISSUED = "issued"
TOKEN_CONSUMED = "consumed"
TOKEN_EXPIRED = "expired"
TOKEN_SUPERSEDED = "superseded"


def new_account_token() -> str:
    # URL-safe, high entropy
    return secrets.token_urlsafe(32)


def hash_account_token(token: str) -> str:
    # stable hash, store only this
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def tokens_match(presented: str | None, stored: str | None) -> bool:
    """Exact, constant-time comparison. Empty values never match."""
    if not presented or not stored:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes; everything is written as UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def token_status(token, now: datetime) -> str:
    """
    Consumed and superseded win over expiry: a token used before its
    deadline stays "consumed" forever.
    """
    if token.used_at is not None:
        return TOKEN_CONSUMED
    if token.superseded_at is not None:
        return TOKEN_SUPERSEDED
    if as_utc(token.expires_at) <= now:
        return TOKEN_EXPIRED
    return TOKEN_ISSUED
