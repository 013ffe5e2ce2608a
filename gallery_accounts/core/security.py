import datetime as dt
import uuid
import jwt
from jwt import InvalidTokenError
from typing import Any, Dict
from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError
from gallery_accounts.core.config import settings

# Reasonable Argon2 defaults for auth
ph = PasswordHasher(time_cost=2, memory_cost=102400, parallelism=8)

def hash_password(plain: str) -> str:
    return ph.hash(plain)

def verify_password(plain: str, hashed: str) -> bool:
    try:
        return ph.verify(hashed, plain)
    except (VerificationError, InvalidHashError):
        return False

def create_access_token(sub: str, extra: Dict[str, Any] | None = None) -> str:
    """
    Aware UTC datetimes so .timestamp() yields true UTC seconds.
    TTL is clamped to >= 1 minute.
    """
    now = dt.datetime.now(dt.timezone.utc)
    minutes = max(1, int(settings.ACCESS_TOKEN_EXPIRES_MIN))
    exp = now + dt.timedelta(minutes=minutes)

    payload: Dict[str, Any] = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "type": "access",
    }
    if extra:
        payload.update(extra)

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

def decode_access_token(token: str) -> dict:
    """
    Verify signature & standard claims with small leeway for iat/exp.
    """
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        options={"require": ["sub", "iat", "exp"]},
        leeway=30,
    )

def get_jwt_subject(payload: dict) -> str:
    sub = payload.get("sub")
    if not sub:
        raise InvalidTokenError("Missing subject (sub)")
    return sub

def new_api_key() -> uuid.UUID:
    return uuid.uuid4()
