from __future__ import annotations
from typing import Optional
import uuid
import logging
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt import InvalidTokenError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from gallery_accounts.core.security import decode_access_token, get_jwt_subject
from gallery_accounts.db import get_session
from gallery_accounts.models import User

log = logging.getLogger("gallery_accounts")
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    # 1. Missing Bearer token
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    # 2. Decode JWT & extract user_id
    try:
        payload = decode_access_token(credentials.credentials)
        user_id = uuid.UUID(str(get_jwt_subject(payload)))
    except (InvalidTokenError, ValueError) as e:
        log.warning("jwt_decode_failed", extra={
            "request_id": getattr(request.state, "request_id", None),
            "error": str(e),
        })
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid/expired token")

    # 3. Fetch user from DB
    res = await session.execute(
        select(User).where(User.user_id == user_id, User.is_active.is_(True))
    )
    user = res.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found/inactive")

    # 4. Token version: password reset/change bumps it, killing older tokens
    try:
        token_tv = int(payload.get("tv", 0))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if token_tv != int(user.token_version or 0):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalidated")

    request.state.user_id = str(user.user_id)
    return user
