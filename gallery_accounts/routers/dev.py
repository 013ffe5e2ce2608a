# Dev-only: mounted when ENABLE_DEBUG_ENDPOINTS=True, never in production.
from __future__ import annotations

from typing import Any, Optional
from datetime import datetime, timezone
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_accounts.core.config import settings
from gallery_accounts.db import get_session
from gallery_accounts.core.tokens import as_utc, token_status
from gallery_accounts.models import AccountEvent, PasswordResetToken

router = APIRouter(prefix="/debug", tags=["dev"])


@router.get("/config")
def debug_config():
    # safe subset only (no DATABASE_URL, secrets, etc.)
    return {
        "ACCESS_TOKEN_EXPIRES_MIN": settings.ACCESS_TOKEN_EXPIRES_MIN,
        "JWT_ALGORITHM": settings.JWT_ALGORITHM,
        "PASSWORD_RESET_TOKEN_MINUTES": settings.PASSWORD_RESET_TOKEN_MINUTES,
        "PUBLIC_BASE_URL": settings.PUBLIC_BASE_URL,
    }


@router.get("/account-events")
async def list_account_events(
    session: AsyncSession = Depends(get_session),
    limit: int = Query(100, ge=1, le=500),
    event_type: Optional[str] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    request_id: Optional[str] = Query(None),
) -> dict[str, Any]:
    """Latest account events, newest first. Filters are optional."""
    stmt = select(AccountEvent)
    if event_type:
        stmt = stmt.where(AccountEvent.event_type == event_type)
    if user_id:
        stmt = stmt.where(AccountEvent.user_id == user_id)
    if request_id:
        stmt = stmt.where(AccountEvent.request_id == request_id)

    res = await session.execute(
        stmt.order_by(AccountEvent.occurred_at.desc(), AccountEvent.event_id.desc()).limit(limit)
    )
    items = [
        {
            "event_id": ev.event_id,
            "occurred_at": ev.occurred_at,
            "event_type": ev.event_type,
            "user_id": str(ev.user_id) if ev.user_id else None,
            "request_id": ev.request_id,
            "ip": ev.ip,
            "user_agent": ev.user_agent,
            "device": ev.device,
            "details": ev.details,
        }
        for ev in res.scalars().all()
    ]
    return {"count": len(items), "items": items}


@router.get("/password-reset-tokens")
async def list_password_reset_tokens(
    session: AsyncSession = Depends(get_session),
    limit: int = Query(100, ge=1, le=500),
    user_id: Optional[uuid.UUID] = Query(None),
    status: Optional[str] = Query(None),
) -> dict[str, Any]:
    """Latest reset tokens with their derived state. Hashes are never shown."""
    stmt = select(PasswordResetToken)
    if user_id:
        stmt = stmt.where(PasswordResetToken.user_id == user_id)

    res = await session.execute(
        stmt.order_by(PasswordResetToken.created_at.desc()).limit(limit)
    )
    now = datetime.now(timezone.utc)
    items = [
        {
            "token_id": str(tok.token_id),
            "user_id": str(tok.user_id),
            "status": token_status(tok, now),
            "created_at": tok.created_at,
            "expires_at": as_utc(tok.expires_at),
            "used_at": as_utc(tok.used_at),
            "superseded_at": as_utc(tok.superseded_at),
            "requested_ip": tok.requested_ip,
        }
        for tok in res.scalars().all()
    ]
    if status:
        items = [item for item in items if item["status"] == status]
    return {"count": len(items), "items": items}
