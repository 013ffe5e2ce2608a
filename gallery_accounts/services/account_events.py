from __future__ import annotations

from typing import Any, Optional
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from gallery_accounts.core.request_context import RequestContext
from gallery_accounts.models import AccountEvent
from gallery_accounts.utils import parse_user_agent


def record_account_event(
    session: AsyncSession,
    *,
    event_type: str,
    user_id: Optional[uuid.UUID] = None,
    context: Optional[RequestContext] = None,
    details: Optional[dict[str, Any]] = None,
) -> AccountEvent:
    ctx = context or RequestContext()
    ev = AccountEvent(
        event_type=event_type,
        user_id=user_id,
        request_id=ctx.request_id,
        ip=ctx.ip,
        user_agent=ctx.user_agent,
        device=parse_user_agent(ctx.user_agent),
        details=details or {},
    )
    session.add(ev)
    # DO NOT commit here. Let the caller commit with its transaction.
    return ev
