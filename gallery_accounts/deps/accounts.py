from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_accounts.core.config import settings
from gallery_accounts.core.redis_client import get_redis
from gallery_accounts.core.request_context import RequestContext, get_request_context
from gallery_accounts.core.urls import ConfirmationUrlBuilder
from gallery_accounts.db import get_session
from gallery_accounts.security.rate_limit import RedisRateLimiter
from gallery_accounts.services.coordinator import AccountCoordinator
from gallery_accounts.services.mailer import DevMailer, Mailer
from gallery_accounts.services.users import UserStore

_mailer = DevMailer()


def get_mailer() -> Mailer:
    return _mailer


def get_rate_limiter() -> RedisRateLimiter:
    return RedisRateLimiter(
        get_redis(),
        capacity=settings.RATE_BUCKET_SIZE,
        refill_per_sec=settings.RATE_REFILL_PER_SEC,
    )


def get_user_store(
    session: AsyncSession = Depends(get_session),
    context: RequestContext = Depends(get_request_context),
) -> UserStore:
    return UserStore(session, context=context)


def get_coordinator(
    request: Request,
    users: UserStore = Depends(get_user_store),
    mailer: Mailer = Depends(get_mailer),
) -> AccountCoordinator:
    return AccountCoordinator(
        users,
        mailer,
        ConfirmationUrlBuilder(request, base_url=settings.PUBLIC_BASE_URL),
        reset_minutes=settings.PASSWORD_RESET_TOKEN_MINUTES,
    )
