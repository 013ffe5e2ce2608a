from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
import logging

from gallery_accounts.core.security import create_access_token
from gallery_accounts.deps.accounts import get_coordinator, get_rate_limiter, get_user_store
from gallery_accounts.deps.auth import get_current_user
from gallery_accounts.models import User
from gallery_accounts.schemas import LoginIn, RegisterIn, TokenOut
from gallery_accounts.security.rate_limit import enforce_rate_limit
from gallery_accounts.services.coordinator import AccountCoordinator
from gallery_accounts.services.users import UserStore
from gallery_accounts.utils import get_client_ip

router = APIRouter(prefix="/auth", tags=["auth"])
log = logging.getLogger("gallery_accounts")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterIn,
    coordinator: AccountCoordinator = Depends(get_coordinator),
):
    """
    New accounts start with a pending address; the confirmation mail activates it.
    """
    sent = await coordinator.register(payload.username, payload.email, payload.password)
    return {
        "username": sent.username,
        "pending_email_address": sent.email,
        "confirmation_sent": sent.mail_sent,
    }


@router.post("/login", response_model=TokenOut)
async def login(
    payload: LoginIn,
    request: Request,
    response: Response,
    users: UserStore = Depends(get_user_store),
    limiter=Depends(get_rate_limiter),
):
    ip = get_client_ip(request)
    await enforce_rate_limit(
        limiter,
        f"rl:login:ip:{ip or 'unknown'}",
        f"rl:login:user:{payload.username.strip().lower() or 'unknown'}",
    )

    user = await users.authenticate(payload.username, payload.password)
    if user is None:
        log.info("login_failed", extra={"username": payload.username, "ip": ip})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    access = create_access_token(
        str(user.user_id),
        extra={"username": user.username, "tv": int(user.token_version or 0)},
    )
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
    return TokenOut(access_token=access)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {
        "user_id": str(user.user_id),
        "username": user.username,
        "email_address": user.email_address,
        "pending_email_address": user.unconfirmed_email_address,
        "email_allowed": user.email_allowed,
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
    }
