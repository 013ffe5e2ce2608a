from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from gallery_accounts.core.urls import CONFIRM_EMAIL_ROUTE, RESET_PASSWORD_ROUTE
from gallery_accounts.deps.accounts import get_coordinator, get_rate_limiter
from gallery_accounts.schemas import PasswordForgotIn, PasswordResetIn, ResendConfirmationIn
from gallery_accounts.security.rate_limit import enforce_rate_limit
from gallery_accounts.services.coordinator import AccountCoordinator
from gallery_accounts.utils import get_client_ip, normalize_email


router = APIRouter(prefix="/account", tags=["account-recovery"])


async def _limit(request: Request, limiter, scope: str, email: str) -> None:
    ip = get_client_ip(request)
    await enforce_rate_limit(
        limiter,
        f"rl:{scope}:ip:{ip or 'unknown'}",
        f"rl:{scope}:email:{normalize_email(email) or 'unknown'}",
    )


@router.post("/password/forgot", status_code=status.HTTP_200_OK)
async def forgot_password(
    payload: PasswordForgotIn,
    request: Request,
    coordinator: AccountCoordinator = Depends(get_coordinator),
    limiter=Depends(get_rate_limiter),
):
    """
    Mails reset instructions. Works for pending addresses too: the reset does
    not wait for email confirmation.
    """
    await _limit(request, limiter, "pwreset", payload.email)
    result = await coordinator.request_password_reset(payload.email, payload.username)
    return {
        "ok": True,
        "email": result.email,
        "expires_in_minutes": result.expires_minutes,
    }


@router.post("/password/reset/{username}/{token}", name=RESET_PASSWORD_ROUTE, status_code=status.HTTP_200_OK)
async def reset_password(
    username: str,
    token: str,
    payload: PasswordResetIn,
    coordinator: AccountCoordinator = Depends(get_coordinator),
):
    """
    Token + username -> new password. Every failure reads the same.
    """
    await coordinator.reset_password(username, token, payload.new_password)
    return {"ok": True}


@router.post("/confirmation/resend", status_code=status.HTTP_200_OK)
async def resend_confirmation(
    payload: ResendConfirmationIn,
    request: Request,
    coordinator: AccountCoordinator = Depends(get_coordinator),
    limiter=Depends(get_rate_limiter),
):
    await _limit(request, limiter, "confirm", payload.email)
    await coordinator.resend_confirmation(payload.email, payload.username)
    return {"ok": True}


@router.get("/confirm/{username}/{token}", name=CONFIRM_EMAIL_ROUTE)
async def confirm_email(
    username: str,
    token: str,
    coordinator: AccountCoordinator = Depends(get_coordinator),
):
    result = await coordinator.confirm_email(username, token)
    return {
        "successful_confirmation": True,
        "confirming_new_account": result.confirming_new_account,
        "email_address": result.email,
    }
