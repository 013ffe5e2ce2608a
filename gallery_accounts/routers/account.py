from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_accounts.db import get_session
from gallery_accounts.deps.accounts import get_coordinator
from gallery_accounts.deps.auth import get_current_user
from gallery_accounts.models import User
from gallery_accounts.schemas import EditProfileIn, PasswordChangeIn
from gallery_accounts.services.coordinator import AccountCoordinator
from gallery_accounts.services.gallery import curated_feed_names, packages_for_owner
from gallery_accounts.utils import safe_redirect_url

router = APIRouter(prefix="/account", tags=["account"])

PROFILE_SAVED = "Account settings saved!"
PROFILE_SAVED_CONFIRM = (
    "Account settings saved! We sent a confirmation email to verify your new email. "
    "When you confirm the email address, it will take effect and we will forget the old one."
)


@router.get("")
async def account(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return {
        "username": user.username,
        "api_key": str(user.api_key),
        "curated_feeds": await curated_feed_names(session, user.user_id),
    }


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return {
        "email_address": user.email_address,
        "email_allowed": user.email_allowed,
        "pending_new_email_address": user.unconfirmed_email_address,
    }


@router.put("/profile")
async def edit_profile(
    payload: EditProfileIn,
    user: User = Depends(get_current_user),
    coordinator: AccountCoordinator = Depends(get_coordinator),
):
    """
    A new address stays pending until confirmed; the old one keeps working.
    """
    result = await coordinator.update_profile(user, payload.email_address, payload.email_allowed)
    return {
        "message": PROFILE_SAVED_CONFIRM if result.confirmation_required else PROFILE_SAVED,
        "confirmation_required": result.confirmation_required,
        "email_address": user.email_address,
        "pending_new_email_address": user.unconfirmed_email_address,
    }


@router.get("/packages")
async def my_packages(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return {"packages": await packages_for_owner(session, user.user_id)}


@router.post("/api-key")
async def generate_api_key(
    user: User = Depends(get_current_user),
    coordinator: AccountCoordinator = Depends(get_coordinator),
):
    api_key = await coordinator.generate_api_key(user.username)
    return {"api_key": str(api_key)}


@router.post("/password/change")
async def change_password(
    payload: PasswordChangeIn,
    user: User = Depends(get_current_user),
    coordinator: AccountCoordinator = Depends(get_coordinator),
):
    """
    Bumps the token version: every access token issued before this dies,
    including the one used for this call.
    """
    await coordinator.change_password(user.username, payload.old_password, payload.new_password)
    return {"ok": True}


@router.get("/confirmation-required")
async def confirmation_required(
    user_action: Optional[str] = Query(None),
    return_url: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
):
    if user.email_address:
        # already confirmed, nothing to do here
        return {"confirmed": True, "return_url": safe_redirect_url(return_url)}
    return {
        "confirmed": False,
        "mail_sent": False,
        "pending_email_address": user.unconfirmed_email_address,
        "user_action": user_action,
        "return_url": safe_redirect_url(return_url),
    }


@router.post("/confirmation-required")
async def confirmation_required_send(
    user_action: Optional[str] = Query(None),
    return_url: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    coordinator: AccountCoordinator = Depends(get_coordinator),
):
    sent = await coordinator.send_confirmation(user)
    return {
        "confirmed": False,
        "mail_sent": sent.mail_sent,
        "pending_email_address": sent.email,
        "user_action": user_action,
        "return_url": safe_redirect_url(return_url),
    }
