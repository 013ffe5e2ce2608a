"""Confirmation and recovery flows for gallery accounts.

The coordinator decides whether a password reset or an email confirmation
succeeds and which notification follows. Persistence goes through
:class:`UserStore`; mail goes out through a :class:`Mailer` with links
built by a :data:`UrlBuilder`.

Mail is fire-and-forget: a failed dispatch is logged and reported in the
result, it never undoes a committed token consumption or password change.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import uuid
from typing import Awaitable, Callable, Optional

from gallery_accounts.core.urls import CONFIRM_EMAIL_ROUTE, RESET_PASSWORD_ROUTE, UrlBuilder
from gallery_accounts.errors import (
    AccountNotFound,
    AmbiguousAccount,
    IncorrectPassword,
    InvalidToken,
    ValidationError,
)
from gallery_accounts.models import User
from gallery_accounts.services.mailer import Mailer
from gallery_accounts.services.users import UserStore
from gallery_accounts.utils import normalize_email

log = logging.getLogger("gallery_accounts")

DEFAULT_PASSWORD_RESET_MINUTES = 1440

RESET_TOKEN_INVALID = "The Password Reset Token is not valid or expired."
CONFIRMATION_TOKEN_INVALID = "The confirmation link is not valid or has already been used."
RESET_ACCOUNT_NOT_FOUND = "Could not find anyone with that email."
RESEND_FAILED = "There was an issue resending your confirmation token."
RESEND_AMBIGUOUS = (
    "Multiple users registered with your email address. "
    "Enter your username in order to resend confirmation email."
)
RESET_AMBIGUOUS = (
    "Multiple users registered with your email address. "
    "Enter your username in order to reset your password."
)


@dataclass(frozen=True)
class PasswordResetRequested:
    username: str
    email: str
    token: str
    expires_minutes: int
    mail_sent: bool


@dataclass(frozen=True)
class ConfirmationSent:
    username: str
    email: str
    token: str
    mail_sent: bool


@dataclass(frozen=True)
class EmailConfirmed:
    username: str
    email: str
    confirming_new_account: bool
    notice_sent: bool


@dataclass(frozen=True)
class ProfileUpdated:
    confirmation_required: bool
    mail_sent: bool = False


def _matching_address(user: User, email_norm: str) -> str:
    if normalize_email(user.email_address) == email_norm:
        return user.email_address
    return user.unconfirmed_email_address


class AccountCoordinator:
    def __init__(
        self,
        users: UserStore,
        mailer: Mailer,
        urls: UrlBuilder,
        *,
        reset_minutes: int = DEFAULT_PASSWORD_RESET_MINUTES,
    ):
        self.users = users
        self.mailer = mailer
        self.urls = urls
        self.reset_minutes = reset_minutes

    # ---- password reset ----

    async def request_password_reset(self, email: str, username: Optional[str] = None) -> PasswordResetRequested:
        email_norm = normalize_email(email)
        if not email_norm:
            raise ValidationError("Email address is required.", field="email")

        user = self._pick_reset_account(await self.users.find_by_email(email_norm), email_norm, username)
        if user is None:
            raise AccountNotFound(RESET_ACCOUNT_NOT_FOUND, field="email")

        token = await self.users.issue_reset_token(user, self.reset_minutes)
        to_email = _matching_address(user, email_norm)
        sent = await self._dispatch(
            "password_reset",
            self.mailer.send_password_reset,
            to_email=to_email,
            username=user.username,
            reset_url=self.urls(RESET_PASSWORD_ROUTE, user.username, token),
        )
        log.info("password_reset_requested", extra={"username": user.username, "mail_sent": sent})
        return PasswordResetRequested(
            username=user.username,
            email=to_email,
            token=token,
            expires_minutes=self.reset_minutes,
            mail_sent=sent,
        )

    @staticmethod
    def _pick_reset_account(candidates: list[User], email_norm: str, username: Optional[str]) -> User | None:
        """
        One candidate: that one. Several: the account that *confirmed* the
        address (confirmed addresses are unique), else the supplied username.
        Never the first of an unordered pile.
        """
        if username:
            candidates = [u for u in candidates if u.username == username]
        if len(candidates) <= 1:
            return candidates[0] if candidates else None
        confirmed = [u for u in candidates if normalize_email(u.email_address) == email_norm]
        if len(confirmed) == 1:
            return confirmed[0]
        raise AmbiguousAccount(RESET_AMBIGUOUS, field="username")

    async def reset_password(self, username: str, token: str, new_password: str) -> None:
        # unknown user and bad token look the same from outside
        if not token or not await self.users.consume_reset_token(username, token, new_password):
            log.warning("password_reset_rejected", extra={"username": username})
            raise InvalidToken(RESET_TOKEN_INVALID)
        log.info("password_reset_completed", extra={"username": username})

    # ---- email confirmation ----

    async def resend_confirmation(self, email: str, username: Optional[str] = None) -> ConfirmationSent:
        """Only pending addresses qualify; confirmed accounts cannot be re-triggered here."""
        if not normalize_email(email):
            raise ValidationError("Email address is required.", field="email")
        claiming = await self.users.find_by_unconfirmed_email(email, username or None)
        if len(claiming) > 1:
            raise AmbiguousAccount(RESEND_AMBIGUOUS, field="username")
        if not claiming:
            raise AccountNotFound(RESEND_FAILED, field="email")
        return await self._send_confirmation(claiming[0])

    async def send_confirmation(self, user: User) -> ConfirmationSent:
        if not user.unconfirmed_email_address:
            raise ValidationError("There is no email address waiting for confirmation.", field="email")
        return await self._send_confirmation(user)

    async def _send_confirmation(self, user: User) -> ConfirmationSent:
        token = await self.users.issue_confirmation_token(user)
        sent = await self._dispatch(
            "confirmation",
            self.mailer.send_confirmation,
            to_email=user.unconfirmed_email_address,
            username=user.username,
            confirmation_url=self.urls(CONFIRM_EMAIL_ROUTE, user.username, token),
        )
        return ConfirmationSent(
            username=user.username,
            email=user.unconfirmed_email_address,
            token=token,
            mail_sent=sent,
        )

    async def confirm_email(self, username: str, token: str) -> EmailConfirmed:
        # unknown user, empty token and wrong token all read the same
        if not token:
            raise AccountNotFound(CONFIRMATION_TOKEN_INVALID)
        user = await self.users.find_by_username(username)
        if user is None:
            raise AccountNotFound(CONFIRMATION_TOKEN_INVALID)

        previous_email = user.email_address
        new_email = user.unconfirmed_email_address
        confirming_new_account = not previous_email

        if not await self.users.consume_confirmation_token(user, token):
            log.warning("email_confirmation_rejected", extra={"username": username})
            raise AccountNotFound(CONFIRMATION_TOKEN_INVALID)

        notice_sent = False
        if not confirming_new_account:
            notice_sent = await self._dispatch(
                "email_change_notice",
                self.mailer.send_email_change_notice,
                to_email=previous_email,
                username=user.username,
                new_email=new_email,
            )
        log.info(
            "email_confirmed",
            extra={"username": user.username, "new_account": confirming_new_account},
        )
        return EmailConfirmed(
            username=user.username,
            email=new_email,
            confirming_new_account=confirming_new_account,
            notice_sent=notice_sent,
        )

    # ---- account maintenance ----

    async def register(self, username: str, email: str, password: str) -> ConfirmationSent:
        user = await self.users.create_user(username, email, password)
        log.info("account_registered", extra={"username": user.username})
        return await self._send_confirmation(user)

    async def update_profile(self, user: User, email: str, email_allowed: bool) -> ProfileUpdated:
        if not await self.users.update_profile(user, email, email_allowed):
            return ProfileUpdated(confirmation_required=False)

        sent = await self._dispatch(
            "email_change_confirmation",
            self.mailer.send_email_change_confirmation,
            to_email=user.unconfirmed_email_address,
            username=user.username,
            confirmation_url=self.urls(CONFIRM_EMAIL_ROUTE, user.username, user.email_confirmation_token),
        )
        return ProfileUpdated(confirmation_required=True, mail_sent=sent)

    async def change_password(self, username: str, old_password: str, new_password: str) -> None:
        if not await self.users.change_password(username, old_password, new_password):
            raise IncorrectPassword(field="old_password")

    async def generate_api_key(self, username: str) -> uuid.UUID:
        api_key = await self.users.generate_api_key(username)
        if api_key is None:
            raise AccountNotFound()
        return api_key

    async def _dispatch(self, kind: str, send: Callable[..., Awaitable[None]], **kwargs) -> bool:
        try:
            await send(**kwargs)
        except Exception:
            log.exception("mail_dispatch_failed", extra={"kind": kind, "username": kwargs.get("username")})
            return False
        return True
