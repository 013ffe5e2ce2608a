from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import uuid
from typing import Callable, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_accounts.core.request_context import RequestContext
from gallery_accounts.core.security import hash_password, new_api_key, verify_password
from gallery_accounts.core.tokens import hash_account_token, new_account_token, tokens_match
from gallery_accounts.errors import EmailAddressTaken, ValidationError
from gallery_accounts.models import PasswordResetToken, User
from gallery_accounts.services.account_events import record_account_event
from gallery_accounts.utils import normalize_email

log = logging.getLogger("gallery_accounts")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserStore:
    """
    Account persistence for one request.

    Token consumption is always a single conditional UPDATE: the row only
    changes if the presented token still matches, so two racing requests
    cannot both succeed.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        context: Optional[RequestContext] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.context = context or RequestContext()
        self._clock = clock

    # ---- lookups ----

    async def find_by_username(self, username: str | None) -> User | None:
        if not username:
            return None
        res = await self.session.execute(
            select(User).where(User.username == username, User.is_active.is_(True))
        )
        return res.scalar_one_or_none()

    async def find_by_email(self, email: str | None) -> list[User]:
        """Accounts whose confirmed OR pending address matches, case-insensitively."""
        email_norm = normalize_email(email)
        if not email_norm:
            return []
        res = await self.session.execute(
            select(User)
            .where(
                User.is_active.is_(True),
                or_(
                    func.lower(User.email_address) == email_norm,
                    func.lower(User.unconfirmed_email_address) == email_norm,
                ),
            )
            .order_by(User.username)
        )
        return list(res.scalars().all())

    async def find_by_unconfirmed_email(self, email: str | None, username: str | None = None) -> list[User]:
        email_norm = normalize_email(email)
        if not email_norm:
            return []
        stmt = select(User).where(
            User.is_active.is_(True),
            func.lower(User.unconfirmed_email_address) == email_norm,
        )
        if username:
            stmt = stmt.where(User.username == username)
        res = await self.session.execute(stmt.order_by(User.username))
        return list(res.scalars().all())

    async def email_taken(self, email: str, *, exclude_user_id: uuid.UUID | None = None) -> bool:
        """True when another account already *confirmed* this address."""
        stmt = select(User.user_id).where(func.lower(User.email_address) == normalize_email(email))
        if exclude_user_id is not None:
            stmt = stmt.where(User.user_id != exclude_user_id)
        res = await self.session.execute(stmt.limit(1))
        return res.first() is not None

    # ---- registration / profile ----

    async def create_user(self, username: str, email: str, password: str) -> User:
        email = email.strip()
        if await self.find_by_username(username) is not None:
            raise ValidationError(f"The username '{username}' is already taken.", field="username")
        if await self.email_taken(email):
            raise EmailAddressTaken(email)

        now = self._clock()
        user = User(
            username=username,
            unconfirmed_email_address=email,
            email_confirmation_token=new_account_token(),
            password_hash=hash_password(password),
            password_changed_at=now,
        )
        try:
            self.session.add(user)
            await self.session.flush()
            record_account_event(
                self.session, event_type="account_registered", user_id=user.user_id, context=self.context
            )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError(f"The username '{username}' is already taken.", field="username")
        except Exception:
            await self.session.rollback()
            raise
        return user

    async def update_profile(self, user: User, email: str, email_allowed: bool) -> bool:
        """
        Returns True when the address changed and now awaits confirmation.
        The confirmed address keeps working until then.
        """
        email = (email or "").strip()
        if not email:
            raise ValidationError("Email address is required.", field="email")

        requires_confirmation = False
        if normalize_email(email) == normalize_email(user.email_address):
            # back to the confirmed address: forget any pending change
            user.unconfirmed_email_address = None
            user.email_confirmation_token = None
        else:
            if await self.email_taken(email, exclude_user_id=user.user_id):
                raise EmailAddressTaken(email)
            user.unconfirmed_email_address = email
            user.email_confirmation_token = new_account_token()
            requires_confirmation = True

        user.email_allowed = email_allowed
        user.updated_at = self._clock()
        try:
            record_account_event(
                self.session,
                event_type="profile_updated",
                user_id=user.user_id,
                context=self.context,
                details={"email_change_pending": requires_confirmation},
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return requires_confirmation

    async def authenticate(self, username: str, password: str) -> User | None:
        user = await self.find_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            return None
        user.last_login_at = self._clock()
        await self.session.commit()
        return user

    async def change_password(self, username: str, old_password: str, new_password: str) -> bool:
        user = await self.find_by_username(username)
        if user is None or not verify_password(old_password, user.password_hash):
            return False
        now = self._clock()
        try:
            await self._set_password(user, new_password, now)
            record_account_event(
                self.session, event_type="password_changed", user_id=user.user_id, context=self.context
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(user)
        return True

    async def generate_api_key(self, username: str) -> uuid.UUID | None:
        user = await self.find_by_username(username)
        if user is None:
            return None
        user.api_key = new_api_key()
        user.updated_at = self._clock()
        try:
            record_account_event(
                self.session, event_type="api_key_generated", user_id=user.user_id, context=self.context
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return user.api_key

    # ---- password reset tokens ----

    async def issue_reset_token(self, user: User, ttl_minutes: int) -> str:
        """New reset token; every outstanding one for the user is superseded."""
        now = self._clock()
        token_plain = new_account_token()
        try:
            await self.session.execute(
                update(PasswordResetToken)
                .where(
                    PasswordResetToken.user_id == user.user_id,
                    PasswordResetToken.used_at.is_(None),
                    PasswordResetToken.superseded_at.is_(None),
                )
                .values(superseded_at=now)
                .execution_options(synchronize_session=False)
            )
            self.session.add(
                PasswordResetToken(
                    user_id=user.user_id,
                    token_hash=hash_account_token(token_plain),
                    expires_at=now + timedelta(minutes=ttl_minutes),
                    requested_ip=self.context.ip,
                    requested_user_agent=self.context.user_agent,
                )
            )
            record_account_event(
                self.session,
                event_type="password_reset_requested",
                user_id=user.user_id,
                context=self.context,
                details={"ttl_minutes": ttl_minutes},
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return token_plain

    async def consume_reset_token(self, username: str, token: str, new_password: str) -> bool:
        """Compare-and-clear the reset token, then set the password. All or nothing."""
        if not token:
            return False
        user = await self.find_by_username(username)
        if user is None:
            return False

        now = self._clock()
        try:
            res = await self.session.execute(
                update(PasswordResetToken)
                .where(
                    PasswordResetToken.user_id == user.user_id,
                    PasswordResetToken.token_hash == hash_account_token(token),
                    PasswordResetToken.used_at.is_(None),
                    PasswordResetToken.superseded_at.is_(None),
                    PasswordResetToken.expires_at > now,
                )
                .values(used_at=now)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                # nothing matched, nothing changed
                await self.session.commit()
                return False

            await self._set_password(user, new_password, now)
            record_account_event(
                self.session, event_type="password_reset_completed", user_id=user.user_id, context=self.context
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(user)
        return True

    async def _set_password(self, user: User, new_password: str, now: datetime) -> None:
        await self.session.execute(
            update(User)
            .where(User.user_id == user.user_id)
            .values(
                password_hash=hash_password(new_password),
                password_changed_at=now,
                updated_at=now,
                token_version=User.token_version + 1,  # kills outstanding access tokens
            )
            .execution_options(synchronize_session=False)
        )

    # ---- email confirmation tokens ----

    async def issue_confirmation_token(self, user: User) -> str:
        """Idempotent: an outstanding confirmation token is reused."""
        if user.email_confirmation_token:
            return user.email_confirmation_token
        user.email_confirmation_token = new_account_token()
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return user.email_confirmation_token

    async def consume_confirmation_token(self, user: User, token: str) -> bool:
        """Promote the pending address to confirmed and clear the token, atomically."""
        pending = user.unconfirmed_email_address
        if not pending or not tokens_match(token, user.email_confirmation_token):
            return False
        if await self.email_taken(pending, exclude_user_id=user.user_id):
            raise EmailAddressTaken(pending)

        now = self._clock()
        try:
            res = await self.session.execute(
                update(User)
                .where(
                    User.user_id == user.user_id,
                    User.email_confirmation_token == token,
                    User.unconfirmed_email_address == pending,
                )
                .values(
                    email_address=pending,
                    unconfirmed_email_address=None,
                    email_confirmation_token=None,
                    email_confirmed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                await self.session.commit()
                return False
            record_account_event(
                self.session, event_type="email_confirmed", user_id=user.user_id, context=self.context
            )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise EmailAddressTaken(pending)
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(user)
        return True
