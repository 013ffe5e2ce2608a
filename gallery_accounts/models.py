from __future__ import annotations
from datetime import datetime
import uuid
from typing import Optional

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    Boolean, Column, Text, TIMESTAMP, ForeignKey, func, JSON, String, Index, Integer, Table, Uuid,
)

class Base(DeclarativeBase):
    pass


package_owners = Table(
    "package_registration_owners",
    Base.metadata,
    Column("registration_key", ForeignKey("package_registrations.registration_key", ondelete="CASCADE"),
           primary_key=True),
    Column("user_id", ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True),
)

curated_feed_managers = Table(
    "curated_feed_managers",
    Base.metadata,
    Column("curated_feed_key", ForeignKey("curated_feeds.curated_feed_key", ondelete="CASCADE"),
           primary_key=True),
    Column("user_id", ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True),
)


# ---- USERS ----
class User(Base):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # confirmed address; stays NULL until the first confirmation succeeds
    email_address: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    unconfirmed_email_address: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    email_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_confirmation_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    email_confirmed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    api_key: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, default=uuid.uuid4)
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True),
                                                 server_default=func.now(),
                                                 nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True),
                                                 server_default=func.now(),
                                                 nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    packages: Mapped[list["PackageRegistration"]] = relationship(
        secondary=package_owners, back_populates="owners"
    )
    curated_feeds: Mapped[list["CuratedFeed"]] = relationship(
        secondary=curated_feed_managers, back_populates="managers"
    )

    @property
    def confirmed(self) -> bool:
        return bool(self.email_address)


# confirmed addresses are unique regardless of case
Index("uq_users_email_lower", func.lower(User.email_address), unique=True)
Index("idx_users_unconfirmed_email", User.unconfirmed_email_address)


# ---- PASSWORD RESET TOKENS ----
class PasswordResetToken(Base):
    """Stores *hashed* password reset tokens.

    - Never store the plain token.
    - Single-use via used_at.
    - At most one outstanding per user: issuing a new one sets superseded_at
      on the others.
    - Time-bound via expires_at.
    """

    __tablename__ = "password_reset_tokens"

    token_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    superseded_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    requested_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    requested_user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


Index("idx_password_reset_tokens_user_id", PasswordResetToken.user_id)
Index("idx_password_reset_tokens_expires_at", PasswordResetToken.expires_at)


# ---- ACCOUNT EVENTS (audit) ----
class AccountEvent(Base):
    __tablename__ = "account_events"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    occurred_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    device: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


Index("idx_account_events_occurred_at", AccountEvent.occurred_at)
Index("idx_account_events_user_id", AccountEvent.user_id)


# ---- PACKAGES ----
class PackageRegistration(Base):
    __tablename__ = "package_registrations"

    registration_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    owners: Mapped[list[User]] = relationship(secondary=package_owners, back_populates="packages")
    versions: Mapped[list["Package"]] = relationship(back_populates="registration")


class Package(Base):
    __tablename__ = "packages"

    package_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_key: Mapped[int] = mapped_column(
        ForeignKey("package_registrations.registration_key", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[str] = mapped_column(String(64), nullable=False)
    listed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    registration: Mapped[PackageRegistration] = relationship(back_populates="versions")


# ---- CURATED FEEDS ----
class CuratedFeed(Base):
    __tablename__ = "curated_feeds"

    curated_feed_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    managers: Mapped[list[User]] = relationship(secondary=curated_feed_managers, back_populates="curated_feeds")
