"""
Account model for identity management.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickquest.kernel.models.base import Base, TimestampMixin, generate_uuid


class AccountProvider(str, Enum):
    """How an account was first created."""
    LOCAL = "local"
    GOOGLE = "google"
    GITHUB = "github"


class Account(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "accounts"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    username: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        index=True,
        nullable=False,
    )
    # Absent for accounts created purely through an OAuth provider
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    provider: Mapped[str] = mapped_column(
        String(20),
        default=AccountProvider.LOCAL.value,
        nullable=False,
    )

    # Profile
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Entitlements
    is_pro: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Verification state (SHA-256 digest of the emailed token)
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    email_verification_token: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    email_verification_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Recovery state (SHA-256 digest of the emailed reset code)
    password_reset_token: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    password_reset_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    identities: Mapped[List["AccountIdentity"]] = relationship(
        "AccountIdentity",
        back_populates="account",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.username

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def provider_id_for(self, provider: str) -> Optional[str]:
        """Return the bound subject id for ``provider``, if any."""
        for identity in self.identities:
            if identity.provider == provider:
                return identity.provider_id
        return None

    def __repr__(self) -> str:
        return f"<Account {self.username}>"


class AccountIdentity(Base):
    """Binding of an external identity provider subject to an account."""

    __tablename__ = "account_identities"
    __table_args__ = (
        UniqueConstraint("provider", "provider_id", name="uq_account_identities_provider_subject"),
        UniqueConstraint("account_id", "provider", name="uq_account_identities_account_provider"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    account: Mapped["Account"] = relationship("Account", back_populates="identities")

    def __repr__(self) -> str:
        return f"<AccountIdentity {self.provider}:{self.provider_id}>"
