"""
Kernel Data Models

Core SQLAlchemy models for account identity.
"""

from quickquest.kernel.models.base import Base, TimestampMixin, generate_uuid
from quickquest.kernel.models.account import Account, AccountIdentity, AccountProvider

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    # Account
    "Account",
    "AccountIdentity",
    "AccountProvider",
]
