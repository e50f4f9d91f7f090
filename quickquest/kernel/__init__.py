"""
Identity Kernel

The foundational layer that owns account state and every rule for moving it:
- Account records and external identity bindings
- Password hashing, single-use tokens and session tokens
- Credential flows (register, login, verify, forgot/reset, resend)
- OAuth account linking

Invariants:
- Single-use tokens are consumed in the same statement as the change they authorize
- A (provider, provider_id) pair resolves to at most one account
- Validation happens before the repository is touched
"""

from quickquest.kernel.models import Account, AccountIdentity, AccountProvider

__all__ = [
    "Account",
    "AccountIdentity",
    "AccountProvider",
]
