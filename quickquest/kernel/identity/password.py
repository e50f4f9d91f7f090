"""
Password hashing utilities using bcrypt.
"""

import asyncio
from typing import Optional

import bcrypt

# Number of rounds for bcrypt hashing (12 is ~100-250 ms on commodity hardware)
BCRYPT_ROUNDS = 12

# bcrypt only uses the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """
    Password hashing service.

    The cost factor is fixed at construction. ``hash_async``/``verify_async``
    run bcrypt on the default thread pool so a slow hash never blocks the
    event loop.
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self.rounds = rounds
        self._dummy_hash: Optional[str] = None

    @staticmethod
    def _truncate_password(password: str) -> bytes:
        """Truncate password to 72 bytes (bcrypt limit) and encode."""
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        pwd_bytes = self._truncate_password(password)
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(pwd_bytes, salt).decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        ``bcrypt.checkpw`` compares in constant time. A malformed stored
        hash is treated as a mismatch.

        Args:
            plain_password: Plain text password to verify
            hashed_password: Stored hashed password

        Returns:
            True if password matches, False otherwise
        """
        try:
            pwd_bytes = self._truncate_password(plain_password)
            return bcrypt.checkpw(pwd_bytes, hashed_password.encode("utf-8"))
        except ValueError:
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash was produced with a different cost factor.

        Format: $2b$XX$... where XX is the rounds
        """
        parts = hashed_password.split("$")
        if len(parts) < 4 or not parts[2].isdigit():
            return True
        return int(parts[2]) != self.rounds

    @property
    def dummy_hash(self) -> str:
        """A throwaway hash at the current cost, used to equalize login timing."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("quickquest-timing-equalizer")
        return self._dummy_hash

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, plain_password: str, hashed_password: str) -> bool:
        return await asyncio.to_thread(self.verify, plain_password, hashed_password)

    def burn_verify(self, plain_password: str) -> bool:
        """Spend the same time as a real verification when there is no hash to check."""
        self.verify(plain_password, self.dummy_hash)
        return False

    async def burn_verify_async(self, plain_password: str) -> bool:
        return await asyncio.to_thread(self.burn_verify, plain_password)

