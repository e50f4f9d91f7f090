"""Unit tests for password hashing."""

import pytest

from quickquest.kernel.identity.password import BCRYPT_MAX_BYTES, PasswordHasher


class TestPasswordHasher:
    """Tests for PasswordHasher."""

    def test_hash_creates_different_hashes(self, hasher):
        """Same password should create different hashes (due to salt)."""
        password = "TestPassword123"
        hash1 = hasher.hash(password)
        hash2 = hasher.hash(password)

        assert hash1 != hash2
        assert hash1.startswith("$2b$04$")  # bcrypt prefix + cost

    def test_hash_never_equals_plaintext(self, hasher):
        password = "Passw0rd"
        assert hasher.hash(password) != password

    def test_verify_correct_password(self, hasher):
        """Correct password should verify successfully."""
        password = "TestPassword123"
        hashed = hasher.hash(password)

        assert hasher.verify(password, hashed) is True

    def test_verify_wrong_password(self, hasher):
        """Wrong password should fail verification."""
        hashed = hasher.hash("TestPassword123")

        assert hasher.verify("WrongPassword", hashed) is False

    def test_malformed_hash_is_a_mismatch(self, hasher):
        assert hasher.verify("TestPassword123", "not-a-bcrypt-hash") is False

    def test_long_passwords_truncate_consistently(self, hasher):
        """Bytes past the bcrypt limit are ignored by both hash and verify."""
        base = "A1" + "a" * (BCRYPT_MAX_BYTES - 2)
        hashed = hasher.hash(base + "tail-one")

        assert hasher.verify(base + "tail-two", hashed) is True

    def test_needs_rehash_detects_cost_change(self, hasher):
        hashed = hasher.hash("TestPassword123")

        assert hasher.needs_rehash(hashed) is False
        assert PasswordHasher(rounds=5).needs_rehash(hashed) is True
        assert hasher.needs_rehash("garbage") is True

    def test_rejects_out_of_range_rounds(self):
        with pytest.raises(ValueError):
            PasswordHasher(rounds=3)
        with pytest.raises(ValueError):
            PasswordHasher(rounds=32)

    def test_burn_verify_never_succeeds(self, hasher):
        assert hasher.burn_verify("quickquest-timing-equalizer") is False

    @pytest.mark.asyncio
    async def test_async_wrappers(self, hasher):
        hashed = await hasher.hash_async("TestPassword123")

        assert await hasher.verify_async("TestPassword123", hashed) is True
        assert await hasher.verify_async("nope", hashed) is False
        assert await hasher.burn_verify_async("TestPassword123") is False
