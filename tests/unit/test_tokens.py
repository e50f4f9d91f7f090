"""Unit tests for single-use token minting."""

import hashlib
from datetime import timedelta

import pytest

from quickquest.kernel.identity.tokens import (
    NUMERIC_CODE_DIGITS,
    TokenMinter,
    TokenShape,
    digest_token,
)


class TestTokenMinter:

    def test_opaque_token_is_64_hex_chars(self, minter):
        minted = minter.issue(timedelta(hours=24))

        assert len(minted.token) == 64
        int(minted.token, 16)

    def test_numeric_code_is_six_digits(self, minter):
        for _ in range(50):
            minted = minter.issue(timedelta(hours=1), TokenShape.NUMERIC_CODE)
            assert len(minted.token) == NUMERIC_CODE_DIGITS
            assert minted.token.isdigit()

    def test_expiry_is_now_plus_ttl(self, minter, clock):
        minted = minter.issue(timedelta(minutes=90))

        assert minted.expires_at == clock() + timedelta(minutes=90)

    def test_tokens_are_unique(self, minter):
        tokens = {minter.issue(timedelta(hours=1)).token for _ in range(100)}
        assert len(tokens) == 100

    def test_rejects_non_positive_ttl(self, minter):
        with pytest.raises(ValueError):
            minter.issue(timedelta(0))

    def test_digest_is_sha256_hex(self, minter):
        minted = minter.issue(timedelta(hours=1))

        assert minted.digest == hashlib.sha256(minted.token.encode()).hexdigest()
        assert minted.digest == digest_token(minted.token)
        assert minted.digest != minted.token

    def test_default_clock_is_utc(self):
        assert TokenMinter().now().utcoffset() == timedelta(0)
