"""
Tests for small helpers: money rounding, password hashing, JWT tokens.
"""

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from coursehub.auth.jwt import create_access_token, get_token_from_request, verify_token
from coursehub.utils.money import from_cents, to_cents, to_money
from coursehub.utils.password import hash_password, password_needs_rehash, verify_password


class TestMoney:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("99.995", "100.00"),
            ("0.005", "0.01"),
            ("0.004", "0.00"),
            (0.1, "0.10"),
            (15, "15.00"),
        ],
    )
    def test_to_money_rounds_half_up(self, value, expected):
        assert to_money(value) == Decimal(expected)

    def test_cents(self):
        assert to_cents(Decimal("49.99")) == 4999
        assert to_cents("0.015") == 2
        assert from_cents(10000) == Decimal("100.00")
        assert from_cents(1) == Decimal("0.01")


class TestPassword:
    def test_hash_and_verify(self):
        hashed = hash_password("test_password_123")

        # Hash should be different from original
        assert hashed != "test_password_123"
        assert verify_password("test_password_123", hashed)
        assert not verify_password("wrong_password", hashed)

    def test_fresh_hash_needs_no_rehash(self):
        assert not password_needs_rehash(hash_password("pw"))


class TestJwt:
    def test_round_trip(self):
        token = create_access_token(7, "agent")
        assert verify_token(token) == {"user_id": 7, "role": "agent"}

    def test_expired(self):
        token = create_access_token(7, "agent", expires_delta=timedelta(seconds=-1))
        assert verify_token(token) is None

    def test_garbage(self):
        assert verify_token("not.a.token") is None

    def test_bearer_header_wins_over_cookie(self):
        request = SimpleNamespace(
            headers={"Authorization": "Bearer header-token"},
            cookies={"access_token": "cookie-token"},
        )
        assert get_token_from_request(request) == "header-token"

    def test_cookie_fallback(self):
        request = SimpleNamespace(headers={}, cookies={"access_token": "cookie-token"})
        assert get_token_from_request(request) == "cookie-token"
