"""
Tests for webhook verification in the real StripeGateway.

Signatures are computed locally with the test secret, so nothing reaches Stripe.
"""

import hashlib
import hmac
import json
import time

import pytest

from coursehub.services.exceptions import SignatureVerificationFailed, ValidationError
from coursehub.services.stripe_gateway import StripeGateway

SECRET = "whsec_test"


def sign(payload: str, secret: str = SECRET) -> str:
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def stripe_gateway():
    return StripeGateway(api_key="sk_test", webhook_secret=SECRET, currency="usd")


# ── construct_event ─────────────────────────────────────


class TestConstructEvent:
    def test_valid_signature(self, stripe_gateway):
        payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"})

        event = stripe_gateway.construct_event(payload.encode("utf-8"), sign(payload))

        assert event["id"] == "evt_1"

    def test_forged_signature(self, stripe_gateway):
        payload = json.dumps({"id": "evt_1"})

        with pytest.raises(SignatureVerificationFailed):
            stripe_gateway.construct_event(payload.encode("utf-8"), sign(payload, "whsec_other"))

    def test_missing_header(self, stripe_gateway):
        with pytest.raises(SignatureVerificationFailed):
            stripe_gateway.construct_event(b"{}", None)

    def test_missing_secret(self):
        gateway = StripeGateway(api_key="sk_test", webhook_secret="", currency="usd")

        with pytest.raises(SignatureVerificationFailed):
            gateway.construct_event(b"{}", "t=1,v1=deadbeef")

    def test_body_not_utf8(self, stripe_gateway):
        with pytest.raises(SignatureVerificationFailed):
            stripe_gateway.construct_event(b"\xff\xfe{not utf8", "t=1,v1=deadbeef")

    def test_signed_body_not_json(self, stripe_gateway):
        payload = "not json"

        with pytest.raises(ValidationError):
            stripe_gateway.construct_event(payload.encode("utf-8"), sign(payload))

    def test_signed_body_not_an_object(self, stripe_gateway):
        payload = "[1, 2]"

        with pytest.raises(ValidationError):
            stripe_gateway.construct_event(payload.encode("utf-8"), sign(payload))
