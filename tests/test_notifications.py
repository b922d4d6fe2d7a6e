"""
Tests for purchase confirmation: PDF receipt and SMTP email.

SMTP is replaced by a MagicMock; nothing leaves the process.
"""

import smtplib
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from coursehub.models import Course, Payment, User
from coursehub.services import notifications
from coursehub.services.notifications import (
    EmailSender,
    deliver_purchase_confirmation,
    send_purchase_confirmation,
)
from coursehub.services.receipts import render_receipt


@pytest.fixture
def smtp(monkeypatch):
    smtp_cls = MagicMock()
    monkeypatch.setattr(notifications.smtplib, "SMTP", smtp_cls)
    return smtp_cls


@pytest.fixture
def sender():
    return EmailSender(
        smtp_host="smtp.example.com",
        smtp_username="mailer@example.com",
        smtp_password="secret",
        from_email="courses@example.com",
    )


def _buyer():
    return User(username="student", email="student@example.com", first_name="Sam")


def _course():
    return Course(id=3, title="Async Python", price=Decimal("100.00"))


# ── receipts ────────────────────────────────────────────


class TestReceipt:
    def test_pdf_with_payment(self):
        payment = Payment(
            transaction_id="pi_123",
            amount=Decimal("100.00"),
            currency="usd",
            created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )

        pdf = render_receipt(_buyer(), _course(), payment)

        assert pdf.startswith(b"%PDF")

    def test_pdf_without_payment(self):
        pdf = render_receipt(_buyer(), _course())

        assert pdf.startswith(b"%PDF")


# ── email ───────────────────────────────────────────────


class TestEmailSender:
    def test_not_configured(self, smtp):
        sender = EmailSender(smtp_host="")

        assert sender.send("a@example.com", "Hi", "<p>Hi</p>") is False
        smtp.assert_not_called()

    def test_sends_with_attachment(self, smtp, sender):
        ok = send_purchase_confirmation(sender, _buyer(), _course(), b"%PDF-fake")

        assert ok is True
        server = smtp.return_value.__enter__.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer@example.com", "secret")
        from_addr, to_addr, message = server.sendmail.call_args[0]
        assert from_addr == "courses@example.com"
        assert to_addr == "student@example.com"
        assert "Your purchase: Async Python" in message
        assert "receipt.pdf" in message

    def test_auth_failure_returns_false(self, smtp, sender):
        server = smtp.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        assert sender.send("a@example.com", "Hi", "<p>Hi</p>") is False

    def test_connection_error_returns_false(self, smtp, sender):
        smtp.side_effect = OSError("connection refused")

        assert sender.send("a@example.com", "Hi", "<p>Hi</p>") is False


class TestDeliverPurchaseConfirmation:
    @pytest.mark.asyncio
    async def test_delivers(self, db_session, smtp, sender, plain_user, course):
        ok = await deliver_purchase_confirmation(
            db_session, plain_user.id, course.id, sender=sender
        )

        assert ok is True
        server = smtp.return_value.__enter__.return_value
        assert server.sendmail.call_args[0][1] == plain_user.email

    @pytest.mark.asyncio
    async def test_missing_user(self, db_session, smtp, sender, course):
        ok = await deliver_purchase_confirmation(db_session, 404, course.id, sender=sender)

        assert ok is False
        smtp.assert_not_called()

    @pytest.mark.asyncio
    async def test_receipt_failure_still_sends(
        self, db_session, smtp, sender, plain_user, course, monkeypatch
    ):
        def broken_receipt(*args, **kwargs):
            raise RuntimeError("font missing")

        monkeypatch.setattr(notifications, "render_receipt", broken_receipt)

        ok = await deliver_purchase_confirmation(
            db_session, plain_user.id, course.id, sender=sender
        )

        assert ok is True
        message = smtp.return_value.__enter__.return_value.sendmail.call_args[0][2]
        assert "receipt.pdf" not in message
