"""
Purchase confirmation email.

Sent after the payment transaction commits. Failures are logged and never
propagate: the payment is already applied.
"""

import asyncio
import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.config import settings
from coursehub.db import get_db_context
from coursehub.models import Course, Payment, User
from coursehub.services.receipts import render_receipt

logger = logging.getLogger(__name__)


class EmailSender:
    """SMTP sender for transactional mail."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        from_email: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_username

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)

    def send(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        attachment: Optional[bytes] = None,
        attachment_name: str = "receipt.pdf",
    ) -> bool:
        """
        Send one email. Returns True on success, False otherwise.
        """
        if not self.configured:
            logger.warning("Email not configured, SMTP credentials missing")
            return False

        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email

        body = MIMEMultipart("alternative")
        if text_content:
            body.attach(MIMEText(text_content, "plain"))
        body.attach(MIMEText(html_content, "html"))
        msg.attach(body)

        if attachment:
            part = MIMEApplication(attachment, _subtype="pdf")
            part.add_header("Content-Disposition", "attachment", filename=attachment_name)
            msg.attach(part)

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.sendmail(self.from_email, to_email, msg.as_string())
        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP authentication failed, check email credentials")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

        logger.info(f"Email sent to {to_email}")
        return True


def get_email_sender() -> EmailSender:
    return EmailSender(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_username=settings.smtp_username,
        smtp_password=settings.smtp_password,
        from_email=settings.email_from,
    )


def send_purchase_confirmation(
    sender: EmailSender,
    user: User,
    course: Course,
    receipt: Optional[bytes],
    payment: Optional[Payment] = None,
) -> bool:
    name = user.first_name or user.username
    amount = payment.amount if payment else course.price
    course_url = f"{settings.frontend_url}/courses/{course.id}"

    html = (
        f"<p>Hi {name},</p>"
        f"<p>Thank you for purchasing <b>{course.title}</b> ({amount:.2f}).</p>"
        f"<p>You can start learning right away: <a href=\"{course_url}\">{course_url}</a></p>"
        f"<p>Your receipt is attached.</p>"
    )
    text = (
        f"Hi {name},\n\n"
        f"Thank you for purchasing {course.title} ({amount:.2f}).\n"
        f"Start learning: {course_url}\n"
    )
    return sender.send(
        to_email=user.email,
        subject=f"Your purchase: {course.title}",
        html_content=html,
        text_content=text,
        attachment=receipt,
    )


async def deliver_purchase_confirmation(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    payment_id: Optional[int] = None,
    sender: Optional[EmailSender] = None,
) -> bool:
    """
    Render the receipt and email it. Never raises.

    Meant to run as a background task once the payment is committed.
    """
    sender = sender or get_email_sender()
    try:
        user = await db.get(User, user_id)
        course = await db.get(Course, course_id)
        payment = await db.get(Payment, payment_id) if payment_id else None
        if not user or not course:
            logger.warning(
                f"Purchase confirmation skipped: user {user_id} or course {course_id} missing"
            )
            return False

        try:
            receipt = render_receipt(user, course, payment)
        except Exception as e:
            logger.error(f"Receipt generation failed for payment {payment_id}: {e}")
            receipt = None

        return await asyncio.to_thread(
            send_purchase_confirmation, sender, user, course, receipt, payment
        )
    except Exception as e:
        logger.error(f"Purchase confirmation for payment {payment_id} failed: {e}")
        return False


async def purchase_confirmation_task(
    user_id: int,
    course_id: int,
    payment_id: Optional[int] = None,
) -> None:
    """Background task entry point with its own session."""
    try:
        async with get_db_context() as db:
            await deliver_purchase_confirmation(db, user_id, course_id, payment_id)
    except Exception as e:
        logger.error(f"Purchase confirmation task for payment {payment_id} failed: {e}")
