"""Initial database schema

Revision ID: 000_initial_schema
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "000_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum types shared by several tables are created once up front
ENUMS = {
    "userrole": ("user", "agent", "admin"),
    "paymentstatus": ("pending", "completed", "failed", "refunded"),
    "commissionstatus": ("pending", "paid", "cancelled"),
    "payoutmethod": ("bank_transfer", "stripe_payout", "paypal", "manual"),
    "payoutstatus": ("pending", "completed", "failed"),
    "payoutrequeststatus": ("pending", "approved", "rejected", "completed"),
    "auditaction": (
        "login",
        "logout",
        "refund_payment",
        "update_commission",
        "bulk_payout",
        "manual_payout",
        "create_payout_request",
        "approve_payout_request",
        "reject_payout_request",
        "complete_payout_request",
        "apply_agent",
        "approve_agent",
        "update_bank_details",
        "verify_bank_details",
        "reconcile_ledger",
    ),
}


def enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create all initial tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("role", enum("userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("referral_code", sa.String(16), nullable=False),
        sa.Column("referred_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active_agent", sa.Boolean(), nullable=False),
        sa.Column("agent_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("commission_rate", sa.Numeric(5, 2), server_default="10", nullable=False),
        sa.Column("total_referrals", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_commission", sa.Numeric(12, 2), server_default="0", nullable=False),
        *timestamps(),
        sa.CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_users_commission_rate_range",
        ),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_referral_code", "users", ["referral_code"], unique=True)
    op.create_index("ix_users_referred_by_id", "users", ["referred_by_id"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    # Bank details
    op.create_table(
        "bank_details",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False),
        sa.Column("account_holder_name", sa.String(200), nullable=True),
        sa.Column("account_number", sa.String(64), nullable=True),
        sa.Column("bank_name", sa.String(200), nullable=True),
        sa.Column("routing_number", sa.String(64), nullable=True),
        sa.Column("swift_code", sa.String(32), nullable=True),
        sa.Column("iban", sa.String(64), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_bank_details_created_at", "bank_details", ["created_at"])

    # Courses
    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_courses_created_at", "courses", ["created_at"])

    op.create_table(
        "enrollments",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "agent_referrals",
        sa.Column("agent_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("referral_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "course_purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("access_expires", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
        sa.UniqueConstraint("user_id", "course_id", name="uq_course_purchase_user_course"),
    )
    op.create_index("ix_course_purchases_user_id", "course_purchases", ["user_id"])
    op.create_index("ix_course_purchases_created_at", "course_purchases", ["created_at"])

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), server_default="usd", nullable=False),
        sa.Column("payment_method", sa.String(30), server_default="stripe", nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=False),
        sa.Column("status", enum("paymentstatus"), nullable=False),
        sa.Column("referral_agent_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("commission_status", enum("commissionstatus"), nullable=True),
        sa.Column("refund_id", sa.String(255), nullable=True),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_payments_transaction_id", "payments", ["transaction_id"], unique=True)
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index("ix_payments_course_id", "payments", ["course_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_referral_agent_id", "payments", ["referral_agent_id"])
    op.create_index("ix_payments_created_at", "payments", ["created_at"])

    # Payouts
    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("agent_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_commissions_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", enum("payoutstatus"), nullable=False),
        sa.Column("payment_method", enum("payoutmethod"), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("processed_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_payouts_agent_id", "payouts", ["agent_id"])
    op.create_index("ix_payouts_status", "payouts", ["status"])
    op.create_index("ix_payouts_created_at", "payouts", ["created_at"])

    # Commissions
    op.create_table(
        "commissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("agent_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("referral_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("original_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", enum("commissionstatus"), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_method", enum("payoutmethod"), nullable=True),
        sa.Column("payout_reference", sa.String(255), nullable=True),
        sa.Column("payout_notes", sa.Text(), nullable=True),
        sa.Column("payout_id", sa.Integer(), sa.ForeignKey("payouts.id"), nullable=True),
        sa.Column("processed_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
        sa.UniqueConstraint("payment_id", "agent_id", name="uq_commission_payment_agent"),
    )
    op.create_index("ix_commissions_agent_id", "commissions", ["agent_id"])
    op.create_index("ix_commissions_referral_id", "commissions", ["referral_id"])
    op.create_index("ix_commissions_payment_id", "commissions", ["payment_id"])
    op.create_index("ix_commissions_status", "commissions", ["status"])
    op.create_index("ix_commissions_payout_id", "commissions", ["payout_id"])
    op.create_index("ix_commissions_created_at", "commissions", ["created_at"])

    # Payout requests
    op.create_table(
        "payout_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("agent_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", enum("payoutrequeststatus"), nullable=False),
        sa.Column("payment_method", enum("payoutmethod"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("payout_reference", sa.String(255), nullable=True),
        sa.Column("processed_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_id", sa.Integer(), sa.ForeignKey("payouts.id"), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_payout_requests_agent_id", "payout_requests", ["agent_id"])
    op.create_index("ix_payout_requests_status", "payout_requests", ["status"])
    op.create_index("ix_payout_requests_created_at", "payout_requests", ["created_at"])

    op.create_table(
        "payout_request_commissions",
        sa.Column(
            "payout_request_id",
            sa.Integer(),
            sa.ForeignKey("payout_requests.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "commission_id",
            sa.Integer(),
            sa.ForeignKey("commissions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # Audit logs
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", enum("auditaction"), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("action_metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("audit_logs")
    op.drop_table("payout_request_commissions")
    op.drop_table("payout_requests")
    op.drop_table("commissions")
    op.drop_table("payouts")
    op.drop_table("payments")
    op.drop_table("course_purchases")
    op.drop_table("agent_referrals")
    op.drop_table("enrollments")
    op.drop_table("courses")
    op.drop_table("bank_details")
    op.drop_table("users")

    # Drop enums
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
