"""refund transactions, wallet credits, audit and email logs

Revision ID: 0002_cancellation_ledgers
Revises: 0001_initial
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_cancellation_ledgers"
down_revision = "0001_initial"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "refund_transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("method", sa.String(length=20), nullable=False, server_default="card"),
        sa.Column("fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("reason", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("admin_id", sa.String(length=36), nullable=True),
        sa.Column("stripe_refund_id", sa.String(length=120), nullable=True),
        sa.Column("audit_trail_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_refund_transactions_booking_id", "refund_transactions", ["booking_id"])
    op.create_index("ix_refund_transactions_reason", "refund_transactions", ["reason"])
    op.create_index("ix_refund_transactions_status", "refund_transactions", ["status"])

    op.create_table(
        "wallet_credits",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("parent_id", sa.String(length=36), nullable=False),
        sa.Column("provider_id", sa.String(length=36), nullable=True),
        sa.Column("booking_id", sa.String(length=36), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("used_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("description", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("transaction_id", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("amount >= 0", name="ck_wallet_credits_amount_non_negative"),
        sa.CheckConstraint("used_amount <= amount", name="ck_wallet_credits_used_within_amount"),
    )
    op.create_index("ix_wallet_credits_parent_id", "wallet_credits", ["parent_id"])
    op.create_index("ix_wallet_credits_provider_id", "wallet_credits", ["provider_id"])
    op.create_index("ix_wallet_credits_booking_id", "wallet_credits", ["booking_id"])
    op.create_index("ix_wallet_credits_expiry_date", "wallet_credits", ["expiry_date"])
    op.create_index("ix_wallet_credits_status", "wallet_credits", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_user_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("to_email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="queued"),
        sa.Column("related_booking_id", sa.String(length=36), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])
    op.create_index("ix_email_logs_related_booking_id", "email_logs", ["related_booking_id"])

def downgrade() -> None:
    op.drop_table("email_logs")
    op.drop_table("audit_logs")
    op.drop_table("wallet_credits")
    op.drop_table("refund_transactions")
