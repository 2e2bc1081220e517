"""initial affiliate ledger schema

Revision ID: 0a1f3c5e7b90
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0a1f3c5e7b90"
down_revision = None
branch_labels = None
depends_on = None


_ENUMS = {
    "affiliate_kind": ("PARTNER", "RESELLER"),
    "affiliate_status": ("PENDING", "APPROVED", "ACTIVE", "SUSPENDED", "REJECTED"),
    "payout_method": ("BANK", "BKASH", "STRIPE", "PAYPAL"),
    "commission_type": ("PERCENT", "FIXED"),
    "revenue_source_type": ("MARKETPLACE_ITEM", "TENANT"),
    "assignment_status": ("ACTIVE", "PAUSED", "ENDED"),
    "invoice_status": ("DRAFT", "OPEN", "PAID", "VOID"),
    "ledger_entry_type": ("EARNED", "ADJUSTMENT", "PAYOUT"),
    "payout_status": ("OWED", "APPROVED", "PAID", "VOID"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*_ENUMS[name], name=name)


def _existing_enum(name: str) -> postgresql.ENUM:
    # Type already created by an earlier column in this migration.
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "marketplace_items",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "affiliates",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("kind", _enum("affiliate_kind"), nullable=False),
        sa.Column("owner_id", sa.UUID(), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=False),
        sa.Column("country", sa.String(length=100), nullable=False),
        sa.Column("payout_method", _enum("payout_method"), nullable=True),
        sa.Column("payout_details", sa.JSON(), nullable=True),
        sa.Column("status", _enum("affiliate_status"), nullable=False),
        sa.Column("status_reason", sa.String(length=500), nullable=True),
        sa.Column("default_commission_type", _enum("commission_type"), nullable=False),
        sa.Column("default_commission_value", sa.Integer(), nullable=False),
        sa.Column("ledger_revision", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", "owner_id", name="uq_affiliate_owner"),
    )
    op.create_index(op.f("ix_affiliates_status"), "affiliates", ["status"], unique=False)

    op.create_table(
        "commission_assignments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("affiliate_id", sa.UUID(), nullable=False),
        sa.Column("source_type", _enum("revenue_source_type"), nullable=False),
        sa.Column("source_id", sa.UUID(), nullable=False),
        sa.Column("commission_type", _existing_enum("commission_type"), nullable=False),
        sa.Column("commission_value", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("status", _enum("assignment_status"), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("supersedes_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.ForeignKeyConstraint(["supersedes_id"], ["commission_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_commission_assignments_affiliate_id"), "commission_assignments", ["affiliate_id"], unique=False
    )
    op.create_index(
        "uq_commission_assignment_open_source",
        "commission_assignments",
        ["source_type", "source_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'ENDED'"),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("tenant_id", sa.UUID(), nullable=False),
        sa.Column("marketplace_item_id", sa.UUID(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", _enum("invoice_status"), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("affiliate_share_cents", sa.Integer(), nullable=True),
        sa.Column("platform_revenue_cents", sa.Integer(), nullable=True),
        sa.Column("commission_assignment_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["marketplace_item_id"], ["marketplace_items.id"]),
        sa.ForeignKeyConstraint(["commission_assignment_id"], ["commission_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_invoices_tenant_id"), "invoices", ["tenant_id"], unique=False)
    op.create_index(op.f("ix_invoices_paid_at"), "invoices", ["paid_at"], unique=False)

    op.create_table(
        "payouts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("affiliate_id", sa.UUID(), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("gross_revenue_cents", sa.Integer(), nullable=False),
        sa.Column("commission_earned_cents", sa.Integer(), nullable=False),
        sa.Column("adjustments_cents", sa.Integer(), nullable=False),
        sa.Column("net_payable_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("entry_count", sa.Integer(), nullable=False),
        sa.Column("status", _enum("payout_status"), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=200), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_method", _existing_enum("payout_method"), nullable=True),
        sa.Column("payout_reference", sa.String(length=200), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_payouts_affiliate_id"), "payouts", ["affiliate_id"], unique=False)
    op.create_index(
        "uq_payout_outstanding_per_affiliate",
        "payouts",
        ["affiliate_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('OWED', 'APPROVED')"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("affiliate_id", sa.UUID(), nullable=False),
        sa.Column("entry_type", _enum("ledger_entry_type"), nullable=False),
        sa.Column("invoice_id", sa.UUID(), nullable=True),
        sa.Column("assignment_id", sa.UUID(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("gross_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("commission_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("net_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor", sa.String(length=200), nullable=False),
        sa.Column("reason", sa.String(length=500), nullable=True),
        sa.Column("payout_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.ForeignKeyConstraint(["assignment_id"], ["commission_assignments.id"]),
        sa.ForeignKeyConstraint(["payout_id"], ["payouts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_ledger_entries_payout_id"), "ledger_entries", ["payout_id"], unique=False)
    op.create_index(
        "ix_ledger_entries_affiliate_occurred_at", "ledger_entries", ["affiliate_id", "occurred_at"], unique=False
    )
    op.create_index(
        "uq_ledger_earned_per_invoice",
        "ledger_entries",
        ["affiliate_id", "invoice_id"],
        unique=True,
        postgresql_where=sa.text("entry_type = 'EARNED'"),
    )
    op.create_index(
        "uq_ledger_payout_per_payout",
        "ledger_entries",
        ["payout_id"],
        unique=True,
        postgresql_where=sa.text("entry_type = 'PAYOUT'"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("actor", sa.String(length=200), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.UUID(), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "job_locks",
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("locked_by", sa.String(length=200), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_run_summary", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("name"),
    )


def downgrade() -> None:
    op.drop_table("job_locks")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("ledger_entries")
    op.drop_table("payouts")
    op.drop_table("invoices")
    op.drop_table("commission_assignments")
    op.drop_table("affiliates")
    op.drop_table("marketplace_items")
    op.drop_table("tenants")

    bind = op.get_bind()
    for name in _ENUMS:
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
