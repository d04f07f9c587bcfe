"""Initial ledger, profile and review schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-02-09 10:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_ID = sa.String(36)
_ENUM = sa.String(32)


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", _ID, nullable=False),
        sa.Column("user_id", _ID, nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        sa.Column("duplicate_flag", sa.String(32), nullable=True),
        sa.Column("duplicate_case_id", _ID, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "orders",
        sa.Column("id", _ID, nullable=False),
        sa.Column("order_number", sa.String(), nullable=False),
        sa.Column("profile_id", _ID, nullable=True),
        sa.Column("user_id", _ID, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["profile_id"], ["profiles.id"], name="fk_orders_orders_profile_id_profiles"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
    )

    op.create_table(
        "card_profile_links",
        sa.Column("id", _ID, nullable=False),
        sa.Column("last4", sa.String(4), nullable=False),
        sa.Column("brand", sa.String(32), nullable=False),
        sa.Column("profile_id", _ID, nullable=False),
        sa.Column("card_holder", sa.String(), nullable=True),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["profile_id"],
            ["profiles.id"],
            name="fk_card_profile_links_card_profile_links_profile_id_profiles",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_card_profile_links"),
        sa.UniqueConstraint(
            "last4",
            "brand",
            "profile_id",
            name="uq_card_profile_links_card_profile_links_last4",
        ),
    )
    op.create_index("ix_card_profile_links_mask", "card_profile_links", ["last4", "brand"])

    op.create_table(
        "payment_reconcile_queue",
        sa.Column("id", _ID, nullable=False),
        sa.Column("provider_uid", sa.String(), nullable=True),
        sa.Column("tracking_id", sa.String(), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("transaction_type", sa.String(64), nullable=False),
        sa.Column("provider", _ENUM, nullable=False),
        sa.Column("card_last4", sa.String(4), nullable=True),
        sa.Column("card_brand", sa.String(32), nullable=True),
        sa.Column("card_holder", sa.String(), nullable=True),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("product_name", sa.String(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("matched_order_id", _ID, nullable=True),
        sa.Column("matched_profile_id", _ID, nullable=True),
        sa.Column("linked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["matched_order_id"],
            ["orders.id"],
            name="fk_payment_reconcile_queue_payment_reconcile_queue_matched_order_id_orders",
        ),
        sa.ForeignKeyConstraint(
            ["matched_profile_id"],
            ["profiles.id"],
            name="fk_payment_reconcile_queue_payment_reconcile_queue_matched_profile_id_profiles",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_payment_reconcile_queue"),
    )
    op.create_index(
        "ix_payment_reconcile_queue_provider_uid", "payment_reconcile_queue", ["provider_uid"]
    )
    op.create_index(
        "ix_payment_reconcile_queue_scan",
        "payment_reconcile_queue",
        ["status", "paid_at", "id"],
    )

    op.create_table(
        "payments",
        sa.Column("id", _ID, nullable=False),
        sa.Column("stable_uid", sa.String(), nullable=False),
        sa.Column("uid_source", _ENUM, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("transaction_type", sa.String(64), nullable=False),
        sa.Column("provider", _ENUM, nullable=False),
        sa.Column("order_id", _ID, nullable=True),
        sa.Column("profile_id", _ID, nullable=True),
        sa.Column("user_id", _ID, nullable=True),
        sa.Column("card_last4", sa.String(4), nullable=True),
        sa.Column("card_brand", sa.String(32), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["order_id"], ["orders.id"], name="fk_payments_payments_order_id_orders"
        ),
        sa.ForeignKeyConstraint(
            ["profile_id"], ["profiles.id"], name="fk_payments_payments_profile_id_profiles"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
        sa.UniqueConstraint("stable_uid", name="uq_payments_payments_stable_uid"),
    )
    op.create_index("ix_payments_provider_paid_at", "payments", ["provider", "paid_at"])

    op.create_table(
        "duplicate_cases",
        sa.Column("id", _ID, nullable=False),
        sa.Column("case_type", _ENUM, nullable=False),
        sa.Column("identity_key", sa.String(), nullable=False),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("profile_count", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_duplicate_cases"),
    )
    op.create_index(
        "ix_duplicate_cases_identity", "duplicate_cases", ["case_type", "identity_key"]
    )

    op.create_table(
        "duplicate_case_members",
        sa.Column("id", _ID, nullable=False),
        sa.Column("case_id", _ID, nullable=False),
        sa.Column("profile_id", _ID, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["case_id"],
            ["duplicate_cases.id"],
            name="fk_duplicate_case_members_duplicate_case_members_case_id_duplicate_cases",
        ),
        sa.ForeignKeyConstraint(
            ["profile_id"],
            ["profiles.id"],
            name="fk_duplicate_case_members_duplicate_case_members_profile_id_profiles",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_duplicate_case_members"),
        sa.UniqueConstraint(
            "case_id",
            "profile_id",
            name="uq_duplicate_case_members_duplicate_case_members_case_id",
        ),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", _ID, nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("actor_type", _ENUM, nullable=False),
        sa.Column("actor_user_id", _ID, nullable=True),
        sa.Column("actor_label", sa.String(), nullable=True),
        sa.Column("target_user_id", _ID, nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("duplicate_case_members")
    op.drop_index("ix_duplicate_cases_identity", table_name="duplicate_cases")
    op.drop_table("duplicate_cases")
    op.drop_index("ix_payments_provider_paid_at", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_payment_reconcile_queue_scan", table_name="payment_reconcile_queue")
    op.drop_index("ix_payment_reconcile_queue_provider_uid", table_name="payment_reconcile_queue")
    op.drop_table("payment_reconcile_queue")
    op.drop_index("ix_card_profile_links_mask", table_name="card_profile_links")
    op.drop_table("card_profile_links")
    op.drop_table("orders")
    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
