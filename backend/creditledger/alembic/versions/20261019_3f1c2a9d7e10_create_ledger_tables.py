"""create ledger tables

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7e10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:  # type: ignore[type-arg]
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "credit_notes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("note_number", sa.String(length=50), nullable=False),
        sa.Column("merchant_id", sa.String(length=255), nullable=False),
        sa.Column("owner_ref", sa.String(length=255), nullable=False),
        sa.Column("owner_name", sa.String(length=255), nullable=True),
        sa.Column("owner_email", sa.String(length=255), nullable=True),
        sa.Column("original_amount", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("remaining_amount", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("original_order_ref", sa.String(length=255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= original_amount",
            name="ck_credit_notes_remaining_within_original",
        ),
    )
    op.create_index(
        op.f("ix_credit_notes_note_number"), "credit_notes", ["note_number"], unique=True
    )
    op.create_index(
        "ix_credit_notes_merchant_id_status", "credit_notes", ["merchant_id", "status"]
    )
    op.create_index(
        "ix_credit_notes_merchant_id_created_at", "credit_notes", ["merchant_id", "created_at"]
    )
    op.create_index(
        "ix_credit_notes_merchant_id_owner_ref", "credit_notes", ["merchant_id", "owner_ref"]
    )

    op.create_table(
        "credit_note_redemptions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("credit_note_id", sa.String(length=36), nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("balance_after", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("external_ref", sa.String(length=255), nullable=True),
        sa.Column("actor_ref", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["credit_note_id"], ["credit_notes.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "credit_note_id",
            "external_ref",
            name="uq_credit_note_redemptions_note_external_ref",
        ),
    )
    op.create_index(
        op.f("ix_credit_note_redemptions_credit_note_id"),
        "credit_note_redemptions",
        ["credit_note_id"],
    )
    op.create_index(
        op.f("ix_credit_note_redemptions_external_ref"),
        "credit_note_redemptions",
        ["external_ref"],
    )

    op.create_table(
        "merchant_settings",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("merchant_id", sa.String(length=255), nullable=False),
        sa.Column("note_prefix", sa.String(length=10), nullable=False),
        sa.Column("default_expiry_days", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_merchant_settings_merchant_id"), "merchant_settings", ["merchant_id"], unique=True
    )

    op.create_table(
        "idempotency_records",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("merchant_id", sa.String(length=255), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_method", sa.String(length=10), nullable=False),
        sa.Column("request_path", sa.String(length=500), nullable=False),
        sa.Column("response_status", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "idempotency_key", name="uq_merchant_idempotency_key"),
    )
    op.create_index(
        op.f("ix_idempotency_records_merchant_id"), "idempotency_records", ["merchant_id"]
    )
    op.create_index(
        op.f("ix_idempotency_records_idempotency_key"),
        "idempotency_records",
        ["idempotency_key"],
    )

    op.create_table(
        "webhook_endpoints",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("merchant_id", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_webhook_endpoints_merchant_id"), "webhook_endpoints", ["merchant_id"]
    )

    op.create_table(
        "webhooks",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("webhook_endpoint_id", sa.String(length=36), nullable=False),
        sa.Column("webhook_type", sa.String(length=100), nullable=False),
        sa.Column("object_id", sa.String(length=36), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("last_retried_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("response", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["webhook_endpoint_id"], ["webhook_endpoints.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_webhooks_webhook_endpoint_id", "webhooks", ["webhook_endpoint_id"])
    op.create_index("ix_webhooks_status", "webhooks", ["status"])


def downgrade() -> None:
    op.drop_index("ix_webhooks_status", table_name="webhooks")
    op.drop_index("ix_webhooks_webhook_endpoint_id", table_name="webhooks")
    op.drop_table("webhooks")
    op.drop_index(op.f("ix_webhook_endpoints_merchant_id"), table_name="webhook_endpoints")
    op.drop_table("webhook_endpoints")
    op.drop_index(
        op.f("ix_idempotency_records_idempotency_key"), table_name="idempotency_records"
    )
    op.drop_index(op.f("ix_idempotency_records_merchant_id"), table_name="idempotency_records")
    op.drop_table("idempotency_records")
    op.drop_index(op.f("ix_merchant_settings_merchant_id"), table_name="merchant_settings")
    op.drop_table("merchant_settings")
    op.drop_index(
        op.f("ix_credit_note_redemptions_external_ref"), table_name="credit_note_redemptions"
    )
    op.drop_index(
        op.f("ix_credit_note_redemptions_credit_note_id"), table_name="credit_note_redemptions"
    )
    op.drop_table("credit_note_redemptions")
    op.drop_index("ix_credit_notes_merchant_id_owner_ref", table_name="credit_notes")
    op.drop_index("ix_credit_notes_merchant_id_created_at", table_name="credit_notes")
    op.drop_index("ix_credit_notes_merchant_id_status", table_name="credit_notes")
    op.drop_index(op.f("ix_credit_notes_note_number"), table_name="credit_notes")
    op.drop_table("credit_notes")
