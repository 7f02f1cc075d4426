"""Create guest verification tables.

Revision ID: 001_guest_auth_tables
Revises:
Create Date: 2026-10-18

- otp_challenges: one row per issued code, partial unique index keeps at
  most one active challenge per (purpose, identifier, resource_id)
- action_tokens: single-use emailed links (hashed)
- revoked_session_tokens: session token denylist
- guest_requests: outbox of authorized guest actions

The storefront ``orders`` table is owned by the storefront and is not
created here.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001_guest_auth_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # =========================================================================
    # otp_challenges
    # =========================================================================
    op.create_table(
        "otp_challenges",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("purpose", sa.String(32), nullable=False),
        sa.Column("identifier", sa.String(255), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False, server_default=""),
        sa.Column("code_salt", sa.String(64), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts_remaining", sa.Integer(), nullable=False),
        sa.Column(
            "status", sa.String(16), nullable=False, server_default="active"
        ),
        sa.CheckConstraint(
            "status IN ('active', 'consumed', 'expired', 'exhausted')",
            name="ck_otp_challenges_status",
        ),
        sa.CheckConstraint(
            "attempts_remaining >= 0",
            name="ck_otp_challenges_attempts_non_negative",
        ),
    )
    op.create_index(
        "uq_otp_challenges_active_key",
        "otp_challenges",
        ["purpose", "identifier", "resource_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "ix_otp_challenges_key_created",
        "otp_challenges",
        ["purpose", "identifier", "resource_id", "created_at"],
    )

    # =========================================================================
    # action_tokens
    # =========================================================================
    op.create_table(
        "action_tokens",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("purpose", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_action_tokens_order_id", "action_tokens", ["order_id"])

    # =========================================================================
    # revoked_session_tokens
    # =========================================================================
    op.create_table(
        "revoked_session_tokens",
        sa.Column("jti", sa.String(64), primary_key=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_revoked_session_tokens_expires_at",
        "revoked_session_tokens",
        ["expires_at"],
    )

    # =========================================================================
    # guest_requests
    # =========================================================================
    op.create_table(
        "guest_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("identifier", sa.String(255), nullable=False),
        sa.Column("purpose", sa.String(32), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("payload", JSONB(), nullable=False),
        sa.Column(
            "status", sa.String(16), nullable=False, server_default="pending"
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_guest_requests_identifier", "guest_requests", ["identifier"]
    )


def downgrade() -> None:
    op.drop_index("ix_guest_requests_identifier", table_name="guest_requests")
    op.drop_table("guest_requests")
    op.drop_index(
        "ix_revoked_session_tokens_expires_at", table_name="revoked_session_tokens"
    )
    op.drop_table("revoked_session_tokens")
    op.drop_index("ix_action_tokens_order_id", table_name="action_tokens")
    op.drop_table("action_tokens")
    op.drop_index("ix_otp_challenges_key_created", table_name="otp_challenges")
    op.drop_index("uq_otp_challenges_active_key", table_name="otp_challenges")
    op.drop_table("otp_challenges")
