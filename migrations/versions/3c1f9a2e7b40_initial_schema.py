"""initial schema

Revision ID: 3c1f9a2e7b40
Revises:
Create Date: 2026-10-19 09:12:44.318201

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f9a2e7b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create replay, usage, match and audit tables."""
    op.create_table(
        "nonce_record",
        sa.Column("nonce", sa.String(length=256), nullable=False),
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("used_at_ms", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("nonce"),
    )
    op.create_index("ix_nonce_record_wallet_address", "nonce_record", ["wallet_address"])
    op.create_index("ix_nonce_record_used_at_ms", "nonce_record", ["used_at_ms"])

    op.create_table(
        "rate_limit_entry",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("endpoint", sa.String(length=64), nullable=False),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_rate_limit_wallet_endpoint_created",
        "rate_limit_entry",
        ["wallet_address", "endpoint", "created_at_ms"],
    )

    op.create_table(
        "daily_usage_record",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("usage_type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("match_id", sa.String(length=256), nullable=True),
        sa.Column("day_bucket", sa.String(length=10), nullable=False),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("usage_type IN ('reward', 'match')", name="ck_daily_usage_type"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_daily_usage_wallet_type_day",
        "daily_usage_record",
        ["wallet_address", "usage_type", "day_bucket"],
    )
    op.create_index("ix_daily_usage_record_day_bucket", "daily_usage_record", ["day_bucket"])

    op.create_table(
        "daily_usage_counter",
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("usage_type", sa.String(length=16), nullable=False),
        sa.Column("day_bucket", sa.String(length=10), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        sa.CheckConstraint("usage_type IN ('reward', 'match')", name="ck_daily_counter_type"),
        sa.PrimaryKeyConstraint("wallet_address", "usage_type", "day_bucket"),
    )

    op.create_table(
        "processed_match",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("match_id", sa.String(length=256), nullable=False),
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("placement", sa.Integer(), nullable=False),
        sa.Column("player_count", sa.Integer(), nullable=False),
        sa.Column("reward_amount", sa.Float(), nullable=False),
        sa.Column("settlement_reference", sa.String(length=128), nullable=True),
        sa.Column("processed_at_ms", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("match_id"),
    )
    op.create_index("ix_processed_match_wallet_address", "processed_match", ["wallet_address"])
    op.create_index("ix_processed_match_processed_at_ms", "processed_match", ["processed_at_ms"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("wallet_address", sa.String(length=42), nullable=True),
        sa.Column("match_id", sa.String(length=256), nullable=True),
        sa.Column("endpoint", sa.String(length=64), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("result", sa.String(length=16), nullable=False),
        sa.Column("reason_code", sa.String(length=64), nullable=True),
        sa.Column("risk_score", sa.Integer(), nullable=True),
        sa.Column("security_checks", sa.JSON(), nullable=True),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_event_type", "audit_log", ["event_type"])
    op.create_index("ix_audit_log_wallet_address", "audit_log", ["wallet_address"])
    op.create_index("ix_audit_log_created_at_ms", "audit_log", ["created_at_ms"])


def downgrade() -> None:
    """Drop all reward gate tables."""
    op.drop_table("audit_log")
    op.drop_table("processed_match")
    op.drop_table("daily_usage_counter")
    op.drop_table("daily_usage_record")
    op.drop_table("rate_limit_entry")
    op.drop_table("nonce_record")
