# src/reward_gate/models/usage.py
"""Daily usage ledger and its per-day aggregate."""


from sqlalchemy import BigInteger, CheckConstraint, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from reward_gate.db.session import Base

class DailyUsageRecord(Base):
    """Append-only ledger row: `amount` of `usage_type` accrued by a wallet."""

    __tablename__ = "daily_usage_record"
    __table_args__ = (
        CheckConstraint("usage_type IN ('reward', 'match')", name="ck_daily_usage_type"),
        Index("ix_daily_usage_wallet_type_day", "wallet_address", "usage_type", "day_bucket"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    usage_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    match_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    # UTC calendar day, YYYY-MM-DD.
    day_bucket: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)


class DailyUsageCounter(Base):
    """Running total per (wallet, usage type, day).

    The counter is the consistency boundary for daily caps: it is only ever
    incremented with a conditional UPDATE that refuses to cross the cap.
    """

    __tablename__ = "daily_usage_counter"
    __table_args__ = (
        CheckConstraint("usage_type IN ('reward', 'match')", name="ck_daily_counter_type"),
    )

    wallet_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    usage_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    day_bucket: Mapped[str] = mapped_column(String(10), primary_key=True)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
