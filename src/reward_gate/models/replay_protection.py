# src/reward_gate/models/replay_protection.py
"""Models supporting replay protection and rate limiting."""


from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from reward_gate.db.session import Base


class NonceRecord(Base):
    """Record indicating that a client nonce has already been consumed.

    The primary key is the nonce itself, so a second insert of the same value
    fails at the database level even when two requests race.
    """

    __tablename__ = "nonce_record"

    nonce: Mapped[str] = mapped_column(String(256), primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    # Epoch milliseconds; rows older than the expiry window are reclaimable.
    used_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class RateLimitEntry(Base):
    """One request observed for a (wallet, endpoint) pair."""

    __tablename__ = "rate_limit_entry"
    __table_args__ = (
        Index("ix_rate_limit_wallet_endpoint_created", "wallet_address", "endpoint", "created_at_ms"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
