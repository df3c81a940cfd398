# src/reward_gate/models/match.py
"""Processed-match registry."""


from sqlalchemy import BigInteger, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from reward_gate.db.session import Base


class ProcessedMatch(Base):
    """A match that was accepted and rewarded.

    `match_id` is unique for the lifetime of the system; the same table is
    the history that win-pattern analysis reads from.
    """

    __tablename__ = "processed_match"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    placement: Mapped[int] = mapped_column(Integer, nullable=False)
    player_count: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # Reference returned by the minting authority once settled.
    settlement_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    processed_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
