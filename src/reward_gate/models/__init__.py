# src/reward_gate/models/__init__.py
"""SQLAlchemy models for the reward gate."""

from .audit import AuditLogEntry
from .match import ProcessedMatch
from .replay_protection import NonceRecord, RateLimitEntry
from .usage import DailyUsageCounter, DailyUsageRecord

__all__ = [
    "AuditLogEntry",
    "DailyUsageCounter", "DailyUsageRecord",
    "NonceRecord", "RateLimitEntry",
    "ProcessedMatch",
]
