"""Storage hygiene for replay, rate-limit, usage and audit tables.

Deleting expired rows never reopens a nonce or a match id for reuse inside
its active window and never changes an already accepted decision.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from reward_gate.core.settings import Settings, settings
from reward_gate.db.time import day_bucket, utcnow
from reward_gate.services.store import SecurityStore

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
# Usage buckets are kept for the current and previous UTC day.
USAGE_RETENTION_DAYS = 2


@dataclass(frozen=True)
class CleanupReport:
    nonces: int
    rate_limits: int
    usage_rows: int
    audit_rows: int

    def as_dict(self) -> dict[str, int]:
        return {
            "nonces": self.nonces,
            "rate_limits": self.rate_limits,
            "usage_rows": self.usage_rows,
            "audit_rows": self.audit_rows,
        }


def cleanup_expired_nonces(
    store: SecurityStore, config: Settings = settings, now: datetime | None = None
) -> int:
    """Delete nonces older than the expiry window."""
    now_ms = int((now or utcnow()).timestamp() * 1000)
    return store.delete_nonces_before(now_ms - config.nonce_expiry_ms)


def cleanup_rate_limits(
    store: SecurityStore, config: Settings = settings, now: datetime | None = None
) -> int:
    """Delete rate-limit rows that can no longer fall inside a window."""
    now_ms = int((now or utcnow()).timestamp() * 1000)
    return store.delete_rate_limits_before(now_ms - config.rate_limit_window_ms * 2)


def cleanup_daily_usage(store: SecurityStore, now: datetime | None = None) -> int:
    moment = now or utcnow()
    cutoff = day_bucket(moment - timedelta(days=USAGE_RETENTION_DAYS - 1))
    return store.delete_usage_before(cutoff)


def cleanup_audit_log(
    store: SecurityStore, config: Settings = settings, now: datetime | None = None
) -> int:
    """Delete audit rows older than the retention period."""
    now_ms = int((now or utcnow()).timestamp() * 1000)
    return store.delete_audit_before(now_ms - config.audit_retention_days * DAY_MS)


def run_cleanup(
    store: SecurityStore,
    config: Settings = settings,
    clock: Callable[[], datetime] = utcnow,
) -> CleanupReport:
    """Run every hygiene routine and report deleted row counts."""
    now = clock()
    report = CleanupReport(
        nonces=cleanup_expired_nonces(store, config, now),
        rate_limits=cleanup_rate_limits(store, config, now),
        usage_rows=cleanup_daily_usage(store, now),
        audit_rows=cleanup_audit_log(store, config, now),
    )
    logger.info("Cleanup finished: %s", report.as_dict())
    return report
