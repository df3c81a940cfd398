"""Persistent state behind the security gate and the validator.

Every cross-request fact (consumed nonces, processed matches, daily usage)
lives here. Uniqueness is enforced by the database, never by a
read-then-write in Python.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from reward_gate.models import (
    AuditLogEntry,
    DailyUsageCounter,
    DailyUsageRecord,
    NonceRecord,
    ProcessedMatch,
    RateLimitEntry,
)
from reward_gate.services.errors import (
    DailyCapExceededError,
    MatchAlreadyProcessedError,
    NonceReplayError,
    StoreUnavailableError,
)
from reward_gate.services.types import MatchHistoryEntry, ReasonCode, UsageType

logger = logging.getLogger(__name__)

__all__ = ["SecurityStore"]


class SecurityStore:
    """Repository over the replay, usage and match-history tables."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Translate driver faults into `StoreUnavailableError`."""
        try:
            yield
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Store operation %s failed: %s", operation, exc)
            raise StoreUnavailableError(f"Store unavailable during {operation}") from exc

    # Replay protection

    def consume_nonce(self, nonce: str, wallet_address: str, used_at_ms: int) -> None:
        """Insert the nonce; a duplicate raises `NonceReplayError`."""
        with self._guard("consume_nonce"):
            self.session.add(
                NonceRecord(nonce=nonce, wallet_address=wallet_address, used_at_ms=used_at_ms)
            )
            try:
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise NonceReplayError("Nonce already used") from exc

    def release_nonce(self, nonce: str, wallet_address: str) -> bool:
        """Delete a nonce consumed by a request that then failed on infrastructure.

        Returns True when a row was removed.
        """
        with self._guard("release_nonce"):
            result = self.session.execute(
                delete(NonceRecord).where(
                    NonceRecord.nonce == nonce,
                    NonceRecord.wallet_address == wallet_address,
                )
            )
            self.session.commit()
            return bool(result.rowcount)

    def nonce_exists(self, nonce: str) -> bool:
        with self._guard("nonce_exists"):
            stmt = select(NonceRecord.nonce).where(NonceRecord.nonce == nonce)
            return self.session.execute(stmt).first() is not None

    # Rate limiting

    def count_requests_since(self, wallet_address: str, endpoint: str, since_ms: int) -> int:
        with self._guard("count_requests_since"):
            stmt = select(func.count(RateLimitEntry.id)).where(
                RateLimitEntry.wallet_address == wallet_address,
                RateLimitEntry.endpoint == endpoint,
                RateLimitEntry.created_at_ms > since_ms,
            )
            return int(self.session.execute(stmt).scalar_one())

    def oldest_request_since(self, wallet_address: str, endpoint: str, since_ms: int) -> int | None:
        """Return the timestamp of the oldest request still inside the window."""
        with self._guard("oldest_request_since"):
            stmt = select(func.min(RateLimitEntry.created_at_ms)).where(
                RateLimitEntry.wallet_address == wallet_address,
                RateLimitEntry.endpoint == endpoint,
                RateLimitEntry.created_at_ms > since_ms,
            )
            return self.session.execute(stmt).scalar_one_or_none()

    def record_request(self, wallet_address: str, endpoint: str, created_at_ms: int) -> None:
        with self._guard("record_request"):
            self.session.add(
                RateLimitEntry(
                    wallet_address=wallet_address,
                    endpoint=endpoint,
                    created_at_ms=created_at_ms,
                )
            )
            self.session.commit()

    # Match registry and history

    def match_exists(self, match_id: str) -> bool:
        with self._guard("match_exists"):
            stmt = select(ProcessedMatch.id).where(ProcessedMatch.match_id == match_id)
            return self.session.execute(stmt).first() is not None

    def recent_matches(
        self, wallet_address: str, since_ms: int, limit: int
    ) -> list[MatchHistoryEntry]:
        """Return processed matches for a wallet since `since_ms`, newest first."""
        with self._guard("recent_matches"):
            stmt = (
                select(ProcessedMatch.placement, ProcessedMatch.processed_at_ms)
                .where(
                    ProcessedMatch.wallet_address == wallet_address,
                    ProcessedMatch.processed_at_ms >= since_ms,
                )
                .order_by(ProcessedMatch.processed_at_ms.desc(), ProcessedMatch.id.desc())
                .limit(limit)
            )
            return [
                MatchHistoryEntry(placement=row.placement, processed_at_ms=row.processed_at_ms)
                for row in self.session.execute(stmt)
            ]

    # Daily usage

    def daily_usage_total(self, wallet_address: str, usage_type: UsageType, day: str) -> float:
        with self._guard("daily_usage_total"):
            stmt = select(DailyUsageCounter.total).where(
                DailyUsageCounter.wallet_address == wallet_address,
                DailyUsageCounter.usage_type == usage_type.value,
                DailyUsageCounter.day_bucket == day,
            )
            total = self.session.execute(stmt).scalar_one_or_none()
            return float(total or 0.0)

    def _ensure_counter(self, wallet_address: str, usage_type: UsageType, day: str) -> None:
        exists = self.session.get(DailyUsageCounter, (wallet_address, usage_type.value, day))
        if exists is not None:
            return
        self.session.add(
            DailyUsageCounter(
                wallet_address=wallet_address, usage_type=usage_type.value, day_bucket=day, total=0.0
            )
        )
        try:
            self.session.commit()
        except IntegrityError:
            # Created concurrently by another submission for the same wallet.
            self.session.rollback()

    def _increment_counter(
        self, wallet_address: str, usage_type: UsageType, day: str, amount: float, cap: float
    ) -> bool:
        stmt = (
            update(DailyUsageCounter)
            .where(
                DailyUsageCounter.wallet_address == wallet_address,
                DailyUsageCounter.usage_type == usage_type.value,
                DailyUsageCounter.day_bucket == day,
                DailyUsageCounter.total + amount <= cap,
            )
            .values(total=DailyUsageCounter.total + amount)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def record_accepted_match(
        self,
        *,
        wallet_address: str,
        match_id: str,
        placement: int,
        player_count: int,
        reward_amount: float,
        day: str,
        processed_at_ms: int,
        daily_match_cap: int,
        daily_reward_cap: float,
    ) -> ProcessedMatch:
        """Record usage and the processed-match fact in one transaction.

        Counters are incremented only if the increment keeps them within their
        caps, so two concurrent submissions cannot jointly overshoot a cap.

        Raises:
            DailyCapExceededError: A cap would be crossed; nothing is written.
            MatchAlreadyProcessedError: The match id was recorded concurrently.
            StoreUnavailableError: The store could not be reached.
        """
        with self._guard("record_accepted_match"):
            self._ensure_counter(wallet_address, UsageType.MATCH, day)
            self._ensure_counter(wallet_address, UsageType.REWARD, day)

            if not self._increment_counter(
                wallet_address, UsageType.MATCH, day, 1.0, float(daily_match_cap)
            ):
                self.session.rollback()
                raise DailyCapExceededError("Daily match limit reached")
            if not self._increment_counter(
                wallet_address, UsageType.REWARD, day, reward_amount, daily_reward_cap
            ):
                self.session.rollback()
                raise DailyCapExceededError(
                    "Daily reward limit reached",
                    reason_code=ReasonCode.DAILY_REWARD_CAP_EXCEEDED,
                )

            self.session.add_all(
                [
                    DailyUsageRecord(
                        wallet_address=wallet_address,
                        usage_type=UsageType.MATCH.value,
                        amount=1.0,
                        match_id=match_id,
                        day_bucket=day,
                        created_at_ms=processed_at_ms,
                    ),
                    DailyUsageRecord(
                        wallet_address=wallet_address,
                        usage_type=UsageType.REWARD.value,
                        amount=reward_amount,
                        match_id=match_id,
                        day_bucket=day,
                        created_at_ms=processed_at_ms,
                    ),
                ]
            )
            match = ProcessedMatch(
                match_id=match_id,
                wallet_address=wallet_address,
                placement=placement,
                player_count=player_count,
                reward_amount=reward_amount,
                processed_at_ms=processed_at_ms,
            )
            self.session.add(match)
            try:
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise MatchAlreadyProcessedError("Match has already been processed") from exc
            return match

    def set_settlement_reference(self, match_id: str, reference: str) -> None:
        with self._guard("set_settlement_reference"):
            self.session.execute(
                update(ProcessedMatch)
                .where(ProcessedMatch.match_id == match_id)
                .values(settlement_reference=reference)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()

    # Audit

    def write_audit(
        self,
        *,
        event_type: str,
        result: str,
        created_at_ms: int,
        wallet_address: str | None = None,
        match_id: str | None = None,
        endpoint: str | None = None,
        request_id: str | None = None,
        payload: dict[str, Any] | None = None,
        reason_code: str | None = None,
        risk_score: int | None = None,
        security_checks: list[dict[str, Any]] | None = None,
    ) -> None:
        """Append an audit row. Failures are logged and never change a decision."""
        entry = AuditLogEntry(
            event_type=event_type,
            wallet_address=wallet_address,
            match_id=match_id,
            endpoint=endpoint,
            request_id=request_id,
            payload=payload,
            result=result,
            reason_code=reason_code,
            risk_score=risk_score,
            security_checks=security_checks,
            created_at_ms=created_at_ms,
        )
        try:
            self.session.add(entry)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Failed to write audit entry for %s", match_id, exc_info=True)

    # Hygiene

    def delete_nonces_before(self, cutoff_ms: int) -> int:
        with self._guard("delete_nonces_before"):
            result = self.session.execute(
                delete(NonceRecord).where(NonceRecord.used_at_ms < cutoff_ms)
            )
            self.session.commit()
            return result.rowcount or 0

    def delete_rate_limits_before(self, cutoff_ms: int) -> int:
        with self._guard("delete_rate_limits_before"):
            result = self.session.execute(
                delete(RateLimitEntry).where(RateLimitEntry.created_at_ms < cutoff_ms)
            )
            self.session.commit()
            return result.rowcount or 0

    def delete_audit_before(self, cutoff_ms: int) -> int:
        with self._guard("delete_audit_before"):
            result = self.session.execute(
                delete(AuditLogEntry).where(AuditLogEntry.created_at_ms < cutoff_ms)
            )
            self.session.commit()
            return result.rowcount or 0

    def delete_usage_before(self, day: str) -> int:
        """Delete ledger rows and counters for day buckets strictly before `day`."""
        with self._guard("delete_usage_before"):
            records = self.session.execute(
                delete(DailyUsageRecord).where(DailyUsageRecord.day_bucket < day)
            )
            counters = self.session.execute(
                delete(DailyUsageCounter).where(DailyUsageCounter.day_bucket < day)
            )
            self.session.commit()
            return (records.rowcount or 0) + (counters.rowcount or 0)
