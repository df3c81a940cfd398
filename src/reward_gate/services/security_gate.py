"""Security gate run in front of every match submission."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from reward_gate.core.security import is_valid_wallet_address
from reward_gate.core.settings import Settings, settings
from reward_gate.db.time import day_bucket, next_utc_midnight_ms, utcnow
from reward_gate.services.errors import (
    InfrastructureError,
    NonceReplayError,
    StoreUnavailableError,
)
from reward_gate.services.policy import CheckName, fails_open
from reward_gate.services.store import SecurityStore
from reward_gate.services.types import (
    ReasonCode,
    SecurityCheck,
    SecurityCheckResult,
    UsageType,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DailyCapResult",
    "NonceCheckResult",
    "RateLimitResult",
    "SecurityGate",
]

WALLET_FAILURE_WEIGHT = 100
NONCE_FAILURE_WEIGHT = 50
RATE_LIMIT_FAILURE_WEIGHT = 40
MATCH_UNIQUENESS_FAILURE_WEIGHT = 60
DAILY_MATCH_CAP_FAILURE_WEIGHT = 30
DAILY_REWARD_CAP_FAILURE_WEIGHT = 30
PER_MATCH_CAP_FAILURE_WEIGHT = 40
BOT_BAN_WEIGHT = 50
BOT_SUSPICIOUS_WEIGHT = 20


@dataclass(frozen=True)
class NonceCheckResult:
    valid: bool
    reason: str


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at_ms: int
    details: str


@dataclass(frozen=True)
class DailyCapResult:
    allowed: bool
    used_today: float
    remaining: float
    reset_at_ms: int


class _Accumulator:
    """Collects sub-check outcomes in evaluation order."""

    def __init__(self) -> None:
        self.checks: list[SecurityCheck] = []
        self.risk_score = 0
        self.block_reason: str | None = None
        self.block_code: ReasonCode | None = None
        self.degraded = False

    def add(
        self,
        name: CheckName,
        passed: bool,
        details: str,
        *,
        weight: int = 0,
        fatal: bool = True,
        reason: str | None = None,
        code: ReasonCode | None = None,
    ) -> None:
        self.checks.append(SecurityCheck(name=name.value, passed=passed, details=details))
        if passed:
            return
        self.risk_score += weight
        if fatal and self.block_reason is None:
            self.block_reason = reason or details
            self.block_code = code

    def result(self) -> SecurityCheckResult:
        passed = self.block_reason is None
        return SecurityCheckResult(
            passed=passed,
            checks=tuple(self.checks),
            risk_score=min(100, self.risk_score),
            block_reason=self.block_reason,
            block_code=self.block_code,
            degraded=self.degraded,
        )


class SecurityGate:
    """Evaluate wallet, replay, rate, uniqueness, cap and bot checks.

    Each sub-check is usable on its own. `perform_security_check` composes
    them in a fixed order; the first fatal failure determines the block
    reason while the risk score accumulates over every sub-check that ran.
    """

    def __init__(
        self,
        store: SecurityStore,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def check_wallet(self, wallet_address: str) -> SecurityCheck:
        if not wallet_address:
            return SecurityCheck(CheckName.WALLET_VALIDATION.value, False, "Missing wallet address")
        if not is_valid_wallet_address(wallet_address):
            return SecurityCheck(
                CheckName.WALLET_VALIDATION.value, False, "Invalid Ethereum address format"
            )
        return SecurityCheck(CheckName.WALLET_VALIDATION.value, True, "Valid Ethereum address")

    def check_nonce(self, nonce: str, wallet_address: str) -> NonceCheckResult:
        """Consume the nonce. A second consumption of the same value is a replay."""
        try:
            self.store.consume_nonce(nonce, wallet_address, self._now_ms())
        except NonceReplayError:
            return NonceCheckResult(False, "Nonce already used (replay attack detected)")
        return NonceCheckResult(True, "Nonce is fresh")

    def check_rate_limit(self, wallet_address: str, endpoint: str) -> RateLimitResult:
        now_ms = self._now_ms()
        window_ms = self.config.rate_limit_window_ms
        max_requests = self.config.rate_limit_max_requests
        since_ms = now_ms - window_ms

        count = self.store.count_requests_since(wallet_address, endpoint, since_ms)
        if count >= max_requests:
            oldest = self.store.oldest_request_since(wallet_address, endpoint, since_ms)
            reset_at_ms = (oldest if oldest is not None else now_ms) + window_ms
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at_ms=reset_at_ms,
                details=f"Rate limit exceeded: {count}/{max_requests}",
            )

        self.store.record_request(wallet_address, endpoint, now_ms)
        return RateLimitResult(
            allowed=True,
            remaining=max_requests - count - 1,
            reset_at_ms=now_ms + window_ms,
            details=f"Rate limit OK: {count + 1}/{max_requests}",
        )

    def check_match_uniqueness(self, match_id: str) -> bool:
        return not self.store.match_exists(match_id)

    def check_daily_cap(
        self, wallet_address: str, usage_type: UsageType, amount: float
    ) -> DailyCapResult:
        now = self.clock()
        cap = (
            float(self.config.daily_match_cap)
            if usage_type is UsageType.MATCH
            else self.config.daily_reward_cap
        )
        used_today = self.store.daily_usage_total(wallet_address, usage_type, day_bucket(now))
        return DailyCapResult(
            allowed=used_today + amount <= cap,
            used_today=used_today,
            remaining=max(0.0, cap - used_today),
            reset_at_ms=next_utc_midnight_ms(now),
        )

    def check_per_match_cap(self, amount: float) -> bool:
        return amount <= self.config.max_reward_per_match

    def release_nonce(self, nonce: str, wallet_address: str) -> None:
        """Give a consumed nonce back after an infrastructure fault.

        Rejections keep the nonce burned; only retryable failures release it.
        """
        try:
            self.store.release_nonce(nonce, wallet_address)
        except StoreUnavailableError:
            logger.error("Could not release nonce for %s", wallet_address, exc_info=True)

    def _run_rate_limit(self, acc: _Accumulator, wallet_address: str, endpoint: str) -> None:
        try:
            rate = self.check_rate_limit(wallet_address, endpoint)
        except StoreUnavailableError:
            if not fails_open(CheckName.RATE_LIMIT):
                raise
            logger.warning("Rate limit store unavailable for %s; allowing request", wallet_address)
            acc.degraded = True
            acc.add(CheckName.RATE_LIMIT, True, "Rate limit check failed, allowing request")
            return
        acc.add(
            CheckName.RATE_LIMIT,
            rate.allowed,
            rate.details,
            weight=RATE_LIMIT_FAILURE_WEIGHT,
            code=ReasonCode.RATE_LIMITED,
        )

    def _add_reward_caps(self, acc: _Accumulator, wallet_address: str, amount: float) -> None:
        cap = self.config.daily_reward_cap
        reward_cap = self.check_daily_cap(wallet_address, UsageType.REWARD, amount)
        acc.add(
            CheckName.DAILY_REWARD_CAP,
            reward_cap.allowed,
            f"Rewards today: {reward_cap.used_today:g}/{cap:g}"
            if reward_cap.allowed
            else f"Daily reward limit reached: {reward_cap.used_today:g}/{cap:g}",
            weight=DAILY_REWARD_CAP_FAILURE_WEIGHT,
            reason="Daily reward limit exceeded",
            code=ReasonCode.DAILY_REWARD_CAP_EXCEEDED,
        )

        max_reward = self.config.max_reward_per_match
        within = self.check_per_match_cap(amount)
        acc.add(
            CheckName.PER_MATCH_CAP,
            within,
            f"Reward {amount:g} within limit"
            if within
            else f"Reward {amount:g} exceeds max {max_reward:g}",
            weight=PER_MATCH_CAP_FAILURE_WEIGHT,
            reason="Per-match reward cap exceeded",
            code=ReasonCode.PER_MATCH_CAP_EXCEEDED,
        )

    def _add_bot_confidence(self, acc: _Accumulator, bot_confidence: float) -> None:
        percent = f"{bot_confidence * 100:.0f}%"
        if bot_confidence >= self.config.ban_threshold:
            acc.add(
                CheckName.BOT_DETECTION,
                False,
                f"Bot confidence {percent} exceeds ban threshold",
                weight=BOT_BAN_WEIGHT,
                reason="Bot detection threshold exceeded",
                code=ReasonCode.BOT_BANNED,
            )
        elif bot_confidence >= self.config.suspicious_threshold:
            acc.add(CheckName.BOT_DETECTION, True, f"Bot confidence {percent} flagged for review")
            acc.risk_score += BOT_SUSPICIOUS_WEIGHT
        else:
            acc.add(CheckName.BOT_DETECTION, True, f"Bot confidence {percent} OK")

    def _run_store_checks(
        self,
        acc: _Accumulator,
        wallet_address: str,
        match_id: str,
        endpoint: str,
        reward_amount: float | None,
    ) -> None:
        self._run_rate_limit(acc, wallet_address, endpoint)

        unique = self.check_match_uniqueness(match_id)
        acc.add(
            CheckName.MATCH_UNIQUENESS,
            unique,
            "Match ID is unique" if unique else "Match already processed (replay attack)",
            weight=MATCH_UNIQUENESS_FAILURE_WEIGHT,
            code=ReasonCode.MATCH_ALREADY_PROCESSED,
        )

        match_cap = self.check_daily_cap(wallet_address, UsageType.MATCH, 1)
        cap = self.config.daily_match_cap
        acc.add(
            CheckName.DAILY_MATCH_CAP,
            match_cap.allowed,
            f"Matches today: {match_cap.used_today:g}/{cap}"
            if match_cap.allowed
            else f"Daily match limit reached: {match_cap.used_today:g}/{cap}",
            weight=DAILY_MATCH_CAP_FAILURE_WEIGHT,
            reason="Daily match limit exceeded",
            code=ReasonCode.DAILY_MATCH_CAP_EXCEEDED,
        )

        if reward_amount is not None:
            self._add_reward_caps(acc, wallet_address, reward_amount)

    def perform_security_check(
        self,
        wallet_address: str,
        match_id: str,
        nonce: str,
        endpoint: str,
        reward_amount: float | None = None,
        bot_confidence: float | None = None,
    ) -> SecurityCheckResult:
        """Run every sub-check and aggregate the outcome.

        Raises:
            StoreUnavailableError: A fail-closed check could not reach the store.
                A nonce consumed by this call is released first.
        """
        acc = _Accumulator()

        wallet = self.check_wallet(wallet_address)
        acc.add(
            CheckName.WALLET_VALIDATION,
            wallet.passed,
            wallet.details,
            weight=WALLET_FAILURE_WEIGHT,
            code=ReasonCode.INVALID_WALLET,
        )

        nonce_check = self.check_nonce(nonce, wallet_address)
        acc.add(
            CheckName.REPLAY_PREVENTION,
            nonce_check.valid,
            nonce_check.reason,
            weight=NONCE_FAILURE_WEIGHT,
            code=ReasonCode.NONCE_REPLAYED,
        )

        try:
            self._run_store_checks(acc, wallet_address, match_id, endpoint, reward_amount)
        except InfrastructureError:
            if nonce_check.valid:
                self.release_nonce(nonce, wallet_address)
            raise

        if bot_confidence is not None:
            self._add_bot_confidence(acc, bot_confidence)

        result = acc.result()
        if not result.passed:
            logger.info(
                "Security check blocked wallet=%s match=%s code=%s risk=%s",
                wallet_address,
                match_id,
                result.block_code.value if result.block_code else None,
                result.risk_score,
            )
        return result

    def check_reward_caps(self, wallet_address: str, reward_amount: float) -> SecurityCheckResult:
        """Evaluate only the reward-cap sub-checks for a computed reward."""
        acc = _Accumulator()
        self._add_reward_caps(acc, wallet_address, reward_amount)
        return acc.result()
