"""Match integrity validation.

Hard violations reject immediately with a risk score of 100. Soft
violations only add to the risk score, and the remaining checks keep
running so that every applicable flag is reported.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import NamedTuple, Protocol

from reward_gate.core.settings import Settings, settings
from reward_gate.db.time import utcnow
from reward_gate.services.errors import StoreUnavailableError
from reward_gate.services.policy import CheckName, fails_open
from reward_gate.services.types import (
    CheckOutcome,
    FlagCode,
    MatchHistoryEntry,
    MatchSubmission,
    ReasonCode,
    Severity,
    ValidationFlag,
    ValidationResult,
)

logger = logging.getLogger(__name__)

__all__ = ["DURATION_LIMITS", "DurationLimits", "MatchHistory", "MatchValidator"]

DAY_MS = 24 * 60 * 60 * 1000
RAPID_LOOKBACK_FACTOR = 5
RAPID_LOOKBACK_LIMIT = 10
MIN_FRAME_RATIO = 0.5
MAX_FRAME_RATIO = 2.0


class DurationLimits(NamedTuple):
    """Hard and typical duration bounds in milliseconds."""

    hard_min: int
    hard_max: int
    typical_min: int
    typical_max: int


DURATION_LIMITS: dict[int, DurationLimits] = {
    2: DurationLimits(10_000, 180_000, 20_000, 120_000),
    3: DurationLimits(15_000, 240_000, 30_000, 150_000),
    5: DurationLimits(20_000, 300_000, 45_000, 200_000),
}


class MatchHistory(Protocol):
    def recent_matches(
        self, wallet_address: str, since_ms: int, limit: int
    ) -> list[MatchHistoryEntry]: ...


def _reject(code: FlagCode, reason: ReasonCode, flag_message: str, message: str) -> CheckOutcome:
    return CheckOutcome(
        flags=[ValidationFlag(code=code, severity=Severity.CRITICAL, message=flag_message)],
        risk_score=100,
        reject=True,
        reason_code=reason,
        message=message,
    )


class MatchValidator:
    """Score a submitted match for plausibility."""

    def __init__(
        self,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.clock = clock

    def validate_match(self, history: MatchHistory, submission: MatchSubmission) -> ValidationResult:
        flags: list[ValidationFlag] = []
        risk_score = 0
        now_ms = int(self.clock().timestamp() * 1000)

        stages: list[Callable[[], CheckOutcome]] = [
            lambda: self.check_duration(submission),
            lambda: self.check_input_variance(submission),
            lambda: self.check_kill_count(submission),
            lambda: self.check_frame_data(submission),
            lambda: self.check_win_patterns(history, submission, now_ms),
            lambda: self.check_rapid_matches(history, submission, now_ms),
        ]
        for stage in stages:
            outcome = stage()
            flags.extend(outcome.flags)
            risk_score += outcome.risk_score
            if outcome.reject:
                return ValidationResult(
                    allowed=False,
                    reason_code=outcome.reason_code or ReasonCode.BOT_DETECTED,
                    reason_message=outcome.message,
                    risk_score=100,
                    flags=tuple(flags),
                )

        risk_score = max(0, min(100, risk_score))
        if risk_score >= self.config.risk_reject_threshold:
            return ValidationResult(
                allowed=False,
                reason_code=ReasonCode.BOT_DETECTED,
                reason_message="Match rejected due to suspicious activity patterns",
                risk_score=risk_score,
                flags=tuple(flags),
            )
        if risk_score >= self.config.risk_flag_threshold:
            message = "Match allowed but flagged for review"
        else:
            message = "Match validated successfully"
        return ValidationResult(
            allowed=True,
            reason_code=ReasonCode.VALID,
            reason_message=message,
            risk_score=risk_score,
            flags=tuple(flags),
        )

    def check_duration(self, submission: MatchSubmission) -> CheckOutcome:
        limits = DURATION_LIMITS.get(submission.player_count)
        if limits is None:
            return _reject(
                FlagCode.INVALID_PLAYER_COUNT,
                ReasonCode.PLACEMENT_INVALID,
                f"Invalid player count: {submission.player_count}",
                "Invalid player count",
            )
        if not 1 <= submission.placement <= submission.player_count:
            return _reject(
                FlagCode.INVALID_PLACEMENT,
                ReasonCode.PLACEMENT_INVALID,
                f"Placement {submission.placement} outside 1-{submission.player_count}",
                "Placement outside valid range",
            )

        duration = submission.duration_ms
        seconds = round(duration / 1000)
        if duration < limits.hard_min:
            return _reject(
                FlagCode.DURATION_TOO_SHORT,
                ReasonCode.DURATION_TOO_SHORT,
                f"Duration {duration}ms below minimum {limits.hard_min}ms "
                f"for {submission.player_count} players",
                f"Match duration impossibly short ({seconds}s)",
            )
        if duration > limits.hard_max:
            return _reject(
                FlagCode.DURATION_TOO_LONG,
                ReasonCode.DURATION_TOO_LONG,
                f"Duration {duration}ms exceeds maximum {limits.hard_max}ms",
                f"Match duration exceeds maximum ({seconds}s)",
            )

        if submission.placement == 1 and submission.kills > 0:
            min_possible = submission.kills * self.config.min_time_per_kill_ms
            if duration < min_possible:
                return _reject(
                    FlagCode.DURATION_IMPOSSIBLE,
                    ReasonCode.DURATION_IMPOSSIBLE,
                    f"{submission.kills} kills in {duration}ms is impossible "
                    f"(min {min_possible}ms)",
                    "Kill speed impossibly fast",
                )

        outcome = CheckOutcome(message="Duration valid")
        if duration < limits.typical_min:
            outcome.flag(
                FlagCode.DURATION_UNUSUALLY_SHORT,
                Severity.WARNING,
                f"Duration {duration}ms is unusually short",
                15,
            )
        if duration > limits.typical_max:
            outcome.flag(
                FlagCode.DURATION_UNUSUALLY_LONG,
                Severity.INFO,
                f"Duration {duration}ms is longer than typical",
                5,
            )
        return outcome

    def check_input_variance(self, submission: MatchSubmission) -> CheckOutcome:
        variance = submission.anti_cheat.input_timing_variance
        if variance <= self.config.input_variance_zero_ms:
            return _reject(
                FlagCode.ZERO_INPUT_VARIANCE,
                ReasonCode.ZERO_INPUT_VARIANCE,
                f"Input timing variance {variance:g}ms indicates automation",
                "Automated input detected (zero timing variance)",
            )

        outcome = CheckOutcome(message="Input variance acceptable")
        if variance <= self.config.input_variance_low_ms:
            outcome.flag(
                FlagCode.LOW_INPUT_VARIANCE,
                Severity.WARNING,
                f"Input timing variance {variance:g}ms is suspiciously consistent",
                35,
            )
            if submission.placement == 1:
                outcome.flag(
                    FlagCode.LOW_VARIANCE_WINNER,
                    Severity.WARNING,
                    "Low variance combined with 1st place finish",
                    15,
                )
        # Very high variance can indicate lag switching.
        if variance > self.config.input_variance_normal_max_ms:
            outcome.flag(
                FlagCode.HIGH_INPUT_VARIANCE,
                Severity.INFO,
                f"Input timing variance {variance:g}ms is unusually high",
                10,
            )
        return outcome

    def check_kill_count(self, submission: MatchSubmission) -> CheckOutcome:
        kills = submission.kills
        players = submission.player_count
        if kills >= players:
            return _reject(
                FlagCode.KILL_COUNT_IMPOSSIBLE,
                ReasonCode.KILL_COUNT_IMPOSSIBLE,
                f"{kills} kills impossible with {players} players",
                "Kill count exceeds possible opponents",
            )

        outcome = CheckOutcome(message="Kill count valid")
        if kills > 0 and submission.placement == players:
            outcome.flag(
                FlagCode.KILLS_AS_LAST_PLACE,
                Severity.WARNING,
                f"{kills} kills but finished last place",
                10,
            )
        if submission.placement == 1 and kills == players - 1:
            outcome.flag(
                FlagCode.PERFECT_GAME, Severity.INFO, "Perfect game (1st place, all kills)", 10
            )
            limits = DURATION_LIMITS.get(players)
            typical_min = limits.typical_min if limits else 30_000
            if submission.duration_ms < typical_min:
                outcome.flag(
                    FlagCode.FAST_PERFECT_GAME,
                    Severity.WARNING,
                    "Perfect game completed unusually fast",
                    20,
                )
        return outcome

    def check_frame_data(self, submission: MatchSubmission) -> CheckOutcome:
        signals = submission.anti_cheat
        outcome = CheckOutcome(message="Frame data acceptable")

        min_tick = self.config.min_tick_rate
        max_tick = self.config.max_tick_rate
        if signals.avg_tick_rate < min_tick or signals.avg_tick_rate > max_tick:
            outcome.flag(
                FlagCode.TICK_RATE_ANOMALY,
                Severity.WARNING,
                f"Tick rate {signals.avg_tick_rate:g} outside expected range "
                f"{min_tick:g}-{max_tick:g}",
                15,
            )

        expected_frames = (submission.duration_ms / 1000) * self.config.expected_tick_rate
        ratio = signals.frame_count / expected_frames if expected_frames > 0 else 0.0
        if ratio < MIN_FRAME_RATIO or ratio > MAX_FRAME_RATIO:
            outcome.flag(
                FlagCode.FRAME_COUNT_MISMATCH,
                Severity.WARNING,
                f"Frame count {signals.frame_count} doesn't match duration "
                f"(expected ~{round(expected_frames)})",
                20,
            )

        if signals.suspicious_flags:
            outcome.flag(
                FlagCode.CLIENT_SUSPICIOUS_FLAGS,
                Severity.WARNING,
                f"Client reported: {', '.join(signals.suspicious_flags)}",
                10 * len(signals.suspicious_flags),
            )
        return outcome

    def _load_history(
        self,
        check: CheckName,
        history: MatchHistory,
        wallet_address: str,
        since_ms: int,
        limit: int,
    ) -> list[MatchHistoryEntry] | None:
        try:
            return history.recent_matches(wallet_address, since_ms, limit)
        except StoreUnavailableError:
            if not fails_open(check):
                raise
            logger.warning("Match history unavailable for %s during %s", wallet_address, check.value)
            return None

    def check_win_patterns(
        self, history: MatchHistory, submission: MatchSubmission, now_ms: int
    ) -> CheckOutcome:
        recent = self._load_history(
            CheckName.WIN_PATTERNS,
            history,
            submission.wallet_address,
            now_ms - DAY_MS,
            self.config.win_history_limit,
        )
        if recent is None:
            outcome = CheckOutcome(message="Could not analyze patterns")
            outcome.flag(
                FlagCode.HISTORY_UNAVAILABLE, Severity.INFO, "Win pattern analysis skipped"
            )
            return outcome

        outcome = CheckOutcome(message="Win patterns acceptable")
        if len(recent) < self.config.min_matches_for_rate:
            outcome.message = "Insufficient history"
            return outcome

        wins = sum(1 for entry in recent if entry.placement == 1)
        win_rate = wins / len(recent)
        if win_rate > self.config.max_win_rate_24h:
            outcome.flag(
                FlagCode.EXCESSIVE_WIN_RATE,
                Severity.WARNING,
                f"Win rate {win_rate * 100:.0f}% in last 24h ({wins}/{len(recent)})",
                25,
            )

        if submission.placement == 1:
            streak = 1
            for entry in recent:
                if entry.placement != 1:
                    break
                streak += 1

            max_streak = self.config.max_consecutive_wins
            if streak >= max_streak:
                outcome.flag(
                    FlagCode.SUSPICIOUS_WIN_STREAK,
                    Severity.WARNING,
                    f"{streak} consecutive wins",
                    30,
                )
                if streak >= max_streak * 2:
                    outcome.reject = True
                    outcome.reason_code = ReasonCode.SUSPICIOUS_WIN_STREAK
                    outcome.message = f"Impossible win streak ({streak} in a row)"
        return outcome

    def check_rapid_matches(
        self, history: MatchHistory, submission: MatchSubmission, now_ms: int
    ) -> CheckOutcome:
        window_ms = self.config.rapid_match_window_ms
        recent = self._load_history(
            CheckName.RAPID_MATCHES,
            history,
            submission.wallet_address,
            now_ms - window_ms * RAPID_LOOKBACK_FACTOR,
            RAPID_LOOKBACK_LIMIT,
        )
        if recent is None:
            return CheckOutcome(message="Could not check rapid matches")

        outcome = CheckOutcome(message="Match frequency acceptable")
        rapid = sum(1 for entry in recent if now_ms - entry.processed_at_ms < window_ms)
        if rapid >= self.config.max_rapid_matches:
            outcome.flag(
                FlagCode.RAPID_MATCHES,
                Severity.WARNING,
                f"{rapid} matches in last {round(window_ms / 1000)}s",
                20,
            )
        return outcome
