"""Domain types shared by the gate, the validator and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ReasonCode(str, Enum):
    """Closed set of decision codes returned to clients and audit tooling."""

    VALID = "VALID"

    # Integrity
    DURATION_TOO_SHORT = "DURATION_TOO_SHORT"
    DURATION_TOO_LONG = "DURATION_TOO_LONG"
    DURATION_IMPOSSIBLE = "DURATION_IMPOSSIBLE"
    ZERO_INPUT_VARIANCE = "ZERO_INPUT_VARIANCE"
    LOW_INPUT_VARIANCE = "LOW_INPUT_VARIANCE"
    SUSPICIOUS_WIN_STREAK = "SUSPICIOUS_WIN_STREAK"
    EXCESSIVE_WIN_RATE = "EXCESSIVE_WIN_RATE"
    RAPID_MATCHES = "RAPID_MATCHES"
    FRAME_COUNT_MISMATCH = "FRAME_COUNT_MISMATCH"
    TICK_RATE_ANOMALY = "TICK_RATE_ANOMALY"
    KILL_COUNT_IMPOSSIBLE = "KILL_COUNT_IMPOSSIBLE"
    PLACEMENT_INVALID = "PLACEMENT_INVALID"
    BOT_DETECTED = "BOT_DETECTED"

    # Security
    INVALID_WALLET = "INVALID_WALLET"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    NONCE_REPLAYED = "NONCE_REPLAYED"
    RATE_LIMITED = "RATE_LIMITED"
    MATCH_ALREADY_PROCESSED = "MATCH_ALREADY_PROCESSED"
    DAILY_MATCH_CAP_EXCEEDED = "DAILY_MATCH_CAP_EXCEEDED"
    DAILY_REWARD_CAP_EXCEEDED = "DAILY_REWARD_CAP_EXCEEDED"
    PER_MATCH_CAP_EXCEEDED = "PER_MATCH_CAP_EXCEEDED"
    BOT_BANNED = "BOT_BANNED"

    # Infrastructure
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


REASON_CODE_DESCRIPTIONS: dict[ReasonCode, str] = {
    ReasonCode.VALID: "Match passed all validation checks",
    ReasonCode.DURATION_TOO_SHORT: "Match ended faster than physically possible",
    ReasonCode.DURATION_TOO_LONG: "Match exceeded maximum allowed duration",
    ReasonCode.DURATION_IMPOSSIBLE: "Actions performed faster than possible",
    ReasonCode.ZERO_INPUT_VARIANCE: "Input timing indicates automated play",
    ReasonCode.LOW_INPUT_VARIANCE: "Input timing suspiciously consistent",
    ReasonCode.SUSPICIOUS_WIN_STREAK: "Improbable consecutive win count",
    ReasonCode.EXCESSIVE_WIN_RATE: "Win rate exceeds statistical probability",
    ReasonCode.RAPID_MATCHES: "Matches submitted faster than possible to play",
    ReasonCode.FRAME_COUNT_MISMATCH: "Frame count inconsistent with duration",
    ReasonCode.TICK_RATE_ANOMALY: "Game tick rate outside normal range",
    ReasonCode.KILL_COUNT_IMPOSSIBLE: "Kill count exceeds available opponents",
    ReasonCode.PLACEMENT_INVALID: "Placement outside valid range",
    ReasonCode.BOT_DETECTED: "Multiple indicators suggest automated play",
    ReasonCode.INVALID_WALLET: "Wallet address is not a valid 0x-prefixed address",
    ReasonCode.INVALID_SIGNATURE: "Client signature does not match the submitted payload",
    ReasonCode.NONCE_REPLAYED: "Nonce was already used (replay attempt)",
    ReasonCode.RATE_LIMITED: "Too many requests for this wallet in the current window",
    ReasonCode.MATCH_ALREADY_PROCESSED: "Match has already been processed",
    ReasonCode.DAILY_MATCH_CAP_EXCEEDED: "Daily match limit reached for this wallet",
    ReasonCode.DAILY_REWARD_CAP_EXCEEDED: "Daily reward limit reached for this wallet",
    ReasonCode.PER_MATCH_CAP_EXCEEDED: "Reward exceeds the per-match maximum",
    ReasonCode.BOT_BANNED: "Bot confidence exceeds the ban threshold",
    ReasonCode.STORE_UNAVAILABLE: "Backing store unavailable; retry later",
}


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class FlagCode(str, Enum):
    """Codes attached to individual validation flags."""

    INVALID_PLAYER_COUNT = "INVALID_PLAYER_COUNT"
    INVALID_PLACEMENT = "INVALID_PLACEMENT"
    DURATION_TOO_SHORT = "DURATION_TOO_SHORT"
    DURATION_TOO_LONG = "DURATION_TOO_LONG"
    DURATION_IMPOSSIBLE = "DURATION_IMPOSSIBLE"
    DURATION_UNUSUALLY_SHORT = "DURATION_UNUSUALLY_SHORT"
    DURATION_UNUSUALLY_LONG = "DURATION_UNUSUALLY_LONG"
    ZERO_INPUT_VARIANCE = "ZERO_INPUT_VARIANCE"
    LOW_INPUT_VARIANCE = "LOW_INPUT_VARIANCE"
    LOW_VARIANCE_WINNER = "LOW_VARIANCE_WINNER"
    HIGH_INPUT_VARIANCE = "HIGH_INPUT_VARIANCE"
    KILL_COUNT_IMPOSSIBLE = "KILL_COUNT_IMPOSSIBLE"
    KILLS_AS_LAST_PLACE = "KILLS_AS_LAST_PLACE"
    PERFECT_GAME = "PERFECT_GAME"
    FAST_PERFECT_GAME = "FAST_PERFECT_GAME"
    TICK_RATE_ANOMALY = "TICK_RATE_ANOMALY"
    FRAME_COUNT_MISMATCH = "FRAME_COUNT_MISMATCH"
    CLIENT_SUSPICIOUS_FLAGS = "CLIENT_SUSPICIOUS_FLAGS"
    EXCESSIVE_WIN_RATE = "EXCESSIVE_WIN_RATE"
    SUSPICIOUS_WIN_STREAK = "SUSPICIOUS_WIN_STREAK"
    RAPID_MATCHES = "RAPID_MATCHES"
    HISTORY_UNAVAILABLE = "HISTORY_UNAVAILABLE"


class UsageType(str, Enum):
    REWARD = "reward"
    MATCH = "match"


@dataclass(frozen=True)
class AntiCheatSignals:
    """Client-reported telemetry used by the integrity validator."""

    input_timing_variance: float
    frame_count: int
    avg_tick_rate: float
    suspicious_flags: tuple[str, ...] = ()
    input_hash: str = ""
    movement_hash: str = ""


@dataclass(frozen=True)
class MatchSubmission:
    """A match result as submitted by the game client. Never mutated."""

    wallet_address: str
    match_id: str
    placement: int
    player_count: int
    duration_ms: int
    kills: int
    anti_cheat: AntiCheatSignals
    timestamp_ms: int
    nonce: str
    client_signature: str


@dataclass(frozen=True)
class ValidationFlag:
    code: FlagCode
    severity: Severity
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "severity": self.severity.value, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the integrity validator."""

    allowed: bool
    reason_code: ReasonCode
    reason_message: str
    risk_score: int
    flags: tuple[ValidationFlag, ...] = ()


@dataclass(frozen=True)
class SecurityCheck:
    name: str
    passed: bool
    details: str

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "details": self.details}


@dataclass(frozen=True)
class SecurityCheckResult:
    """Aggregate of every security sub-check that ran."""

    passed: bool
    checks: tuple[SecurityCheck, ...]
    risk_score: int
    block_reason: str | None = None
    block_code: ReasonCode | None = None
    degraded: bool = False


@dataclass(frozen=True)
class RewardBreakdown:
    base: float
    placement: float
    kills: float
    survival: float
    penalties: float
    final: float

    def as_dict(self) -> dict[str, float]:
        return {
            "base": self.base,
            "placement": self.placement,
            "kills": self.kills,
            "survival": self.survival,
            "penalties": self.penalties,
            "final": self.final,
        }


@dataclass(frozen=True)
class RewardCalculation:
    base_reward: float
    placement_multiplier: float
    kill_bonus: float
    survival_bonus: float
    anti_cheat_modifier: float
    total_reward: float
    breakdown: RewardBreakdown


@dataclass(frozen=True)
class MatchHistoryEntry:
    """One previously processed match as seen by pattern analysis."""

    placement: int
    processed_at_ms: int


@dataclass
class CheckOutcome:
    """Partial result of a single integrity check."""

    flags: list[ValidationFlag] = field(default_factory=list)
    risk_score: int = 0
    reject: bool = False
    reason_code: ReasonCode | None = None
    message: str = ""

    def flag(self, code: FlagCode, severity: Severity, message: str, score: int = 0) -> None:
        self.flags.append(ValidationFlag(code=code, severity=severity, message=message))
        self.risk_score += score
