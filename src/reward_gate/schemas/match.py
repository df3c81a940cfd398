"""Match submission schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from reward_gate.services.orchestrator import MatchDecision
from reward_gate.services.types import (
    AntiCheatSignals,
    MatchSubmission,
    RewardBreakdown,
    SecurityCheck,
    ValidationFlag,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AntiCheatPayload(CamelModel):
    """Client-reported anti-cheat telemetry."""

    input_hash: str = Field(default="", max_length=256)
    frame_count: int = Field(..., ge=0)
    avg_tick_rate: float = Field(..., ge=0)
    suspicious_flags: list[str] = Field(default_factory=list, max_length=32)
    input_timing_variance: float = Field(..., ge=0)
    movement_hash: str = Field(default="", max_length=256)


class MatchSubmitRequest(CamelModel):
    """Schema for submitting a finished match."""

    wallet_address: str = Field(..., min_length=1, max_length=42)
    match_id: str = Field(..., min_length=32, max_length=256)
    placement: int = Field(..., ge=1)
    player_count: Literal[2, 3, 5]
    duration_ms: int = Field(..., ge=0)
    kills: int = Field(..., ge=0)
    anti_cheat: AntiCheatPayload
    timestamp: int = Field(..., description="Client timestamp in epoch milliseconds")
    client_signature: str = Field(..., max_length=512)
    nonce: str = Field(..., min_length=32, max_length=256)

    @model_validator(mode="after")
    def _placement_within_player_count(self) -> MatchSubmitRequest:
        if self.placement > self.player_count:
            raise ValueError(f"placement must be between 1 and {self.player_count}")
        return self

    def to_submission(self) -> MatchSubmission:
        return MatchSubmission(
            wallet_address=self.wallet_address,
            match_id=self.match_id,
            placement=self.placement,
            player_count=self.player_count,
            duration_ms=self.duration_ms,
            kills=self.kills,
            anti_cheat=AntiCheatSignals(
                input_timing_variance=self.anti_cheat.input_timing_variance,
                frame_count=self.anti_cheat.frame_count,
                avg_tick_rate=self.anti_cheat.avg_tick_rate,
                suspicious_flags=tuple(self.anti_cheat.suspicious_flags),
                input_hash=self.anti_cheat.input_hash,
                movement_hash=self.anti_cheat.movement_hash,
            ),
            timestamp_ms=self.timestamp,
            nonce=self.nonce,
            client_signature=self.client_signature,
        )


class ValidationFlagOut(CamelModel):
    code: str
    severity: str
    message: str

    @classmethod
    def from_flag(cls, flag: ValidationFlag) -> ValidationFlagOut:
        return cls(code=flag.code.value, severity=flag.severity.value, message=flag.message)


class SecurityCheckOut(CamelModel):
    name: str
    passed: bool
    details: str

    @classmethod
    def from_check(cls, check: SecurityCheck) -> SecurityCheckOut:
        return cls(name=check.name, passed=check.passed, details=check.details)


class RewardBreakdownOut(CamelModel):
    base: float
    placement: float
    kills: float
    survival: float
    penalties: float
    final: float

    @classmethod
    def from_breakdown(cls, breakdown: RewardBreakdown) -> RewardBreakdownOut:
        return cls(**breakdown.as_dict())


class MatchSubmitResponse(CamelModel):
    """Decision returned for accepted and rejected submissions alike."""

    allowed: bool
    match_id: str
    placement: int
    player_count: int
    calculated_reward: float
    reason_code: str
    reason_message: str
    risk_score: int
    validation_flags: list[ValidationFlagOut] = Field(default_factory=list)
    reward_breakdown: RewardBreakdownOut | None = None
    security_checks: list[SecurityCheckOut] | None = None
    request_id: str
    settlement_reference: str | None = None
    mint_error: str | None = None

    @classmethod
    def from_decision(cls, decision: MatchDecision) -> MatchSubmitResponse:
        return cls(
            allowed=decision.allowed,
            match_id=decision.match_id,
            placement=decision.placement,
            player_count=decision.player_count,
            calculated_reward=decision.calculated_reward,
            reason_code=decision.reason_code.value,
            reason_message=decision.reason_message,
            risk_score=decision.risk_score,
            validation_flags=[ValidationFlagOut.from_flag(f) for f in decision.validation_flags],
            reward_breakdown=(
                RewardBreakdownOut.from_breakdown(decision.reward_breakdown)
                if decision.reward_breakdown is not None
                else None
            ),
            security_checks=[SecurityCheckOut.from_check(c) for c in decision.security_checks]
            or None,
            request_id=decision.request_id,
            settlement_reference=decision.settlement_reference,
            mint_error=decision.mint_error,
        )
