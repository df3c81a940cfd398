"""Match submission pipeline.

Drives a submission through structure, security, integrity, reward,
recording and minting. Each stage either advances the state or raises a
rejection; rejections are turned into a decision in one place.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from reward_gate.core.security import canonical_payload, verify_hmac_signature
from reward_gate.core.settings import Settings, settings
from reward_gate.db.time import day_bucket, utcnow
from reward_gate.services.errors import (
    InfrastructureError,
    IntegrityRejection,
    MintError,
    SecurityRejection,
    StructuralError,
)
from reward_gate.services.match_validator import MatchValidator
from reward_gate.services.minting import MintClient
from reward_gate.services.reward_calculator import calculate_reward
from reward_gate.services.security_gate import SecurityGate
from reward_gate.services.store import SecurityStore
from reward_gate.services.types import (
    MatchSubmission,
    ReasonCode,
    RewardBreakdown,
    SecurityCheck,
    ValidationFlag,
    ValidationResult,
)

logger = logging.getLogger(__name__)

__all__ = [
    "MatchDecision",
    "MatchSubmissionPipeline",
    "PipelineState",
    "signed_fields",
]

SUBMIT_ENDPOINT = "match-submit"
AUDIT_EVENT = "match_submit"


class PipelineState(str, Enum):
    RECEIVED = "RECEIVED"
    STRUCTURE_VALIDATED = "STRUCTURE_VALIDATED"
    SECURITY_CHECKED = "SECURITY_CHECKED"
    INTEGRITY_VALIDATED = "INTEGRITY_VALIDATED"
    REWARD_CALCULATED = "REWARD_CALCULATED"
    RECORDED = "RECORDED"
    RESPONDED = "RESPONDED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class MatchDecision:
    """Terminal outcome of one submission."""

    allowed: bool
    match_id: str
    placement: int
    player_count: int
    calculated_reward: float
    reason_code: ReasonCode
    reason_message: str
    risk_score: int
    request_id: str
    validation_flags: tuple[ValidationFlag, ...] = ()
    reward_breakdown: RewardBreakdown | None = None
    security_checks: tuple[SecurityCheck, ...] = ()
    settlement_reference: str | None = None
    mint_error: str | None = None
    states: tuple[PipelineState, ...] = ()


@dataclass
class _Trace:
    request_id: str
    states: list[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    security_checks: tuple[SecurityCheck, ...] = ()
    validation: ValidationResult | None = None

    def advance(self, state: PipelineState) -> None:
        self.states.append(state)


def signed_fields(submission: MatchSubmission) -> dict[str, Any]:
    """Return the fields covered by the client signature."""
    return {
        "walletAddress": submission.wallet_address,
        "matchId": submission.match_id,
        "placement": submission.placement,
        "playerCount": submission.player_count,
        "durationMs": submission.duration_ms,
        "kills": submission.kills,
        "timestamp": submission.timestamp_ms,
        "nonce": submission.nonce,
    }


class MatchSubmissionPipeline:
    """Process match submissions end to end."""

    def __init__(
        self,
        store: SecurityStore,
        *,
        mint_client: MintClient | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock
        self.gate = SecurityGate(store, config=config, clock=clock)
        self.validator = MatchValidator(config=config, clock=clock)
        self.mint_client = mint_client

    def _now_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def verify_structure(self, submission: MatchSubmission) -> None:
        """Check the timestamp window and, when configured, the client signature.

        Raises:
            StructuralError: The timestamp is outside the allowed window.
            SecurityRejection: The signature does not match the payload.
        """
        drift = abs(self._now_ms() - submission.timestamp_ms)
        if drift > self.config.max_timestamp_drift_ms:
            raise StructuralError("Request timestamp outside the allowed window")

        secret = self.config.match_signing_secret
        if secret:
            payload = canonical_payload(signed_fields(submission))
            if not verify_hmac_signature(payload, submission.client_signature, secret):
                raise SecurityRejection(
                    "Client signature does not match the submitted payload",
                    reason_code=ReasonCode.INVALID_SIGNATURE,
                )

    async def process(
        self, submission: MatchSubmission, request_id: str | None = None
    ) -> MatchDecision:
        """Run the full pipeline for one submission.

        Raises:
            StructuralError: The request is malformed; nothing was touched.
            InfrastructureError: A fail-closed dependency was unavailable. A nonce
                consumed by this request is released so the retry can reuse it.
        """
        trace = _Trace(request_id=request_id or uuid.uuid4().hex)
        try:
            return await self._run(submission, trace)
        except (SecurityRejection, IntegrityRejection) as exc:
            decision = self._rejected(submission, trace, exc)
        except StructuralError as exc:
            logger.warning(
                "Structural error request=%s match=%s: %s",
                trace.request_id,
                submission.match_id,
                exc.message,
            )
            raise
        except InfrastructureError as exc:
            logger.error(
                "Infrastructure error request=%s match=%s: %s",
                trace.request_id,
                submission.match_id,
                exc,
            )
            if self._nonce_held(trace):
                self.gate.release_nonce(submission.nonce, submission.wallet_address)
            self._audit(submission, trace, result="error", reason_code=exc.reason_code)
            raise

        self._audit(
            submission,
            trace,
            result="rejected",
            reason_code=decision.reason_code,
            risk_score=decision.risk_score,
        )
        logger.info(
            "Match rejected request=%s match=%s wallet=%s code=%s risk=%s",
            trace.request_id,
            submission.match_id,
            submission.wallet_address,
            decision.reason_code.value,
            decision.risk_score,
        )
        return decision

    @staticmethod
    def _nonce_held(trace: _Trace) -> bool:
        # The gate releases its own nonce; after recording the match the nonce stays spent.
        states = trace.states
        return PipelineState.SECURITY_CHECKED in states and PipelineState.RECORDED not in states

    async def _run(self, submission: MatchSubmission, trace: _Trace) -> MatchDecision:
        self.verify_structure(submission)
        trace.advance(PipelineState.STRUCTURE_VALIDATED)

        security = self.gate.perform_security_check(
            submission.wallet_address,
            submission.match_id,
            submission.nonce,
            SUBMIT_ENDPOINT,
        )
        trace.security_checks = security.checks
        if not security.passed:
            raise SecurityRejection(
                security.block_reason or "Security check failed",
                reason_code=security.block_code,
                security=security,
            )
        trace.advance(PipelineState.SECURITY_CHECKED)

        validation = self.validator.validate_match(self.store, submission)
        trace.validation = validation
        if not validation.allowed:
            raise IntegrityRejection(validation)
        trace.advance(PipelineState.INTEGRITY_VALIDATED)

        reward = calculate_reward(
            placement=submission.placement,
            player_count=submission.player_count,
            kills=submission.kills,
            duration_ms=submission.duration_ms,
            anti_cheat_passed=validation.risk_score < self.config.risk_flag_threshold,
            bot_confidence=validation.risk_score / 100,
        )
        caps = self.gate.check_reward_caps(submission.wallet_address, reward.total_reward)
        trace.security_checks = trace.security_checks + caps.checks
        if not caps.passed:
            raise SecurityRejection(
                caps.block_reason or "Reward cap exceeded",
                reason_code=caps.block_code,
                security=caps,
            )
        trace.advance(PipelineState.REWARD_CALCULATED)

        now = self.clock()
        self.store.record_accepted_match(
            wallet_address=submission.wallet_address,
            match_id=submission.match_id,
            placement=submission.placement,
            player_count=submission.player_count,
            reward_amount=reward.total_reward,
            day=day_bucket(now),
            processed_at_ms=int(now.timestamp() * 1000),
            daily_match_cap=self.config.daily_match_cap,
            daily_reward_cap=self.config.daily_reward_cap,
        )
        trace.advance(PipelineState.RECORDED)

        settlement_reference, mint_error = await self._settle(submission, reward.total_reward)
        trace.advance(PipelineState.RESPONDED)

        decision = MatchDecision(
            allowed=True,
            match_id=submission.match_id,
            placement=submission.placement,
            player_count=submission.player_count,
            calculated_reward=reward.total_reward,
            reason_code=ReasonCode.VALID,
            reason_message=validation.reason_message,
            risk_score=validation.risk_score,
            request_id=trace.request_id,
            validation_flags=validation.flags,
            reward_breakdown=reward.breakdown,
            security_checks=trace.security_checks,
            settlement_reference=settlement_reference,
            mint_error=mint_error,
            states=tuple(trace.states),
        )
        self._audit(
            submission,
            trace,
            result="accepted",
            reason_code=ReasonCode.VALID,
            risk_score=validation.risk_score,
            extra={"reward": reward.total_reward, "settlementReference": settlement_reference},
        )
        logger.info(
            "Match accepted request=%s match=%s wallet=%s reward=%s risk=%s",
            trace.request_id,
            submission.match_id,
            submission.wallet_address,
            reward.total_reward,
            validation.risk_score,
        )
        return decision

    async def _settle(
        self, submission: MatchSubmission, amount: float
    ) -> tuple[str | None, str | None]:
        """Request minting for a recorded match; failures never undo the record."""
        if self.mint_client is None or not self.mint_client.enabled or amount <= 0:
            return None, None

        try:
            result = await self.mint_client.mint(
                submission.match_id, submission.wallet_address, amount
            )
        except MintError as exc:
            logger.error("Mint failed for match %s: %s", submission.match_id, exc)
            return None, exc.error_code

        if not result.success:
            return None, result.error_code
        if result.tx_reference:
            try:
                self.store.set_settlement_reference(submission.match_id, result.tx_reference)
            except InfrastructureError:
                logger.error(
                    "Could not store settlement reference for %s",
                    submission.match_id,
                    exc_info=True,
                )
        return result.tx_reference, None

    def _rejected(
        self,
        submission: MatchSubmission,
        trace: _Trace,
        exc: SecurityRejection | IntegrityRejection,
    ) -> MatchDecision:
        trace.advance(PipelineState.REJECTED)
        if isinstance(exc, IntegrityRejection):
            validation = exc.validation
            reason_code = validation.reason_code
            message = validation.reason_message
            risk_score = validation.risk_score
            flags = validation.flags
        else:
            reason_code = exc.reason_code
            message = exc.message
            risk_score = exc.security.risk_score if exc.security is not None else 100
            flags = trace.validation.flags if trace.validation is not None else ()
        return MatchDecision(
            allowed=False,
            match_id=submission.match_id,
            placement=submission.placement,
            player_count=submission.player_count,
            calculated_reward=0.0,
            reason_code=reason_code,
            reason_message=message,
            risk_score=risk_score,
            request_id=trace.request_id,
            validation_flags=flags,
            security_checks=trace.security_checks,
            states=tuple(trace.states),
        )

    def _audit(
        self,
        submission: MatchSubmission,
        trace: _Trace,
        *,
        result: str,
        reason_code: ReasonCode | None,
        risk_score: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "placement": submission.placement,
            "playerCount": submission.player_count,
            "durationMs": submission.duration_ms,
            "kills": submission.kills,
            "states": [state.value for state in trace.states],
        }
        if extra:
            payload.update(extra)
        self.store.write_audit(
            event_type=AUDIT_EVENT,
            result=result,
            created_at_ms=self._now_ms(),
            wallet_address=submission.wallet_address,
            match_id=submission.match_id,
            endpoint=SUBMIT_ENDPOINT,
            request_id=trace.request_id,
            payload=payload,
            reason_code=reason_code.value if reason_code is not None else None,
            risk_score=risk_score,
            security_checks=[check.as_dict() for check in trace.security_checks],
        )
