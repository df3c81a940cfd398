"""Exception hierarchy for the submission pipeline.

Only `InfrastructureError` and its subclasses are eligible for retry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from reward_gate.services.types import ReasonCode

if TYPE_CHECKING:
    from reward_gate.services.types import SecurityCheckResult, ValidationResult


class RewardGateError(RuntimeError):
    """Base exception raised for pipeline failures."""

    retryable: bool = False


class StructuralError(RewardGateError):
    """Malformed, missing or out-of-range request fields."""

    def __init__(self, message: str, *, reason_code: ReasonCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason_code = reason_code


class SecurityRejection(RewardGateError):
    """Deterministic rejection by the security gate given current state."""

    reason_code: ReasonCode = ReasonCode.RATE_LIMITED

    def __init__(
        self,
        message: str,
        *,
        reason_code: ReasonCode | None = None,
        security: SecurityCheckResult | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if reason_code is not None:
            self.reason_code = reason_code
        self.security = security


class NonceReplayError(SecurityRejection):
    """Raised when a nonce insert hits the uniqueness constraint."""

    reason_code = ReasonCode.NONCE_REPLAYED


class MatchAlreadyProcessedError(SecurityRejection):
    """Raised when a match id is registered twice."""

    reason_code = ReasonCode.MATCH_ALREADY_PROCESSED


class DailyCapExceededError(SecurityRejection):
    """Raised when a conditional counter increment would cross a daily cap."""

    reason_code = ReasonCode.DAILY_MATCH_CAP_EXCEEDED


class IntegrityRejection(RewardGateError):
    """The submitted match is implausible; retrying the same data is pointless."""

    def __init__(self, validation: ValidationResult) -> None:
        super().__init__(validation.reason_message)
        self.validation = validation
        self.reason_code = validation.reason_code


class InfrastructureError(RewardGateError):
    """A dependency (store or mint authority) could not be reached."""

    retryable = True
    reason_code: ReasonCode = ReasonCode.STORE_UNAVAILABLE


class StoreUnavailableError(InfrastructureError):
    """The persistent store failed to answer."""


class MintError(InfrastructureError):
    """The minting authority rejected or failed a request."""

    def __init__(self, message: str, *, error_code: str = "UNKNOWN_ERROR") -> None:
        super().__init__(message)
        self.error_code = error_code


class MintDisabledError(MintError):
    """Raised when minting is attempted while the integration is disabled."""

    def __init__(self, message: str = "Minting authority is not enabled") -> None:
        super().__init__(message, error_code="MINT_DISABLED")
