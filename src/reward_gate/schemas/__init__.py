"""Pydantic schemas for the HTTP surface."""

from .match import (
    AntiCheatPayload,
    MatchSubmitRequest,
    MatchSubmitResponse,
    RewardBreakdownOut,
    SecurityCheckOut,
    ValidationFlagOut,
)
from .reward import RewardCalculationOut, RewardQuoteRequest, RewardQuoteResponse
from .system import PublicConfig, ReasonCodeOut

__all__ = [
    "AntiCheatPayload",
    "MatchSubmitRequest",
    "MatchSubmitResponse",
    "PublicConfig",
    "ReasonCodeOut",
    "RewardBreakdownOut",
    "RewardCalculationOut",
    "RewardQuoteRequest",
    "RewardQuoteResponse",
    "SecurityCheckOut",
    "ValidationFlagOut",
]
