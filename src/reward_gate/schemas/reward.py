"""Reward quote schemas."""

from __future__ import annotations

from pydantic import Field

from reward_gate.schemas.match import CamelModel, RewardBreakdownOut
from reward_gate.services.types import RewardCalculation


class RewardQuoteRequest(CamelModel):
    """Inputs for a reward calculation that touches no state."""

    placement: int
    player_count: int
    kills: int
    duration_ms: int
    anti_cheat_passed: bool = True
    bot_confidence: float = 0.0


class RewardCalculationOut(CamelModel):
    base_reward: float
    placement_multiplier: float
    kill_bonus: float
    survival_bonus: float
    anti_cheat_modifier: float
    total_reward: float
    breakdown: RewardBreakdownOut

    @classmethod
    def from_calculation(cls, calculation: RewardCalculation) -> RewardCalculationOut:
        return cls(
            base_reward=calculation.base_reward,
            placement_multiplier=calculation.placement_multiplier,
            kill_bonus=calculation.kill_bonus,
            survival_bonus=calculation.survival_bonus,
            anti_cheat_modifier=calculation.anti_cheat_modifier,
            total_reward=calculation.total_reward,
            breakdown=RewardBreakdownOut.from_breakdown(calculation.breakdown),
        )


class RewardQuoteResponse(CamelModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    calculation: RewardCalculationOut | None = None
