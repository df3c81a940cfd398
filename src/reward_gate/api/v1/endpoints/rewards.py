"""Reward formula documentation and quotes."""

from __future__ import annotations

from fastapi import APIRouter

from reward_gate.schemas import RewardCalculationOut, RewardQuoteRequest, RewardQuoteResponse
from reward_gate.services.reward_calculator import (
    REWARD_FORMULA_DOCS,
    calculate_reward,
    validate_match_data,
)

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("/formula")
async def get_reward_formula() -> dict[str, str]:
    """Return the reward formula as markdown."""
    return {"format": "markdown", "formula": REWARD_FORMULA_DOCS}


@router.post("/quote", response_model=RewardQuoteResponse, response_model_exclude_none=True)
async def quote_reward(payload: RewardQuoteRequest) -> RewardQuoteResponse:
    """Compute a reward for the given inputs without touching any state."""
    errors = validate_match_data(
        placement=payload.placement,
        player_count=payload.player_count,
        kills=payload.kills,
        duration_ms=payload.duration_ms,
        bot_confidence=payload.bot_confidence,
    )
    if errors:
        return RewardQuoteResponse(valid=False, errors=errors)

    calculation = calculate_reward(
        placement=payload.placement,
        player_count=payload.player_count,
        kills=payload.kills,
        duration_ms=payload.duration_ms,
        anti_cheat_passed=payload.anti_cheat_passed,
        bot_confidence=payload.bot_confidence,
    )
    return RewardQuoteResponse(
        valid=True, calculation=RewardCalculationOut.from_calculation(calculation)
    )
