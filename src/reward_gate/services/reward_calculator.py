"""Reward formula for accepted matches.

Pure and deterministic: identical inputs always yield identical output.
"""

from __future__ import annotations

from reward_gate.services.types import RewardBreakdown, RewardCalculation

__all__ = [
    "BASE_REWARD",
    "PLACEMENT_MULTIPLIERS",
    "REWARD_FORMULA_DOCS",
    "calculate_reward",
    "validate_match_data",
]

BASE_REWARD: dict[int, float] = {2: 10.0, 3: 15.0, 5: 25.0}
DEFAULT_BASE_REWARD = 10.0

PLACEMENT_MULTIPLIERS: dict[int, float] = {1: 2.0, 2: 1.0, 3: 0.5, 4: 0.25, 5: 0.1}
DEFAULT_PLACEMENT_MULTIPLIER = 0.1

KILL_BONUS = 5.0
SURVIVAL_BONUS_PER_MINUTE = 2.0
MAX_SURVIVAL_BONUS = 20.0

SUSPICIOUS_BOT_CONFIDENCE = 0.7
SUSPICIOUS_MODIFIER = 0.5
FAILED_ANTI_CHEAT_MODIFIER = 0.0

MIN_REWARD = 0.0
MAX_REWARD_PER_MATCH = 1000.0

VALID_PLAYER_COUNTS = (2, 3, 5)
MIN_DURATION_MS = 5_000
MAX_DURATION_MS = 600_000


def calculate_reward(
    placement: int,
    player_count: int,
    kills: int,
    duration_ms: int,
    anti_cheat_passed: bool,
    bot_confidence: float,
) -> RewardCalculation:
    """Compute the reward for a match and a transparent breakdown.

    Args:
        placement: Final ranking, 1 is the winner.
        player_count: Number of players in the match.
        kills: Kills credited to the player.
        duration_ms: Match duration in milliseconds.
        anti_cheat_passed: False zeroes the reward.
        bot_confidence: Values at or above 0.7 halve the reward.

    Returns:
        RewardCalculation whose `total_reward` lies in [0, 1000].
    """
    base_reward = BASE_REWARD.get(player_count, DEFAULT_BASE_REWARD)
    placement_multiplier = PLACEMENT_MULTIPLIERS.get(placement, DEFAULT_PLACEMENT_MULTIPLIER)
    kill_bonus = kills * KILL_BONUS
    survival_bonus = min((duration_ms / 60_000) * SURVIVAL_BONUS_PER_MINUTE, MAX_SURVIVAL_BONUS)

    if not anti_cheat_passed:
        modifier = FAILED_ANTI_CHEAT_MODIFIER
    elif bot_confidence >= SUSPICIOUS_BOT_CONFIDENCE:
        modifier = SUSPICIOUS_MODIFIER
    else:
        modifier = 1.0

    base_with_placement = base_reward * placement_multiplier
    with_bonuses = base_with_placement + kill_bonus + survival_bonus
    with_modifier = with_bonuses * modifier
    total = min(max(with_modifier, MIN_REWARD), MAX_REWARD_PER_MATCH)

    breakdown = RewardBreakdown(
        base=base_reward,
        placement=base_with_placement - base_reward,
        kills=kill_bonus,
        survival=survival_bonus,
        penalties=with_modifier - with_bonuses,
        final=total,
    )
    return RewardCalculation(
        base_reward=base_reward,
        placement_multiplier=placement_multiplier,
        kill_bonus=kill_bonus,
        survival_bonus=survival_bonus,
        anti_cheat_modifier=modifier,
        total_reward=total,
        breakdown=breakdown,
    )


def validate_match_data(
    placement: int,
    player_count: int,
    kills: int,
    duration_ms: int,
    bot_confidence: float,
) -> list[str]:
    """Return range errors for reward inputs; an empty list means valid."""
    errors: list[str] = []
    if placement < 1 or placement > player_count:
        errors.append(f"Invalid placement: {placement} (must be 1-{player_count})")
    if player_count not in VALID_PLAYER_COUNTS:
        errors.append(f"Invalid player count: {player_count} (must be 2, 3, or 5)")
    if kills < 0 or kills >= player_count:
        errors.append(f"Invalid kills: {kills} (must be 0-{player_count - 1})")
    if duration_ms < MIN_DURATION_MS or duration_ms > MAX_DURATION_MS:
        errors.append(f"Invalid duration: {duration_ms}ms (must be 5s-10min)")
    if bot_confidence < 0 or bot_confidence > 1:
        errors.append(f"Invalid bot confidence: {bot_confidence} (must be 0-1)")
    return errors


REWARD_FORMULA_DOCS = """
## Reward Formula

Total Reward = (Base x Placement + Kills + Survival) x AntiCheat

### Components

**Base reward (by player count):**
- 2 players: 10
- 3 players: 15
- 5 players: 25

**Placement multiplier:**
- 1st: x2.0
- 2nd: x1.0
- 3rd: x0.5
- 4th: x0.25
- 5th: x0.1

**Kill bonus:** +5 per kill

**Survival bonus:** +2 per minute (max 20)

**Anti-cheat modifier:**
- Passed: x1.0
- Suspicious (bot confidence >= 70%): x0.5
- Failed: x0 (no reward)

**Caps:**
- Max per match: 1000
- Daily per wallet: 5000
""".strip()
