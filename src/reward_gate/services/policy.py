"""Failure policy per check when the backing store cannot be reached.

Only rate limiting and the history-based pattern checks fail open. Every
other check surfaces a retryable infrastructure error.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class FailurePolicy(Enum):
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


class CheckName(str, Enum):
    """Stable names of security and integrity checks."""

    WALLET_VALIDATION = "WALLET_VALIDATION"
    REPLAY_PREVENTION = "REPLAY_PREVENTION"
    RATE_LIMIT = "RATE_LIMIT"
    MATCH_UNIQUENESS = "MATCH_UNIQUENESS"
    DAILY_MATCH_CAP = "DAILY_MATCH_CAP"
    DAILY_REWARD_CAP = "DAILY_REWARD_CAP"
    PER_MATCH_CAP = "PER_MATCH_CAP"
    BOT_DETECTION = "BOT_DETECTION"
    WIN_PATTERNS = "WIN_PATTERNS"
    RAPID_MATCHES = "RAPID_MATCHES"


CHECK_POLICIES: Final[dict[CheckName, FailurePolicy]] = {
    CheckName.REPLAY_PREVENTION: FailurePolicy.FAIL_CLOSED,
    CheckName.RATE_LIMIT: FailurePolicy.FAIL_OPEN,
    CheckName.MATCH_UNIQUENESS: FailurePolicy.FAIL_CLOSED,
    CheckName.DAILY_MATCH_CAP: FailurePolicy.FAIL_CLOSED,
    CheckName.DAILY_REWARD_CAP: FailurePolicy.FAIL_CLOSED,
    CheckName.WIN_PATTERNS: FailurePolicy.FAIL_OPEN,
    CheckName.RAPID_MATCHES: FailurePolicy.FAIL_OPEN,
}


def policy_for(check: CheckName) -> FailurePolicy:
    """Return the failure policy of a store-backed check.

    Checks without an explicit entry fail closed.
    """
    return CHECK_POLICIES.get(check, FailurePolicy.FAIL_CLOSED)


def fails_open(check: CheckName) -> bool:
    return policy_for(check) is FailurePolicy.FAIL_OPEN
