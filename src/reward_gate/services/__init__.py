"""Services for the reward gate."""

from reward_gate.services.errors import (
    InfrastructureError,
    IntegrityRejection,
    RewardGateError,
    SecurityRejection,
    StructuralError,
)
from reward_gate.services.match_validator import MatchValidator
from reward_gate.services.orchestrator import MatchDecision, MatchSubmissionPipeline
from reward_gate.services.reward_calculator import calculate_reward
from reward_gate.services.security_gate import SecurityGate
from reward_gate.services.store import SecurityStore

__all__ = [
    "InfrastructureError",
    "IntegrityRejection",
    "MatchDecision",
    "MatchSubmissionPipeline",
    "MatchValidator",
    "RewardGateError",
    "SecurityGate",
    "SecurityRejection",
    "SecurityStore",
    "StructuralError",
    "calculate_reward",
]
