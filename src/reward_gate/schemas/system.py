"""Public configuration and reason-code schemas."""

from __future__ import annotations

from reward_gate.schemas.match import CamelModel


class ReasonCodeOut(CamelModel):
    code: str
    description: str


class PublicConfig(CamelModel):
    """Thresholds and caps a client may rely on."""

    version: str
    signature_required: bool
    minting_enabled: bool
    nonce_expiry_ms: int
    max_timestamp_drift_ms: int
    rate_limit_window_ms: int
    rate_limit_max_requests: int
    daily_match_cap: int
    daily_reward_cap: float
    max_reward_per_match: float
    suspicious_threshold: float
    ban_threshold: float
    risk_flag_threshold: int
    risk_reject_threshold: int
    supported_player_counts: list[int]
