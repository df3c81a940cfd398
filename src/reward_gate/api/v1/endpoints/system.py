"""System and transparency endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from reward_gate.core.settings import settings
from reward_gate.schemas import PublicConfig, ReasonCodeOut
from reward_gate.services.match_validator import DURATION_LIMITS
from reward_gate.services.minting import get_mint_client
from reward_gate.services.types import REASON_CODE_DESCRIPTIONS

router = APIRouter(prefix="/system", tags=["system", "transparency"])


@router.get("/config", response_model=PublicConfig)
async def get_public_config() -> PublicConfig:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings.
    """
    return PublicConfig(
        version=settings.app_version,
        signature_required=bool(settings.match_signing_secret),
        minting_enabled=get_mint_client().enabled,
        nonce_expiry_ms=settings.nonce_expiry_ms,
        max_timestamp_drift_ms=settings.max_timestamp_drift_ms,
        rate_limit_window_ms=settings.rate_limit_window_ms,
        rate_limit_max_requests=settings.rate_limit_max_requests,
        daily_match_cap=settings.daily_match_cap,
        daily_reward_cap=settings.daily_reward_cap,
        max_reward_per_match=settings.max_reward_per_match,
        suspicious_threshold=settings.suspicious_threshold,
        ban_threshold=settings.ban_threshold,
        risk_flag_threshold=settings.risk_flag_threshold,
        risk_reject_threshold=settings.risk_reject_threshold,
        supported_player_counts=sorted(DURATION_LIMITS),
    )


@router.get("/reason-codes", response_model=list[ReasonCodeOut])
async def list_reason_codes() -> list[ReasonCodeOut]:
    """Return a human-readable description for every reason code."""
    return [
        ReasonCodeOut(code=code.value, description=description)
        for code, description in REASON_CODE_DESCRIPTIONS.items()
    ]
