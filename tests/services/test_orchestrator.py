"""Tests for the match submission pipeline."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from reward_gate.core.security import canonical_payload, sign_payload
from reward_gate.core.settings import Settings
from reward_gate.models import AuditLogEntry, ProcessedMatch
from reward_gate.services.errors import MintError, StoreUnavailableError, StructuralError
from reward_gate.services.minting import MintClient, MintResult
from reward_gate.services.orchestrator import MatchSubmissionPipeline, PipelineState, signed_fields
from reward_gate.services.store import SecurityStore
from reward_gate.services.types import ReasonCode, UsageType
from tests.conftest import TEST_WALLET, FrozenClock

DAY = "2026-03-14"


@pytest.fixture()
def pipeline(store: SecurityStore, test_settings: Settings, clock: FrozenClock) -> MatchSubmissionPipeline:
    return MatchSubmissionPipeline(store, config=test_settings, clock=clock)


def audit_rows(db_session: Session) -> list[AuditLogEntry]:
    return list(db_session.execute(select(AuditLogEntry).order_by(AuditLogEntry.id)).scalars())


@pytest.mark.asyncio
async def test_accepted_match_is_rewarded_and_recorded(
    pipeline, make_submission, store, db_session
) -> None:
    submission = make_submission(placement=1, kills=3, duration_ms=180_000)

    decision = await pipeline.process(submission, request_id="req-1")

    assert decision.allowed is True
    assert decision.reason_code is ReasonCode.VALID
    assert decision.calculated_reward == pytest.approx(71)
    assert decision.reward_breakdown is not None
    assert decision.reward_breakdown.survival == pytest.approx(6)
    assert decision.request_id == "req-1"
    assert decision.states[-1] is PipelineState.RESPONDED
    assert PipelineState.RECORDED in decision.states
    assert decision.mint_error is None
    assert [check.name for check in decision.security_checks][-2:] == [
        "DAILY_REWARD_CAP",
        "PER_MATCH_CAP",
    ]

    assert store.match_exists(submission.match_id)
    assert store.daily_usage_total(TEST_WALLET, UsageType.REWARD, DAY) == pytest.approx(71)
    assert store.daily_usage_total(TEST_WALLET, UsageType.MATCH, DAY) == 1

    (entry,) = audit_rows(db_session)
    assert entry.result == "accepted"
    assert entry.reason_code == "VALID"
    assert entry.request_id == "req-1"


@pytest.mark.asyncio
async def test_integrity_rejection_burns_nonce_but_records_nothing(
    pipeline, make_submission, store, db_session
) -> None:
    submission = make_submission(input_timing_variance=3)

    decision = await pipeline.process(submission)

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.ZERO_INPUT_VARIANCE
    assert decision.risk_score == 100
    assert decision.calculated_reward == 0
    assert decision.reward_breakdown is None
    assert decision.states[-1] is PipelineState.REJECTED
    assert store.nonce_exists(submission.nonce)
    assert not store.match_exists(submission.match_id)
    assert store.daily_usage_total(TEST_WALLET, UsageType.MATCH, DAY) == 0
    assert audit_rows(db_session)[0].result == "rejected"


@pytest.mark.asyncio
async def test_replayed_nonce_is_rejected(pipeline, make_submission, store) -> None:
    first = make_submission()
    await pipeline.process(first)

    replay = make_submission(nonce=first.nonce)
    decision = await pipeline.process(replay)

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.NONCE_REPLAYED
    assert not store.match_exists(replay.match_id)


@pytest.mark.asyncio
async def test_same_match_twice_is_rewarded_once(pipeline, make_submission, store) -> None:
    first = make_submission()
    accepted = await pipeline.process(first)

    again = make_submission(match_id=first.match_id)
    decision = await pipeline.process(again)

    assert accepted.allowed is True
    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.MATCH_ALREADY_PROCESSED
    assert store.daily_usage_total(TEST_WALLET, UsageType.MATCH, DAY) == 1


@pytest.mark.asyncio
async def test_long_win_streak_is_rejected(pipeline, make_submission, store, clock) -> None:
    for index in range(20):
        store.record_accepted_match(
            wallet_address=TEST_WALLET,
            match_id=f"seed-{index:02d}-" + "0" * 24,
            placement=1,
            player_count=5,
            reward_amount=0.0,
            day=DAY,
            processed_at_ms=clock.now_ms - (index + 1) * 10 * 60_000,
            daily_match_cap=50,
            daily_reward_cap=5000.0,
        )

    decision = await pipeline.process(make_submission(placement=1))

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.SUSPICIOUS_WIN_STREAK


@pytest.mark.asyncio
async def test_flagged_match_gets_reduced_reward(pipeline, make_submission) -> None:
    # Low variance winner scores 50: allowed, but anti-cheat is not passed.
    submission = make_submission(placement=1, kills=3, duration_ms=180_000, input_timing_variance=20)

    decision = await pipeline.process(submission)

    assert decision.allowed is True
    assert decision.risk_score == 50
    assert decision.calculated_reward == 0
    assert decision.reward_breakdown.penalties == pytest.approx(-71)


@pytest.mark.asyncio
async def test_reward_cap_rejection_records_nothing(make_submission, store, clock) -> None:
    config = Settings(_env_file=None, daily_reward_cap=50.0)
    pipeline = MatchSubmissionPipeline(store, config=config, clock=clock)
    submission = make_submission(placement=1, kills=3, duration_ms=180_000)

    decision = await pipeline.process(submission)

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.DAILY_REWARD_CAP_EXCEEDED
    assert not store.match_exists(submission.match_id)


@pytest.mark.asyncio
async def test_stale_timestamp_is_a_structural_error(pipeline, make_submission, store, clock) -> None:
    submission = make_submission(timestamp_ms=clock.now_ms - 300_001)

    with pytest.raises(StructuralError):
        await pipeline.process(submission)

    assert not store.nonce_exists(submission.nonce)


@pytest.mark.asyncio
async def test_signature_is_verified_when_secret_is_configured(make_submission, store, clock) -> None:
    config = Settings(_env_file=None, match_signing_secret="s3cret")
    pipeline = MatchSubmissionPipeline(store, config=config, clock=clock)

    unsigned = make_submission(client_signature="00" * 32)
    rejected = await pipeline.process(unsigned)

    assert rejected.allowed is False
    assert rejected.reason_code is ReasonCode.INVALID_SIGNATURE
    assert not store.nonce_exists(unsigned.nonce)

    draft = make_submission()
    signature = sign_payload(canonical_payload(signed_fields(draft)), "s3cret")
    signed = make_submission(
        match_id=draft.match_id, nonce=draft.nonce, client_signature=signature
    )
    accepted = await pipeline.process(signed)

    assert accepted.allowed is True


@pytest.mark.asyncio
async def test_store_outage_surfaces_as_infrastructure_error(
    pipeline, make_submission, mocker, db_session
) -> None:
    mocker.patch.object(
        pipeline.store, "consume_nonce", side_effect=StoreUnavailableError("down")
    )

    with pytest.raises(StoreUnavailableError):
        await pipeline.process(make_submission())

    assert audit_rows(db_session)[0].result == "error"


def mint_client(result: MintResult | None = None, error: Exception | None = None) -> AsyncMock:
    client = AsyncMock(spec=MintClient)
    client.enabled = True
    if error is not None:
        client.mint.side_effect = error
    else:
        client.mint.return_value = result
    return client


@pytest.mark.asyncio
async def test_successful_mint_stores_settlement_reference(
    store, test_settings, clock, make_submission, db_session
) -> None:
    client = mint_client(MintResult(success=True, tx_reference="0xabc"))
    pipeline = MatchSubmissionPipeline(store, mint_client=client, config=test_settings, clock=clock)
    submission = make_submission()

    decision = await pipeline.process(submission)

    assert decision.settlement_reference == "0xabc"
    client.mint.assert_awaited_once_with(
        submission.match_id, submission.wallet_address, decision.calculated_reward
    )
    reference = db_session.execute(
        select(ProcessedMatch.settlement_reference).where(
            ProcessedMatch.match_id == submission.match_id
        )
    ).scalar_one()
    assert reference == "0xabc"


@pytest.mark.asyncio
async def test_mint_failure_keeps_recorded_facts(store, test_settings, clock, make_submission) -> None:
    client = mint_client(error=MintError("authority down", error_code="NETWORK_ERROR"))
    pipeline = MatchSubmissionPipeline(store, mint_client=client, config=test_settings, clock=clock)
    submission = make_submission()

    decision = await pipeline.process(submission)

    assert decision.allowed is True
    assert decision.mint_error == "NETWORK_ERROR"
    assert decision.settlement_reference is None
    assert store.match_exists(submission.match_id)


@pytest.mark.asyncio
async def test_rejected_mint_is_reported(store, test_settings, clock, make_submission) -> None:
    client = mint_client(MintResult(success=False, error="paused", error_code="CONTRACT_PAUSED"))
    pipeline = MatchSubmissionPipeline(store, mint_client=client, config=test_settings, clock=clock)

    decision = await pipeline.process(make_submission())

    assert decision.allowed is True
    assert decision.mint_error == "CONTRACT_PAUSED"


@pytest.mark.asyncio
async def test_zero_reward_is_not_minted(store, test_settings, clock, make_submission) -> None:
    client = mint_client(MintResult(success=True, tx_reference="0xabc"))
    pipeline = MatchSubmissionPipeline(store, mint_client=client, config=test_settings, clock=clock)

    await pipeline.process(make_submission(placement=1, input_timing_variance=20))

    client.mint.assert_not_awaited()



@pytest.mark.asyncio
async def test_non_ascii_signature_is_rejected(make_submission, store, clock) -> None:
    config = Settings(_env_file=None, match_signing_secret="s3cret")
    pipeline = MatchSubmissionPipeline(store, config=config, clock=clock)

    decision = await pipeline.process(make_submission(client_signature="é" * 64))

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.INVALID_SIGNATURE


@pytest.mark.asyncio
async def test_retry_after_gate_outage_reuses_nonce(pipeline, make_submission, store) -> None:
    submission = make_submission()

    with patch.object(store, "match_exists", side_effect=StoreUnavailableError("down")):
        with pytest.raises(StoreUnavailableError):
            await pipeline.process(submission)

    assert not store.nonce_exists(submission.nonce)
    decision = await pipeline.process(submission)

    assert decision.allowed is True
    assert store.match_exists(submission.match_id)


@pytest.mark.asyncio
async def test_retry_after_recording_outage_reuses_nonce(pipeline, make_submission, store) -> None:
    submission = make_submission()

    with patch.object(
        store, "record_accepted_match", side_effect=StoreUnavailableError("down")
    ):
        with pytest.raises(StoreUnavailableError):
            await pipeline.process(submission)

    assert not store.nonce_exists(submission.nonce)
    decision = await pipeline.process(submission)

    assert decision.allowed is True
    assert store.daily_usage_total(TEST_WALLET, UsageType.MATCH, DAY) == 1


@pytest.mark.asyncio
async def test_rejection_keeps_nonce_even_on_retry(pipeline, make_submission, store) -> None:
    submission = make_submission(input_timing_variance=3)
    await pipeline.process(submission)

    retry = await pipeline.process(submission)

    assert retry.reason_code is ReasonCode.NONCE_REPLAYED
