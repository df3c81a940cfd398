"""Tests for the security gate."""

from __future__ import annotations

import pytest

from reward_gate.core.settings import Settings
from reward_gate.services.errors import StoreUnavailableError
from reward_gate.services.policy import CheckName, FailurePolicy, fails_open, policy_for
from reward_gate.services.security_gate import SecurityGate
from reward_gate.services.store import SecurityStore
from reward_gate.services.types import ReasonCode, UsageType
from tests.conftest import TEST_WALLET, FrozenClock, new_match_id, new_nonce

ENDPOINT = "match-submit"


@pytest.fixture()
def gate(store: SecurityStore, test_settings: Settings, clock: FrozenClock) -> SecurityGate:
    return SecurityGate(store, config=test_settings, clock=clock)


def check_names(result) -> list[str]:
    return [check.name for check in result.checks]


def seed_match(store: SecurityStore, clock: FrozenClock, match_id: str, reward: float = 10.0) -> None:
    store.record_accepted_match(
        wallet_address=TEST_WALLET,
        match_id=match_id,
        placement=2,
        player_count=5,
        reward_amount=reward,
        day="2026-03-14",
        processed_at_ms=clock.now_ms,
        daily_match_cap=50,
        daily_reward_cap=5000.0,
    )


def test_all_checks_pass_for_fresh_request(gate: SecurityGate) -> None:
    result = gate.perform_security_check(TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT)

    assert result.passed is True
    assert result.risk_score == 0
    assert result.block_reason is None
    assert result.degraded is False
    assert check_names(result) == [
        "WALLET_VALIDATION",
        "REPLAY_PREVENTION",
        "RATE_LIMIT",
        "MATCH_UNIQUENESS",
        "DAILY_MATCH_CAP",
    ]


def test_optional_checks_run_when_inputs_are_given(gate: SecurityGate) -> None:
    result = gate.perform_security_check(
        TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT, reward_amount=71, bot_confidence=0.1
    )

    assert result.passed is True
    assert check_names(result)[-3:] == ["DAILY_REWARD_CAP", "PER_MATCH_CAP", "BOT_DETECTION"]


def test_invalid_wallet_blocks_first(gate: SecurityGate) -> None:
    nonce = new_nonce()
    gate.perform_security_check(TEST_WALLET, new_match_id(), nonce, ENDPOINT)

    result = gate.perform_security_check("0x1234", new_match_id(), nonce, ENDPOINT)

    assert result.passed is False
    assert result.block_code is ReasonCode.INVALID_WALLET
    assert result.block_reason == "Invalid Ethereum address format"
    # Wallet (100) and replay (50) both contribute; the score is capped.
    assert result.risk_score == 100


def test_replayed_nonce_is_rejected(gate: SecurityGate) -> None:
    nonce = new_nonce()
    first = gate.perform_security_check(TEST_WALLET, new_match_id(), nonce, ENDPOINT)
    second = gate.perform_security_check(TEST_WALLET, new_match_id(), nonce, ENDPOINT)

    assert first.passed is True
    assert second.passed is False
    assert second.block_code is ReasonCode.NONCE_REPLAYED
    assert second.risk_score == 50


def test_rate_limit_blocks_after_max_requests(store, clock) -> None:
    config = Settings(_env_file=None, rate_limit_max_requests=3)
    gate = SecurityGate(store, config=config, clock=clock)

    for _ in range(3):
        assert gate.perform_security_check(TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT).passed

    result = gate.perform_security_check(TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT)
    assert result.passed is False
    assert result.block_code is ReasonCode.RATE_LIMITED
    assert result.risk_score == 40

    clock.advance(seconds=61)
    assert gate.perform_security_check(TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT).passed


def test_rate_limit_result_reports_remaining(gate: SecurityGate, clock: FrozenClock) -> None:
    first = gate.check_rate_limit(TEST_WALLET, ENDPOINT)

    assert first.allowed is True
    assert first.remaining == 29
    assert first.reset_at_ms == clock.now_ms + 60_000
    assert first.details == "Rate limit OK: 1/30"


def test_rate_limit_fails_open_when_store_is_down(gate: SecurityGate, mocker) -> None:
    mocker.patch.object(
        gate.store, "count_requests_since", side_effect=StoreUnavailableError("down")
    )

    result = gate.perform_security_check(TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT)

    assert result.passed is True
    assert result.degraded is True


def test_match_uniqueness_fails_closed_when_store_is_down(gate: SecurityGate, mocker) -> None:
    mocker.patch.object(gate.store, "match_exists", side_effect=StoreUnavailableError("down"))

    with pytest.raises(StoreUnavailableError):
        gate.perform_security_check(TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT)


def test_processed_match_is_rejected(gate: SecurityGate, store, clock) -> None:
    match_id = new_match_id()
    seed_match(store, clock, match_id)

    result = gate.perform_security_check(TEST_WALLET, match_id, new_nonce(), ENDPOINT)

    assert result.passed is False
    assert result.block_code is ReasonCode.MATCH_ALREADY_PROCESSED
    assert result.risk_score == 60


def test_daily_match_cap(store, clock) -> None:
    config = Settings(_env_file=None, daily_match_cap=1)
    gate = SecurityGate(store, config=config, clock=clock)
    seed_match(store, clock, new_match_id())

    result = gate.perform_security_check(TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT)

    assert result.passed is False
    assert result.block_code is ReasonCode.DAILY_MATCH_CAP_EXCEEDED
    assert result.block_reason == "Daily match limit exceeded"


def test_daily_cap_result_resets_at_utc_midnight(gate: SecurityGate, store, clock) -> None:
    seed_match(store, clock, new_match_id(), reward=100.0)

    cap = gate.check_daily_cap(TEST_WALLET, UsageType.REWARD, 50.0)

    assert cap.allowed is True
    assert cap.used_today == 100.0
    assert cap.remaining == 4_900.0
    # FIXED_NOW is 2026-03-14 12:00 UTC.
    assert cap.reset_at_ms == clock.now_ms + 12 * 60 * 60 * 1000


def test_reward_caps(gate: SecurityGate, store, clock) -> None:
    seed_match(store, clock, new_match_id(), reward=4_950.0)

    result = gate.check_reward_caps(TEST_WALLET, 71.0)

    assert result.passed is False
    assert result.block_code is ReasonCode.DAILY_REWARD_CAP_EXCEEDED
    assert check_names(result) == ["DAILY_REWARD_CAP", "PER_MATCH_CAP"]


def test_per_match_cap(gate: SecurityGate) -> None:
    result = gate.check_reward_caps(TEST_WALLET, 1_000.5)

    assert result.passed is False
    assert result.block_code is ReasonCode.PER_MATCH_CAP_EXCEEDED
    assert result.risk_score == 40


@pytest.mark.parametrize(
    ("confidence", "passed", "risk"),
    [(0.5, True, 0), (0.7, True, 20), (0.89, True, 20), (0.9, False, 50)],
)
def test_bot_confidence_gate(gate: SecurityGate, confidence: float, passed: bool, risk: int) -> None:
    result = gate.perform_security_check(
        TEST_WALLET, new_match_id(), new_nonce(), ENDPOINT, bot_confidence=confidence
    )

    assert result.passed is passed
    assert result.risk_score == risk
    if not passed:
        assert result.block_code is ReasonCode.BOT_BANNED


def test_failure_policy_table() -> None:
    assert fails_open(CheckName.RATE_LIMIT)
    assert policy_for(CheckName.MATCH_UNIQUENESS) is FailurePolicy.FAIL_CLOSED
    assert policy_for(CheckName.REPLAY_PREVENTION) is FailurePolicy.FAIL_CLOSED
    assert policy_for(CheckName.WALLET_VALIDATION) is FailurePolicy.FAIL_CLOSED
