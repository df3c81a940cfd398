"""Tests for the match submission endpoint."""

from datetime import UTC, datetime

from fastapi import status
from fastapi.testclient import TestClient

from reward_gate.services.errors import StoreUnavailableError
from reward_gate.services.store import SecurityStore

SUBMIT_URL = "/api/v1/matches/submit"


def test_submit_accepts_plausible_match(client: TestClient, make_payload) -> None:
    payload = make_payload()
    r = client.post(SUBMIT_URL, json=payload, headers={"X-Request-Id": "req-abc"})
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["allowed"] is True
    assert data["reasonCode"] == "VALID"
    assert data["matchId"] == payload["matchId"]
    assert data["playerCount"] == 5
    assert data["calculatedReward"] == 34
    assert data["rewardBreakdown"]["final"] == 34
    assert data["requestId"] == "req-abc"
    assert data["riskScore"] == 0
    assert "settlementReference" not in data
    assert {check["name"] for check in data["securityChecks"]} >= {
        "WALLET_VALIDATION",
        "REPLAY_PREVENTION",
        "PER_MATCH_CAP",
    }


def test_submit_reports_rejection_with_200(client: TestClient, make_payload) -> None:
    payload = make_payload()
    payload["antiCheat"]["inputTimingVariance"] = 3.0
    r = client.post(SUBMIT_URL, json=payload)
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["allowed"] is False
    assert data["reasonCode"] == "ZERO_INPUT_VARIANCE"
    assert data["calculatedReward"] == 0
    assert data["riskScore"] == 100
    assert "rewardBreakdown" not in data
    assert data["validationFlags"][0]["severity"] == "critical"
    assert data["requestId"]


def test_resubmitting_a_match_is_rejected(client: TestClient, make_payload) -> None:
    first = make_payload()
    assert client.post(SUBMIT_URL, json=first).json()["allowed"] is True

    replay = make_payload(matchId=first["matchId"])
    data = client.post(SUBMIT_URL, json=replay).json()
    assert data["allowed"] is False
    assert data["reasonCode"] == "MATCH_ALREADY_PROCESSED"


def test_reused_nonce_is_rejected(client: TestClient, make_payload) -> None:
    first = make_payload()
    client.post(SUBMIT_URL, json=first)

    data = client.post(SUBMIT_URL, json=make_payload(nonce=first["nonce"])).json()
    assert data["allowed"] is False
    assert data["reasonCode"] == "NONCE_REPLAYED"


def test_invalid_wallet_is_rejected(client: TestClient, make_payload) -> None:
    data = client.post(SUBMIT_URL, json=make_payload(walletAddress="0x1234")).json()
    assert data["allowed"] is False
    assert data["reasonCode"] == "INVALID_WALLET"
    assert data["riskScore"] == 100


def test_unsupported_player_count_is_unprocessable(client: TestClient, make_payload) -> None:
    r = client.post(SUBMIT_URL, json=make_payload(playerCount=4))
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_placement_above_player_count_is_unprocessable(client: TestClient, make_payload) -> None:
    r = client.post(SUBMIT_URL, json=make_payload(placement=6))
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_short_nonce_is_unprocessable(client: TestClient, make_payload) -> None:
    r = client.post(SUBMIT_URL, json=make_payload(nonce="abc"))
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_missing_anti_cheat_is_unprocessable(client: TestClient, make_payload) -> None:
    payload = make_payload()
    del payload["antiCheat"]
    r = client.post(SUBMIT_URL, json=payload)
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_stale_timestamp_is_bad_request(client: TestClient, make_payload) -> None:
    stale = int(datetime.now(UTC).timestamp() * 1000) - 10 * 60_000
    r = client.post(SUBMIT_URL, json=make_payload(timestamp=stale))
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json()["detail"] == "Request timestamp outside the allowed window"


def test_store_outage_is_service_unavailable(client: TestClient, make_payload, mocker) -> None:
    mocker.patch.object(
        SecurityStore, "consume_nonce", side_effect=StoreUnavailableError("database down")
    )
    r = client.post(SUBMIT_URL, json=make_payload())
    assert r.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert r.headers["Retry-After"] == "5"
    assert r.json()["detail"]["reasonCode"] == "STORE_UNAVAILABLE"


def test_retry_with_same_nonce_after_outage_succeeds(
    client: TestClient, make_payload, mocker
) -> None:
    payload = make_payload()
    outage = mocker.patch.object(
        SecurityStore, "match_exists", side_effect=StoreUnavailableError("database down")
    )
    r = client.post(SUBMIT_URL, json=payload)
    assert r.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

    outage.side_effect = None
    outage.return_value = False
    r = client.post(SUBMIT_URL, json=payload)
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["allowed"] is True
