# tests/conftest.py
from __future__ import annotations

import os
import secrets
from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from reward_gate.core.settings import Settings
from reward_gate.db.session import Base
from reward_gate.db.session import get_db as app_get_session
from reward_gate.main import app as fastapi_app
from reward_gate.services.store import SecurityStore
from reward_gate.services.types import AntiCheatSignals, MatchSubmission

TEST_DB_URL = "sqlite://"
TEST_WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20
FIXED_NOW = datetime(2026, 3, 14, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)

    @property
    def now_ms(self) -> int:
        return int(self.now.timestamp() * 1000)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # The store commits on its own, so wipe every table between tests.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with defaults only, independent of the process environment."""
    return Settings(_env_file=None)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def store(db_session: Session) -> SecurityStore:
    return SecurityStore(db_session)


def new_nonce() -> str:
    return secrets.token_hex(16)


def new_match_id() -> str:
    return secrets.token_hex(16)


@pytest.fixture()
def make_submission(clock: FrozenClock) -> Callable[..., MatchSubmission]:
    """Build a plausible submission; keyword arguments override any field."""

    def _make(**overrides: Any) -> MatchSubmission:
        duration_ms = overrides.get("duration_ms", 120_000)
        anti_cheat = AntiCheatSignals(
            input_timing_variance=overrides.pop("input_timing_variance", 85.0),
            frame_count=overrides.pop("frame_count", int(duration_ms / 1000 * 60)),
            avg_tick_rate=overrides.pop("avg_tick_rate", 60.0),
            suspicious_flags=tuple(overrides.pop("suspicious_flags", ())),
            input_hash="in-" + secrets.token_hex(8),
            movement_hash="mv-" + secrets.token_hex(8),
        )
        fields: dict[str, Any] = {
            "wallet_address": TEST_WALLET,
            "match_id": new_match_id(),
            "placement": 2,
            "player_count": 5,
            "duration_ms": duration_ms,
            "kills": 1,
            "anti_cheat": anti_cheat,
            "timestamp_ms": clock.now_ms,
            "nonce": new_nonce(),
            "client_signature": "",
        }
        fields.update(overrides)
        return MatchSubmission(**fields)

    return _make


@pytest.fixture()
def make_payload() -> Callable[..., dict[str, Any]]:
    """Build a camelCase request body timestamped with the real clock."""

    def _make(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "walletAddress": TEST_WALLET,
            "matchId": new_match_id(),
            "placement": 2,
            "playerCount": 5,
            "durationMs": 120_000,
            "kills": 1,
            "antiCheat": {
                "inputHash": "in-" + secrets.token_hex(8),
                "frameCount": 7_200,
                "avgTickRate": 60.0,
                "suspiciousFlags": [],
                "inputTimingVariance": 85.0,
                "movementHash": "mv-" + secrets.token_hex(8),
            },
            "timestamp": int(datetime.now(UTC).timestamp() * 1000),
            "clientSignature": "unsigned",
            "nonce": new_nonce(),
        }
        payload.update(overrides)
        return payload

    return _make
