"""Client for the downstream minting authority.

The authority credits the token reward once a match has been accepted and
recorded. Requests are authenticated with a short-lived HS256 bearer token
and carry an `Idempotency-Key` derived from the match id, so a retried
request for the same match never mints twice.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

import httpx
from jose import jwt

from reward_gate.core.settings import settings
from reward_gate.services.errors import MintDisabledError, MintError
from reward_gate.utils.hash import match_key

logger = logging.getLogger(__name__)

HTTP_INTERNAL_SERVER_ERROR = 500
GRANT_PATH = "/api/v1/rewards/grant"
TOKEN_DECIMALS = 18

# Authority error markers mapped to stable error codes.
ERROR_CODE_MARKERS: tuple[tuple[str, str], ...] = (
    ("MatchAlreadyRewarded", "MATCH_ALREADY_REWARDED"),
    ("ExceedsDailyCap", "EXCEEDS_DAILY_CAP"),
    ("ExceedsMatchCap", "EXCEEDS_MATCH_CAP"),
    ("OnlyMCP", "UNAUTHORIZED_MCP"),
    ("Pausable: paused", "CONTRACT_PAUSED"),
)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Stop calling the authority after repeated failures."""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _success_count: int = 0
    _last_failure_time: float = 0.0

    def is_open(self) -> bool:
        if self._state == CircuitState.OPEN:
            if time.time() - self._last_failure_time > self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
            return self._state == CircuitState.OPEN
        return False

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.time()
        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN

    @property
    def state(self) -> CircuitState:
        return self._state


@dataclass(frozen=True)
class MintConfig:
    """Immutable configuration for mint requests."""

    enabled: bool
    base_url: str | None
    shared_secret: str | None
    audience: str
    issuer: str
    token_ttl_seconds: int
    timeout_seconds: float


@dataclass(frozen=True)
class MintResult:
    success: bool
    tx_reference: str | None = None
    error: str | None = None
    error_code: str | None = None


def load_mint_config() -> MintConfig:
    """Build configuration object from global settings."""
    return MintConfig(
        enabled=bool(settings.mint_enabled and settings.mint_base_url),
        base_url=settings.mint_base_url,
        shared_secret=settings.mint_shared_secret,
        audience=settings.mint_audience,
        issuer=settings.mint_issuer,
        token_ttl_seconds=settings.mint_token_ttl_seconds,
        timeout_seconds=float(settings.mint_http_timeout_seconds),
    )


def map_error_code(message: str) -> str:
    """Map an authority error message to a stable error code."""
    for marker, code in ERROR_CODE_MARKERS:
        if marker in message:
            return code
    return "UNKNOWN_ERROR"


def to_base_units(amount: float) -> str:
    """Convert a token amount to its integer base-unit string."""
    return str(int(Decimal(str(amount)) * (10**TOKEN_DECIMALS)))


class MintClient:
    """HTTP client wrapper for the minting authority."""

    def __init__(
        self,
        config: MintConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_mint_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._circuit_breaker = CircuitBreaker()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self.config.base_url)

    @property
    def circuit_state(self) -> CircuitState:
        return self._circuit_breaker.state

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise MintDisabledError()

        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url or "",
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    def _build_headers(self, idempotency_key: str) -> dict[str, str]:
        headers = {"Idempotency-Key": idempotency_key}
        if self.config.shared_secret:
            now = int(time.time())
            payload = {
                "iss": self.config.issuer,
                "aud": self.config.audience,
                "iat": now,
                "exp": now + max(1, self.config.token_ttl_seconds),
                "jti": secrets.token_hex(8),
            }
            token = jwt.encode(payload, self.config.shared_secret, algorithm="HS256")
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _post(self, path: str, body: dict[str, Any], idempotency_key: str) -> httpx.Response:
        if self._circuit_breaker.is_open():
            raise MintError("Mint circuit breaker is open - authority unavailable")

        client = await self._ensure_client()
        try:
            response = await client.post(
                path, json=body, headers=self._build_headers(idempotency_key)
            )
        except httpx.HTTPError as exc:
            self._circuit_breaker.record_failure()
            raise MintError(f"Mint request failed: {exc}", error_code="NETWORK_ERROR") from exc

        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            self._circuit_breaker.record_failure()
            raise MintError(
                f"Mint authority responded with {response.status_code}",
                error_code=f"HTTP_{response.status_code}",
            )
        self._circuit_breaker.record_success()
        return response

    async def mint(self, match_id: str, player: str, amount: float) -> MintResult:
        """Request the reward for an accepted match.

        Raises:
            MintDisabledError: Minting is not configured.
            MintError: The authority could not be reached or failed.
        """
        key = match_key(match_id)
        body = {
            "matchId": match_id,
            "matchKey": key,
            "player": player,
            "amount": amount,
            "amountBaseUnits": to_base_units(amount),
        }
        response = await self._post(GRANT_PATH, body, idempotency_key=key)

        payload: dict[str, Any] = {}
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Mint authority returned a non-JSON body for %s", match_id)
        if not isinstance(payload, dict):
            logger.warning("Mint authority returned a non-object body for %s", match_id)
            payload = {}

        tx_reference = payload.get("txHash") or payload.get("txReference")
        if response.is_success:
            logger.info("Minted %s for match %s tx=%s", amount, match_id, tx_reference)
            return MintResult(success=True, tx_reference=tx_reference)

        message = str(payload.get("error") or f"Mint rejected ({response.status_code})")
        error_code = payload.get("errorCode") or map_error_code(message)
        if error_code == "MATCH_ALREADY_REWARDED":
            # A retried grant for a match that already settled.
            logger.info("Match %s already rewarded downstream", match_id)
            return MintResult(success=True, tx_reference=tx_reference)

        logger.warning("Mint rejected for match %s: %s (%s)", match_id, message, error_code)
        return MintResult(success=False, error=message, error_code=error_code)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _MintClientSingleton:
    _instance: MintClient | None = None

    @classmethod
    def get_instance(cls) -> MintClient:
        if cls._instance is None:
            cls._instance = MintClient()
        return cls._instance


def get_mint_client() -> MintClient:
    """Return a singleton mint client instance."""
    return _MintClientSingleton.get_instance()
