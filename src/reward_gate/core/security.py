"""Boundary security primitives: wallet format, HMAC signatures and nonces."""
from __future__ import annotations

import hashlib
import hmac
import json
import re
import secrets
from collections.abc import Mapping
from typing import Any

WALLET_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_wallet_address(address: object) -> bool:
    """Return True if `address` has the canonical 0x-prefixed 40-hex shape."""
    return isinstance(address, str) and WALLET_ADDRESS_PATTERN.fullmatch(address) is not None


def canonical_payload(fields: Mapping[str, Any]) -> bytes:
    """Serialize signed fields deterministically.

    Keys are sorted and separators are compact so that client and server
    agree on the exact bytes regardless of the order fields were sent in.
    """
    return json.dumps(fields, sort_keys=True, separators=(",", ":")).encode("utf-8")


def sign_payload(payload: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 of `payload` under `secret`."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_hmac_signature(payload: bytes, signature_hex: str, secret: str) -> bool:
    """Verify an HMAC-SHA256 signature in constant time.

    Args:
        payload: Exact bytes that were signed on the client.
        signature_hex: Hex-encoded signature supplied by the client.
        secret: Shared signing secret.

    Returns:
        True if the signature matches; False otherwise.
    """
    expected = sign_payload(payload, secret).encode("ascii")
    provided = signature_hex.lower().encode("utf-8", "surrogateescape")
    return hmac.compare_digest(expected, provided)


def generate_secure_nonce(num_bytes: int = 32) -> str:
    """Return a random hex nonce suitable for single-use request tokens."""
    return secrets.token_hex(num_bytes)
