"""BLAKE3 helpers for deriving stable keys from match identifiers."""

from __future__ import annotations

from blake3 import blake3


def blake3_hexdigest(data: bytes) -> str:
    """Return the hexadecimal BLAKE3 digest of the supplied data."""
    return blake3(data).hexdigest()


def match_key(match_id: str) -> str:
    """Return the 0x-prefixed 32-byte key that identifies a match downstream.

    The same match id always maps to the same key, which is what makes mint
    requests idempotent per match.
    """
    return "0x" + blake3_hexdigest(match_id.encode("utf-8"))
