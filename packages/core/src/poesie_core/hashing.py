"""Checksums recorded with poems and raw page snapshots."""

from __future__ import annotations

from hashlib import sha256


def sha256_hex(data: bytes) -> str:
    return sha256(data).hexdigest()


def content_hash(markup: str | None) -> str:
    """Checksum of a poem's submitted markup; a missing body hashes like an empty one."""
    return sha256_hex((markup or "").encode("utf-8"))
