"""Hashing helpers shared by the key, address and keystore code."""

from __future__ import annotations

import hashlib

BLAKE2B_MAX_DIGEST = 64


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256d(data: bytes) -> bytes:
    """SHA256(SHA256(data)), the Base58Check and BIP32 checksum hash."""
    return sha256(sha256(data))


def hash160(data: bytes) -> bytes:
    """RIPEMD-160(SHA-256(data)), the transparent P2PKH receiver hash."""
    h = hashlib.new("ripemd160")
    h.update(sha256(data))
    return h.digest()


def blake2b_personal(data: bytes, person: bytes, digest_size: int = BLAKE2B_MAX_DIGEST) -> bytes:
    """BLAKE2b with a 16-byte personalization string.

    Raises:
        ValueError: If *person* is longer than 16 bytes or *digest_size* is out of range.
    """
    if len(person) > 16:
        msg = f"BLAKE2b personalization is {len(person)} bytes, max 16"
        raise ValueError(msg)
    return hashlib.blake2b(data, digest_size=digest_size, person=person).digest()


def key_fingerprint(encoded_key: str) -> str:
    """Stable hex identifier for an encoded key, safe to store and log."""
    return sha256(encoded_key.encode("utf-8")).hex()
