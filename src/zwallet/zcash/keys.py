"""BIP32 derivation for the transparent part of a Zcash account.

The keystore derives ``m/44'/coin'/account'`` from the seed, keeps only the
neutered account key, and derives receiving addresses from it. Base58Check
lives here too because transparent addresses and extended keys share it.

Shielded key material (Sapling / Orchard) is never derived here.
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass, replace
from typing import Self

from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.ellipticcurve import INFINITY

from zwallet.utils.crypto import hash160, sha256d

HARDENED = 0x80000000

_ORDER = SECP256k1.order
_SEED_KEY = b"Bitcoin seed"

# (is_private, testnet) -> BIP32 version bytes
_VERSIONS = {
    (False, False): bytes.fromhex("0488b21e"),  # xpub
    (True, False): bytes.fromhex("0488ade4"),  # xprv
    (False, True): bytes.fromhex("043587cf"),  # tpub
    (True, True): bytes.fromhex("04358394"),  # tprv
}
_VERSION_FLAGS = {version: flags for flags, version in _VERSIONS.items()}


# ---------------------------------------------------------------------------
# Base58Check
# ---------------------------------------------------------------------------

_B58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58check_encode(payload: bytes) -> str:
    """Base58 of *payload* followed by its 4-byte SHA256d checksum."""
    data = payload + sha256d(payload)[:4]
    n = int.from_bytes(data, "big")
    digits = []
    while n:
        n, rem = divmod(n, 58)
        digits.append(_B58[rem])
    zeros = len(data) - len(data.lstrip(b"\x00"))
    return "1" * zeros + "".join(reversed(digits))


def base58check_decode(text: str) -> bytes:
    """Decode and strip the checksum.

    Raises:
        ValueError: On a character outside the alphabet, a short string or
            a checksum mismatch.
    """
    n = 0
    for char in text:
        digit = _B58.find(char)
        if digit < 0:
            msg = f"Invalid Base58 character {char!r}"
            raise ValueError(msg)
        n = n * 58 + digit
    zeros = len(text) - len(text.lstrip("1"))
    data = b"\x00" * zeros + (n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b"")
    if len(data) < 4:
        msg = "Base58Check string too short"
        raise ValueError(msg)
    payload, checksum = data[:-4], data[-4:]
    if sha256d(payload)[:4] != checksum:
        msg = "Base58Check checksum mismatch"
        raise ValueError(msg)
    return payload


# ---------------------------------------------------------------------------
# Extended keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtendedKey:
    """A BIP32 extended key.

    ``key`` is the 32-byte scalar for a private key and the 33-byte
    compressed point for a public one.
    """

    key: bytes
    chain_code: bytes
    depth: int = 0
    parent_fingerprint: bytes = b"\x00" * 4
    child_index: int = 0
    is_private: bool = False
    testnet: bool = False

    @classmethod
    def from_seed(cls, seed: bytes, *, testnet: bool = False) -> Self:
        """Master private key for a BIP32 seed.

        Raises:
            ValueError: If the seed is not 16-64 bytes or yields an invalid key.
        """
        if not 16 <= len(seed) <= 64:
            msg = f"Seed must be 16-64 bytes, got {len(seed)}"
            raise ValueError(msg)
        digest = hmac.new(_SEED_KEY, seed, hashlib.sha512).digest()
        if not 0 < int.from_bytes(digest[:32], "big") < _ORDER:
            msg = "Invalid seed (master key out of range)"
            raise ValueError(msg)
        return cls(key=digest[:32], chain_code=digest[32:], is_private=True, testnet=testnet)

    @classmethod
    def from_string(cls, text: str) -> Self:
        """Parse an xpub/xprv/tpub/tprv string."""
        data = base58check_decode(text)
        if len(data) != 78:
            msg = f"Invalid extended key length: {len(data)}"
            raise ValueError(msg)
        flags = _VERSION_FLAGS.get(data[:4])
        if flags is None:
            msg = f"Unknown version bytes: {data[:4].hex()}"
            raise ValueError(msg)
        is_private, testnet = flags
        return cls(
            key=data[46:] if is_private else data[45:],
            chain_code=data[13:45],
            depth=data[4],
            parent_fingerprint=data[5:9],
            child_index=struct.unpack(">I", data[9:13])[0],
            is_private=is_private,
            testnet=testnet,
        )

    def to_string(self) -> str:
        key = b"\x00" + self.key if self.is_private else self.key
        header = struct.pack(">B4sI", self.depth, self.parent_fingerprint, self.child_index)
        version = _VERSIONS[self.is_private, self.testnet]
        return base58check_encode(version + header + self.chain_code + key)

    def public_key(self) -> bytes:
        """The 33-byte compressed public key."""
        if not self.is_private:
            return self.key
        signing = SigningKey.from_string(self.key, curve=SECP256k1)
        return signing.get_verifying_key().to_string("compressed")

    def neuter(self) -> ExtendedKey:
        """The public counterpart of this key."""
        if not self.is_private:
            return self
        return replace(self, key=self.public_key(), is_private=False)

    def derive_child(self, index: int) -> ExtendedKey:
        """Child at *index*; ``index >= HARDENED`` needs a private key.

        Raises:
            ValueError: For hardened derivation from a public key, or the
                negligible case of an invalid child.
        """
        if index >= HARDENED:
            if not self.is_private:
                msg = "Cannot derive a hardened child from a public key"
                raise ValueError(msg)
            data = b"\x00" + self.key
        else:
            data = self.public_key()
        digest = hmac.new(self.chain_code, data + struct.pack(">I", index), hashlib.sha512).digest()
        tweak = int.from_bytes(digest[:32], "big")
        if tweak >= _ORDER:
            msg = f"Invalid child key at index {index}"
            raise ValueError(msg)

        if self.is_private:
            scalar = (tweak + int.from_bytes(self.key, "big")) % _ORDER
            if scalar == 0:
                msg = f"Invalid child key at index {index}"
                raise ValueError(msg)
            child = scalar.to_bytes(32, "big")
        else:
            parent = VerifyingKey.from_string(self.key, curve=SECP256k1).pubkey.point
            point = parent + SECP256k1.generator * tweak
            if point == INFINITY:
                msg = f"Invalid child key at index {index}"
                raise ValueError(msg)
            child = VerifyingKey.from_public_point(point, curve=SECP256k1).to_string("compressed")

        return replace(
            self,
            key=child,
            chain_code=digest[32:],
            depth=self.depth + 1,
            parent_fingerprint=hash160(self.public_key())[:4],
            child_index=index,
        )

    def derive_path(self, path: str) -> ExtendedKey:
        """Follow a path like ``m/44'/133'/0'``; ``'`` or ``h`` marks hardened."""
        key = self
        for part in path.strip().split("/"):
            if part in ("", "m", "M"):
                continue
            index = int(part.rstrip("'hH"))
            key = key.derive_child(index + HARDENED if part[-1] in "'hH" else index)
        return key


def account_path(coin_type: int, account: int = 0) -> str:
    """BIP44 account-level path ``m/44'/coin'/account'``."""
    return f"m/44'/{coin_type}'/{account}'"
