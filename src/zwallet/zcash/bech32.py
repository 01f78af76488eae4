"""Bech32 / Bech32m encoding (BIP-173, BIP-350).

Sapling addresses use Bech32; Unified and TEX addresses use Bech32m.
Unified Addresses routinely exceed the 90-character BIP-173 limit, so the
limit is a parameter here rather than a hard rule.
"""

from __future__ import annotations

import enum

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

BIP173_MAX_LENGTH = 90


class Encoding(enum.IntEnum):
    """Checksum constant for each variant."""

    BECH32 = 1
    BECH32M = 0x2BC830A3


def _polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i in range(5):
            chk ^= _GENERATOR[i] if ((top >> i) & 1) else 0
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _create_checksum(hrp: str, data: list[int], encoding: Encoding) -> list[int]:
    values = _hrp_expand(hrp) + data
    polymod = _polymod([*values, 0, 0, 0, 0, 0, 0]) ^ encoding
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def convertbits(data: bytes | list[int], frombits: int, tobits: int, *, pad: bool) -> list[int]:
    """General power-of-2 base conversion.

    Raises:
        ValueError: On out-of-range input values or invalid padding.
    """
    acc = 0
    bits = 0
    ret: list[int] = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1
    for value in data:
        if value < 0 or (value >> frombits):
            msg = f"Invalid value for {frombits}-bit group: {value}"
            raise ValueError(msg)
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        msg = "Invalid padding in bech32 data"
        raise ValueError(msg)
    return ret


def bech32_encode(hrp: str, payload: bytes, encoding: Encoding) -> str:
    """Encode *payload* bytes under *hrp* with the given checksum variant."""
    data = convertbits(payload, 8, 5, pad=True)
    combined = data + _create_checksum(hrp, data, encoding)
    return hrp + "1" + "".join(_CHARSET[d] for d in combined)


def bech32_decode(
    bech: str,
    *,
    max_length: int | None = BIP173_MAX_LENGTH,
) -> tuple[str, bytes, Encoding]:
    """Decode a Bech32/Bech32m string.

    Args:
        bech: The encoded string.
        max_length: Maximum total length, or None for no limit.

    Returns:
        Tuple of (hrp, payload bytes, encoding variant).

    Raises:
        ValueError: On any syntactic or checksum failure.
    """
    if any(ord(c) < 33 or ord(c) > 126 for c in bech):
        msg = "Bech32 string contains invalid characters"
        raise ValueError(msg)
    if bech.lower() != bech and bech.upper() != bech:
        msg = "Bech32 string has mixed case"
        raise ValueError(msg)
    if max_length is not None and len(bech) > max_length:
        msg = f"Bech32 string exceeds {max_length} characters"
        raise ValueError(msg)
    bech = bech.lower()
    pos = bech.rfind("1")
    if pos < 1 or pos + 7 > len(bech):
        msg = "Bech32 separator missing or misplaced"
        raise ValueError(msg)
    hrp = bech[:pos]
    try:
        data = [_CHARSET.index(c) for c in bech[pos + 1 :]]
    except ValueError:
        msg = "Bech32 data part contains invalid characters"
        raise ValueError(msg) from None

    const = _polymod(_hrp_expand(hrp) + data)
    if const == Encoding.BECH32:
        encoding = Encoding.BECH32
    elif const == Encoding.BECH32M:
        encoding = Encoding.BECH32M
    else:
        msg = "Bech32 checksum mismatch"
        raise ValueError(msg)

    payload = bytes(convertbits(data[:-6], 5, 8, pad=False))
    return hrp, payload, encoding
