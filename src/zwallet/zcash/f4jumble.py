"""F4Jumble — the unkeyed 4-round Feistel permutation from ZIP-316.

Applied to the raw encoding of a Unified Address before Bech32m so that
a change to any receiver alters the whole string.
"""

from __future__ import annotations

import math

from zwallet.utils.crypto import BLAKE2B_MAX_DIGEST, blake2b_personal

MIN_LENGTH = 48
MAX_LENGTH = 4_194_368
_MAX_H = BLAKE2B_MAX_DIGEST


def _h(i: int, u: bytes, length: int) -> bytes:
    person = b"UA_F4Jumble_H" + bytes([i, 0, 0])
    return blake2b_personal(u, person, length)


def _g(i: int, u: bytes, length: int) -> bytes:
    out = bytearray()
    for j in range(math.ceil(length / _MAX_H)):
        person = b"UA_F4Jumble_G" + bytes([i]) + j.to_bytes(2, "little")
        out += blake2b_personal(u, person)
    return bytes(out[:length])


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b, strict=True))


def _split(message: bytes) -> tuple[bytes, bytes]:
    if not MIN_LENGTH <= len(message) <= MAX_LENGTH:
        msg = f"F4Jumble input length {len(message)} outside [{MIN_LENGTH}, {MAX_LENGTH}]"
        raise ValueError(msg)
    left = min(_MAX_H, len(message) // 2)
    return message[:left], message[left:]


def f4jumble(message: bytes) -> bytes:
    """Apply F4Jumble to *message*.

    Raises:
        ValueError: If the length is outside the permitted range.
    """
    a, b = _split(message)
    x = _xor(b, _g(0, a, len(b)))
    y = _xor(a, _h(0, x, len(a)))
    d = _xor(x, _g(1, y, len(x)))
    c = _xor(y, _h(1, d, len(y)))
    return c + d


def f4jumble_inv(message: bytes) -> bytes:
    """Invert :func:`f4jumble`.

    Raises:
        ValueError: If the length is outside the permitted range.
    """
    c, d = _split(message)
    y = _xor(c, _h(1, d, len(c)))
    x = _xor(d, _g(1, y, len(d)))
    a = _xor(y, _h(0, x, len(y)))
    b = _xor(x, _g(0, a, len(x)))
    return a + b
