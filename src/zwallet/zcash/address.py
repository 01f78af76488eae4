"""Zcash address grammar — transparent, Sapling, Unified (ZIP-316) and TEX (ZIP-320).

Parsing is always done against an explicit :class:`Network`: an address that is
syntactically valid for another network is rejected.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from zwallet.errors.validation_errors import InvalidAddress
from zwallet.utils.crypto import hash160
from zwallet.zcash.bech32 import Encoding, bech32_decode, bech32_encode
from zwallet.zcash.f4jumble import f4jumble, f4jumble_inv
from zwallet.zcash.keys import base58check_decode, base58check_encode
from zwallet.zcash.network import Network

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class AddressType(enum.StrEnum):
    """Top-level address encodings."""

    TRANSPARENT = "transparent"
    SAPLING = "sapling"
    UNIFIED = "unified"
    TEX = "tex"

    @property
    def supports_memo(self) -> bool:
        """Whether this address type can carry an encrypted memo."""
        return self in (AddressType.SAPLING, AddressType.UNIFIED)


class ReceiverType(enum.IntEnum):
    """ZIP-316 receiver typecodes."""

    P2PKH = 0x00
    P2SH = 0x01
    SAPLING = 0x02
    ORCHARD = 0x03


_RECEIVER_LENGTHS: dict[int, int] = {
    ReceiverType.P2PKH: 20,
    ReceiverType.P2SH: 20,
    ReceiverType.SAPLING: 43,
    ReceiverType.ORCHARD: 43,
}

_TRANSPARENT_TYPECODES = frozenset({ReceiverType.P2PKH, ReceiverType.P2SH})
_SHIELDED_TYPECODES = frozenset({ReceiverType.SAPLING, ReceiverType.ORCHARD})

_UA_PADDING_LENGTH = 16


@dataclass(frozen=True)
class Receiver:
    """A single receiver: typecode plus raw address bytes."""

    typecode: int
    data: bytes

    @property
    def is_shielded(self) -> bool:
        return self.typecode in _SHIELDED_TYPECODES

    @property
    def is_transparent(self) -> bool:
        return self.typecode in _TRANSPARENT_TYPECODES


@dataclass(frozen=True)
class ParsedAddress:
    """A successfully parsed address.

    Attributes:
        encoded: The original address string.
        network: Network the address belongs to.
        kind: Top-level encoding.
        receivers: Receivers carried by the address (one for non-unified kinds).
    """

    encoded: str
    network: Network
    kind: AddressType
    receivers: tuple[Receiver, ...]

    @property
    def is_shielded(self) -> bool:
        """True if any receiver is a shielded (Sapling / Orchard) receiver."""
        return any(r.is_shielded for r in self.receivers)

    @property
    def can_receive_memo(self) -> bool:
        return self.kind.supports_memo and self.is_shielded

    def can_receive_as(self, typecode: int) -> bool:
        return any(r.typecode == typecode for r in self.receivers)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_address(address: str, network: Network) -> ParsedAddress:
    """Parse *address* under the grammar of *network*.

    Raises:
        InvalidAddress: If the string is not a valid address for *network*.
    """
    if not address or address != address.strip():
        raise InvalidAddress(address, "empty or padded address string")

    lowered = address.lower()
    sep = lowered.rfind("1")
    hrp = lowered[:sep] if sep > 0 else ""
    owner = _HRP_INDEX.get(hrp)
    if owner is not None:
        owner_networks, kind = owner
        if network not in owner_networks:
            raise InvalidAddress(
                address, f"{kind.value} address belongs to {owner_networks[0].value}"
            )
        if kind is AddressType.SAPLING:
            return _parse_sapling(address, network)
        if kind is AddressType.UNIFIED:
            return _parse_unified(address, network)
        return _parse_tex(address, network)

    return _parse_transparent(address, network)


def is_valid_address(address: str, network: Network) -> bool:
    """Check an address without raising."""
    try:
        parse_address(address, network)
    except InvalidAddress:
        return False
    return True


def is_shielded_address(address: str, network: Network) -> bool:
    """Whether *address* has a shielded receiver (and so can carry a memo).

    Raises:
        InvalidAddress: If the address does not parse.
    """
    return parse_address(address, network).can_receive_memo


def get_address_type(address: str, network: Network) -> AddressType:
    """Return the top-level encoding of *address*.

    Raises:
        InvalidAddress: If the address does not parse.
    """
    return parse_address(address, network).kind


def _parse_transparent(address: str, network: Network) -> ParsedAddress:
    try:
        payload = base58check_decode(address)
    except ValueError as exc:
        raise InvalidAddress(address, str(exc)) from exc
    if len(payload) != 22:
        raise InvalidAddress(address, f"transparent payload length {len(payload)}")
    prefix, key_hash = payload[:2], payload[2:]
    params = network.params
    if prefix == params.p2pkh_prefix:
        typecode = ReceiverType.P2PKH
    elif prefix == params.p2sh_prefix:
        typecode = ReceiverType.P2SH
    elif prefix in _ALL_TRANSPARENT_PREFIXES:
        raise InvalidAddress(address, f"transparent address is not for {network.value}")
    else:
        raise InvalidAddress(address, f"unknown transparent prefix {prefix.hex()}")
    return ParsedAddress(
        encoded=address,
        network=network,
        kind=AddressType.TRANSPARENT,
        receivers=(Receiver(typecode, key_hash),),
    )


def _decode_bech(address: str, encoding: Encoding, *, max_length: int | None) -> bytes:
    try:
        _, payload, found = bech32_decode(address, max_length=max_length)
    except ValueError as exc:
        raise InvalidAddress(address, str(exc)) from exc
    if found is not encoding:
        raise InvalidAddress(address, f"expected {encoding.name} checksum")
    return payload


def _parse_sapling(address: str, network: Network) -> ParsedAddress:
    payload = _decode_bech(address, Encoding.BECH32, max_length=None)
    if len(payload) != 43:
        raise InvalidAddress(address, f"sapling payload length {len(payload)}")
    return ParsedAddress(
        encoded=address,
        network=network,
        kind=AddressType.SAPLING,
        receivers=(Receiver(ReceiverType.SAPLING, payload),),
    )


def _parse_tex(address: str, network: Network) -> ParsedAddress:
    payload = _decode_bech(address, Encoding.BECH32M, max_length=None)
    if len(payload) != 20:
        raise InvalidAddress(address, f"tex payload length {len(payload)}")
    return ParsedAddress(
        encoded=address,
        network=network,
        kind=AddressType.TEX,
        receivers=(Receiver(ReceiverType.P2PKH, payload),),
    )


def _parse_unified(address: str, network: Network) -> ParsedAddress:
    hrp = network.params.unified_hrp
    jumbled = _decode_bech(address, Encoding.BECH32M, max_length=None)
    try:
        raw = f4jumble_inv(jumbled)
    except ValueError as exc:
        raise InvalidAddress(address, str(exc)) from exc

    body, padding = raw[:-_UA_PADDING_LENGTH], raw[-_UA_PADDING_LENGTH:]
    if padding != _ua_padding(hrp):
        raise InvalidAddress(address, "unified address padding mismatch")

    receivers: list[Receiver] = []
    offset = 0
    try:
        while offset < len(body):
            typecode, offset = _read_compact_size(body, offset)
            length, offset = _read_compact_size(body, offset)
            if offset + length > len(body):
                raise InvalidAddress(address, "truncated receiver")
            receivers.append(Receiver(typecode, body[offset : offset + length]))
            offset += length
    except ValueError as exc:
        raise InvalidAddress(address, str(exc)) from exc

    _check_receivers(address, receivers)
    return ParsedAddress(
        encoded=address,
        network=network,
        kind=AddressType.UNIFIED,
        receivers=tuple(receivers),
    )


def _check_receivers(address: str, receivers: list[Receiver]) -> None:
    if not receivers:
        raise InvalidAddress(address, "unified address has no receivers")
    typecodes = [r.typecode for r in receivers]
    if any(b <= a for a, b in zip(typecodes, typecodes[1:], strict=False)):
        raise InvalidAddress(address, "receivers are duplicated or out of order")
    if ReceiverType.P2PKH in typecodes and ReceiverType.P2SH in typecodes:
        raise InvalidAddress(address, "both P2PKH and P2SH receivers present")
    if all(r.is_transparent for r in receivers):
        raise InvalidAddress(address, "unified address has only transparent receivers")
    for r in receivers:
        expected = _RECEIVER_LENGTHS.get(r.typecode)
        if expected is not None and len(r.data) != expected:
            raise InvalidAddress(
                address, f"receiver {r.typecode} has length {len(r.data)}, expected {expected}"
            )


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_transparent(key_hash: bytes, network: Network, *, p2sh: bool = False) -> str:
    """Encode a 20-byte key/script hash as a transparent address."""
    if len(key_hash) != 20:
        msg = f"Transparent hash must be 20 bytes, got {len(key_hash)}"
        raise ValueError(msg)
    prefix = network.params.p2sh_prefix if p2sh else network.params.p2pkh_prefix
    return base58check_encode(prefix + key_hash)


def pubkey_to_transparent_address(pubkey: bytes, network: Network) -> str:
    """P2PKH address for a compressed secp256k1 public key."""
    return encode_transparent(hash160(pubkey), network)


def encode_sapling(payment_address: bytes, network: Network) -> str:
    """Encode a 43-byte raw Sapling payment address."""
    if len(payment_address) != 43:
        msg = f"Sapling address must be 43 bytes, got {len(payment_address)}"
        raise ValueError(msg)
    return bech32_encode(network.params.sapling_hrp, payment_address, Encoding.BECH32)


def encode_tex(key_hash: bytes, network: Network) -> str:
    """Encode a 20-byte P2PKH hash as a ZIP-320 TEX address."""
    if len(key_hash) != 20:
        msg = f"TEX hash must be 20 bytes, got {len(key_hash)}"
        raise ValueError(msg)
    return bech32_encode(network.params.tex_hrp, key_hash, Encoding.BECH32M)


def encode_unified(receivers: list[Receiver], network: Network) -> str:
    """Encode receivers as a Unified Address (sorted by typecode).

    Raises:
        ValueError: If the receiver set is not a valid Unified Address.
    """
    ordered = sorted(receivers, key=lambda r: r.typecode)
    try:
        _check_receivers("<unified>", ordered)
    except InvalidAddress as exc:
        raise ValueError(exc.reason) from exc
    hrp = network.params.unified_hrp
    body = b"".join(
        _compact_size(r.typecode) + _compact_size(len(r.data)) + r.data for r in ordered
    )
    return bech32_encode(hrp, f4jumble(body + _ua_padding(hrp)), Encoding.BECH32M)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ua_padding(hrp: str) -> bytes:
    return hrp.encode("ascii").ljust(_UA_PADDING_LENGTH, b"\x00")


def _compact_size(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    if n <= 0xFFFF:
        return b"\xfd" + n.to_bytes(2, "little")
    if n <= 0xFFFFFFFF:
        return b"\xfe" + n.to_bytes(4, "little")
    return b"\xff" + n.to_bytes(8, "little")


def _read_compact_size(data: bytes, offset: int) -> tuple[int, int]:
    if offset >= len(data):
        msg = "truncated compact size"
        raise ValueError(msg)
    first = data[offset]
    widths = {0xFD: 2, 0xFE: 4, 0xFF: 8}
    if first not in widths:
        return first, offset + 1
    width = widths[first]
    end = offset + 1 + width
    if end > len(data):
        msg = "truncated compact size"
        raise ValueError(msg)
    value = int.from_bytes(data[offset + 1 : end], "little")
    if _compact_size(value) != data[offset:end]:
        msg = "non-canonical compact size"
        raise ValueError(msg)
    return value, end


def _build_hrp_index() -> dict[str, tuple[tuple[Network, ...], AddressType]]:
    index: dict[str, tuple[tuple[Network, ...], AddressType]] = {}
    for net in Network:
        p = net.params
        index[p.sapling_hrp] = ((net,), AddressType.SAPLING)
        index[p.unified_hrp] = ((net,), AddressType.UNIFIED)
        index[p.tex_hrp] = ((net,), AddressType.TEX)
    return index


_HRP_INDEX = _build_hrp_index()
_ALL_TRANSPARENT_PREFIXES = frozenset(
    prefix for net in Network for prefix in (net.params.p2pkh_prefix, net.params.p2sh_prefix)
)
