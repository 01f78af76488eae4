"""lightwalletd data models — block ids, compact blocks, server info.

Decoded from the proto3 JSON mapping used by the gRPC-JSON gateway:
64-bit integers arrive as strings, ``bytes`` fields as base64, and fields
equal to their default value may be omitted entirely.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# proto3 JSON helpers
# ---------------------------------------------------------------------------


def decode_bytes(value: str | None) -> bytes:
    """Decode a proto3 JSON ``bytes`` value (standard or URL-safe base64)."""
    if not value:
        return b""
    padded = value + "=" * (-len(value) % 4)
    try:
        if "-" in value or "_" in value:
            return base64.urlsafe_b64decode(padded)
        return base64.b64decode(padded, validate=True)
    except binascii.Error as exc:
        msg = f"Invalid base64 bytes field: {value!r}"
        raise ValueError(msg) from exc


def encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def decode_uint(value: str | int | None) -> int:
    """Decode a proto3 JSON integer (uint64 values arrive as strings)."""
    if value is None or value == "":
        return 0
    return int(value)


def display_hash(raw: bytes) -> str:
    """Block and transaction hashes are displayed byte-reversed."""
    return raw[::-1].hex()


# ---------------------------------------------------------------------------
# Block identifiers
# ---------------------------------------------------------------------------


@dataclass
class BlockID:
    """A block height with its (display-order) hash."""

    height: int = 0
    hash: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockID:
        return cls(
            height=decode_uint(data.get("height")),
            hash=display_hash(decode_bytes(data.get("hash"))),
        )


# ---------------------------------------------------------------------------
# Compact blocks
# ---------------------------------------------------------------------------


@dataclass
class CompactBlock:
    """A compact block as served by lightwalletd.

    Only the header fields the wallet orders and links on are decoded; the
    transaction payload is kept verbatim in ``vtx`` for the scanner.

    Attributes:
        height: Block height.
        hash: Display-order block hash.
        prev_hash: Display-order hash of the parent block.
        time: Block timestamp (Unix seconds).
        proto_version: Compact block format version.
        vtx: Raw compact transactions (proto3 JSON objects).
    """

    height: int
    hash: str = ""
    prev_hash: str = ""
    time: int = 0
    proto_version: int = 0
    vtx: list[dict[str, Any]] = field(default_factory=list)

    @property
    def tx_count(self) -> int:
        return len(self.vtx)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompactBlock:
        return cls(
            height=decode_uint(data.get("height")),
            hash=display_hash(decode_bytes(data.get("hash"))),
            prev_hash=display_hash(decode_bytes(data.get("prevHash"))),
            time=decode_uint(data.get("time")),
            proto_version=decode_uint(data.get("protoVersion")),
            vtx=list(data.get("vtx", [])),
        )


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass
class RawTransaction:
    """Full serialized transaction and the height it was mined at (0 if unmined)."""

    data: bytes = b""
    height: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawTransaction:
        return cls(
            data=decode_bytes(data.get("data")),
            height=decode_uint(data.get("height")),
        )


@dataclass
class SendResponse:
    """Result of ``SendTransaction``; a zero ``error_code`` means accepted."""

    error_code: int = 0
    error_message: str = ""

    @property
    def is_success(self) -> bool:
        return self.error_code == 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SendResponse:
        return cls(
            error_code=int(data.get("errorCode", 0)),
            error_message=data.get("errorMessage", ""),
        )


# ---------------------------------------------------------------------------
# Server info
# ---------------------------------------------------------------------------


@dataclass
class LightdInfo:
    """Server information from ``GetLightdInfo``."""

    version: str = ""
    vendor: str = ""
    taddr_support: bool = False
    chain_name: str = ""
    sapling_activation_height: int = 0
    consensus_branch_id: str = ""
    block_height: int = 0
    estimated_height: int = 0
    git_commit: str = ""
    zcashd_build: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LightdInfo:
        return cls(
            version=data.get("version", ""),
            vendor=data.get("vendor", ""),
            taddr_support=bool(data.get("taddrSupport", False)),
            chain_name=data.get("chainName", ""),
            sapling_activation_height=decode_uint(data.get("saplingActivationHeight")),
            consensus_branch_id=data.get("consensusBranchId", ""),
            block_height=decode_uint(data.get("blockHeight")),
            estimated_height=decode_uint(data.get("estimatedHeight")),
            git_commit=data.get("gitCommit", ""),
            zcashd_build=data.get("zcashdBuild", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "vendor": self.vendor,
            "taddrSupport": self.taddr_support,
            "chainName": self.chain_name,
            "saplingActivationHeight": self.sapling_activation_height,
            "consensusBranchId": self.consensus_branch_id,
            "blockHeight": self.block_height,
            "estimatedHeight": self.estimated_height,
            "gitCommit": self.git_commit,
            "zcashdBuild": self.zcashd_build,
        }
