"""Network selection and per-network encoding parameters.

Every address, key and validation call takes a :class:`Network` explicitly;
there is no process-wide "current network".
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


@dataclass(frozen=True)
class NetworkParams:
    """Encoding constants for one Zcash network.

    Attributes:
        p2pkh_prefix: Two-byte Base58Check prefix for transparent P2PKH.
        p2sh_prefix: Two-byte Base58Check prefix for transparent P2SH.
        sapling_hrp: Bech32 human-readable part for Sapling addresses.
        unified_hrp: Bech32m human-readable part for Unified Addresses.
        tex_hrp: Bech32m human-readable part for ZIP-320 TEX addresses.
        coin_type: BIP44 coin type used for key derivation.
    """

    p2pkh_prefix: bytes
    p2sh_prefix: bytes
    sapling_hrp: str
    unified_hrp: str
    tex_hrp: str
    coin_type: int


_MAINNET = NetworkParams(
    p2pkh_prefix=b"\x1c\xb8",  # t1...
    p2sh_prefix=b"\x1c\xbd",  # t3...
    sapling_hrp="zs",
    unified_hrp="u",
    tex_hrp="tex",
    coin_type=133,
)

_TESTNET = NetworkParams(
    p2pkh_prefix=b"\x1d\x25",  # tm...
    p2sh_prefix=b"\x1c\xba",  # t2...
    sapling_hrp="ztestsapling",
    unified_hrp="utest",
    tex_hrp="textest",
    coin_type=1,
)

# Regtest shares the testnet transparent prefixes but has its own HRPs.
_REGTEST = NetworkParams(
    p2pkh_prefix=b"\x1d\x25",
    p2sh_prefix=b"\x1c\xba",
    sapling_hrp="zregtestsapling",
    unified_hrp="uregtest",
    tex_hrp="texregtest",
    coin_type=1,
)


class Network(enum.StrEnum):
    """Supported Zcash networks."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    REGTEST = "regtest"

    @property
    def params(self) -> NetworkParams:
        """Encoding parameters for this network."""
        return _PARAMS[self]

    @property
    def is_mainnet(self) -> bool:
        return self is Network.MAINNET

    @classmethod
    def parse(cls, value: str) -> Network:
        """Parse a network name case-insensitively.

        Raises:
            ValueError: If the name is not a known network.
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            msg = f"Unknown network: {value!r} (expected mainnet, testnet or regtest)"
            raise ValueError(msg) from None


_PARAMS: dict[Network, NetworkParams] = {
    Network.MAINNET: _MAINNET,
    Network.TESTNET: _TESTNET,
    Network.REGTEST: _REGTEST,
}
