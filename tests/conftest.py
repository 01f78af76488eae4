"""Shared test fixtures for the zwallet test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from zwallet.chain.lightwalletd.models import CompactBlock
from zwallet.config.settings import DatabaseConfig
from zwallet.datastore.client import Datastore
from zwallet.wallet.store import WalletStore
from zwallet.zcash.address import (
    Receiver,
    ReceiverType,
    encode_sapling,
    encode_transparent,
    encode_unified,
)
from zwallet.zcash.network import Network

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

# Deterministic receiver bytes; addresses are built with the wallet's own encoders.
P2PKH_HASH = bytes.fromhex("11" * 20)
SAPLING_RAW = bytes(range(43))
ORCHARD_RAW = bytes(range(100, 143))

T_ADDR = encode_transparent(P2PKH_HASH, Network.MAINNET)
Z_ADDR = encode_sapling(SAPLING_RAW, Network.MAINNET)
U_ADDR = encode_unified(
    [Receiver(ReceiverType.ORCHARD, ORCHARD_RAW), Receiver(ReceiverType.P2PKH, P2PKH_HASH)],
    Network.MAINNET,
)
TESTNET_T_ADDR = encode_transparent(P2PKH_HASH, Network.TESTNET)
TESTNET_Z_ADDR = encode_sapling(SAPLING_RAW, Network.TESTNET)

# BIP39 reference phrase (all-zero entropy)
MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


def block_hash(height: int) -> str:
    """Deterministic display-order hash for a test block."""
    return f"{height:064x}"


def compact_block(height: int, *, prev_hash: str | None = None) -> CompactBlock:
    """A compact block hash-linked to ``height - 1`` unless *prev_hash* is given."""
    return CompactBlock(
        height=height,
        hash=block_hash(height),
        prev_hash=block_hash(height - 1) if prev_hash is None else prev_hash,
        time=1_700_000_000 + height,
    )


@pytest.fixture
def db_config() -> DatabaseConfig:
    """In-memory SQLite database configuration."""
    return DatabaseConfig(dsn="sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def datastore(db_config: DatabaseConfig) -> AsyncIterator[Datastore]:
    """An open datastore with the wallet tables created."""
    ds = Datastore(db_config)
    await ds.open()
    yield ds
    await ds.close()


@pytest.fixture
async def store(datastore: Datastore) -> WalletStore:
    return WalletStore(datastore)
