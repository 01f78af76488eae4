"""Sync cursor — chain positions and the continuation point for each batch.

The tracker keeps no state of its own: every call reads the latest recorded
position back from the wallet store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from zwallet.wallet.store import WalletStore

logger = logging.getLogger(__name__)

EMPTY_BLOCK_HASH = "00" * 32


@dataclass(frozen=True)
class ChainState:
    """A position in the chain: block height and display-order block hash."""

    height: int
    block_hash: str = EMPTY_BLOCK_HASH

    @classmethod
    def empty(cls, height: int = 0) -> ChainState:
        """A synthesized position with no known block hash."""
        return cls(height=height, block_hash=EMPTY_BLOCK_HASH)

    @property
    def is_empty(self) -> bool:
        return self.block_hash == EMPTY_BLOCK_HASH


class ChainStateTracker:
    """Supplies the scan continuation point for an account.

    Args:
        store: Wallet store holding recorded chain states.
    """

    def __init__(self, store: WalletStore) -> None:
        self._store = store

    async def continuation(self, account_id: str) -> ChainState:
        """Latest recorded chain state, or the empty genesis state if none exists."""
        state = await self._store.latest_chain_state(account_id)
        if state is None:
            logger.debug("No chain state for account %s; starting from genesis", account_id)
            return ChainState.empty()
        return state

    async def advance(self, account_id: str, state: ChainState) -> None:
        """Persist *state* as the account's newest scanned position."""
        await self._store.record_chain_state(account_id, state)
