"""Block scanning — the hand-off point between the sync loop and note detection.

Trial decryption of shielded outputs belongs to an external scanning library
plugged in through :class:`BlockScanner`. :class:`HeaderScanner` is the
built-in scanner: it checks that a batch is ordered and hash-linked to the
continuation point and advances the account's chain state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from zwallet.errors.sync_errors import ScanError
from zwallet.sync.cursor import ChainState, ChainStateTracker

if TYPE_CHECKING:
    from collections.abc import Sequence

    from zwallet.chain.lightwalletd.models import CompactBlock
    from zwallet.wallet.models import Account
    from zwallet.wallet.store import WalletStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanSummary:
    """What a scanner consumed from one batch."""

    start_height: int
    end_height: int
    blocks_scanned: int
    notes_found: int = 0


class BlockScanner(Protocol):
    """Scans compact blocks for one account and persists what it finds."""

    async def scan(
        self,
        account: Account,
        blocks: Sequence[CompactBlock],
        *,
        from_height: int,
        chain_state: ChainState,
        limit: int,
    ) -> ScanSummary: ...


def select_blocks(
    blocks: Sequence[CompactBlock], from_height: int, limit: int
) -> list[CompactBlock]:
    """Blocks at or above *from_height*, at most *limit* of them."""
    return [b for b in blocks if b.height >= from_height][:limit]


class HeaderScanner:
    """Verifies batch ordering and hash linkage, then records the batch tip.

    Linkage to the continuation point is only checked when that point sits
    directly below the batch and carries a real hash.
    """

    def __init__(self, store: WalletStore) -> None:
        self._tracker = ChainStateTracker(store)

    async def scan(
        self,
        account: Account,
        blocks: Sequence[CompactBlock],
        *,
        from_height: int,
        chain_state: ChainState,
        limit: int,
    ) -> ScanSummary:
        selected = select_blocks(blocks, from_height, limit)
        if not selected:
            return ScanSummary(from_height, from_height - 1, 0)

        previous: tuple[int, str] | None = None
        if not chain_state.is_empty and chain_state.height == selected[0].height - 1:
            previous = (chain_state.height, chain_state.block_hash)
        for position, block in enumerate(selected):
            if position and block.height <= selected[position - 1].height:
                raise ScanError(
                    block.height, f"block follows height {selected[position - 1].height}"
                )
            if previous is not None:
                prev_height, prev_hash = previous
                linked = block.height == prev_height + 1
                if linked and prev_hash and block.prev_hash and block.prev_hash != prev_hash:
                    raise ScanError(
                        block.height,
                        f"prev_hash {block.prev_hash[:16]}... does not match "
                        f"block {prev_height} hash {prev_hash[:16]}...",
                    )
            previous = (block.height, block.hash)

        tip = selected[-1]
        if tip.height > chain_state.height:
            await self._tracker.advance(
                account.id,
                ChainState(height=tip.height, block_hash=tip.hash or ChainState.empty().block_hash),
            )
        logger.debug(
            "Scanned %d blocks %d..%d for account %s",
            len(selected),
            selected[0].height,
            tip.height,
            account.id,
        )
        return ScanSummary(selected[0].height, tip.height, len(selected))
