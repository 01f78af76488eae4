"""Tests for SyncEngine — batching, failure policy, stop requests and metrics."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from conftest import MNEMONIC, block_hash, compact_block

from zwallet.config.settings import ScanFailurePolicy, SyncConfig
from zwallet.errors import InvalidSyncRange, RemoteUnavailable, ValidationError
from zwallet.metrics.collector import WalletMetrics
from zwallet.sync.cursor import ChainState
from zwallet.sync.engine import SyncEngine, SyncProgress, SyncResult, SyncState
from zwallet.wallet.keystore import SeedKeystore
from zwallet.zcash.network import Network

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from zwallet.chain.lightwalletd.models import CompactBlock
    from zwallet.sync.scanner import ScanSummary
    from zwallet.wallet.models import Account
    from zwallet.wallet.store import WalletStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeSource:
    """In-memory compact block source serving heights 1..tip."""

    def __init__(
        self,
        tip: int,
        *,
        broken_links: tuple[int, ...] = (),
        fail_at: int | None = None,
    ) -> None:
        self.tip = tip
        self.broken_links = broken_links
        self.fail_at = fail_at
        self.requests: list[tuple[int, int]] = []
        self.tip_calls = 0

    async def latest_height(self) -> int:
        self.tip_calls += 1
        return self.tip

    async def block_range(self, start: int, end: int) -> AsyncIterator[CompactBlock]:
        self.requests.append((start, end))
        for height in range(start, min(end, self.tip) + 1):
            if height == self.fail_at:
                raise RemoteUnavailable(f"stream dropped at {height}")
            if height in self.broken_links:
                yield compact_block(height, prev_hash="ff" * 32)
            else:
                yield compact_block(height)


class ExplodingScanner:
    """A scanner whose backing library fails with its own exception type."""

    async def scan(
        self,
        account: Account,
        blocks: Sequence[CompactBlock],
        *,
        from_height: int,
        chain_state: ChainState,
        limit: int,
    ) -> ScanSummary:
        raise RuntimeError("decrypt failed")


@pytest.fixture
def keys() -> SeedKeystore:
    return SeedKeystore.from_mnemonic(MNEMONIC, Network.MAINNET)


def _engine(source: FakeSource, store: WalletStore, keys: SeedKeystore, **kwargs) -> SyncEngine:
    kwargs.setdefault("batch_size", 100)
    return SyncEngine(source, store, keys, **kwargs)


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------


class TestRanges:
    async def test_full_range_in_batches(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=250)
        engine = _engine(source, store, keys)

        result = await engine.sync(1, 250)

        assert source.requests == [(1, 100), (101, 200), (201, 250)]
        assert result.batches == 3
        assert result.blocks_processed == 250
        assert result.blocks_scanned == 250
        assert result.final_height == 250
        assert result.is_complete
        assert engine.state is SyncState.DONE
        account = await store.get_account_for_viewing_key(keys.viewing_key().encoded)
        assert account is not None
        assert result.account_id == account.id
        assert await store.latest_chain_state(account.id) == ChainState(250, block_hash(250))

    async def test_end_defaults_to_tip(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=40)
        result = await _engine(source, store, keys).sync(10)
        assert source.tip_calls == 1
        assert result.end_height == 40
        assert result.final_height == 40

    async def test_pinned_end_skips_tip_lookup(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=40)
        await _engine(source, store, keys).sync(10, 20)
        assert source.tip_calls == 0

    async def test_start_equals_end_is_noop(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=100)
        result = await _engine(source, store, keys).sync(100, 100)
        assert result == SyncResult(start_height=100, end_height=100, final_height=100)
        assert source.requests == []
        assert await store.list_accounts() == []

    async def test_start_beyond_end(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=100)
        engine = _engine(source, store, keys)
        with pytest.raises(InvalidSyncRange) as exc_info:
            await engine.sync(150)
        assert exc_info.value.start_height == 150
        assert exc_info.value.end_height == 100
        assert source.requests == []
        assert engine.state is SyncState.ERRORED

    async def test_negative_start(self, store: WalletStore, keys: SeedKeystore) -> None:
        with pytest.raises(ValidationError, match="non-negative"):
            await _engine(FakeSource(tip=10), store, keys).sync(-1, 5)

    async def test_resume_links_to_previous_run(self, store: WalletStore, keys: SeedKeystore) -> None:
        engine = _engine(FakeSource(tip=300), store, keys)
        first = await engine.sync(1, 150)
        second = await engine.sync(151, 300)
        assert first.account_id == second.account_id
        assert second.is_complete
        assert len(await store.list_accounts()) == 1

    def test_batch_size_must_be_positive(self, store: WalletStore, keys: SeedKeystore) -> None:
        with pytest.raises(ValueError, match="batch_size"):
            SyncEngine(FakeSource(tip=1), store, keys, batch_size=0)

    async def test_from_config(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=25)
        config = SyncConfig(batch_size=10, scan_failure_policy=ScanFailurePolicy.HALT)
        result = await SyncEngine.from_config(source, store, keys, config).sync(1, 25)
        assert result.batches == 3


# ---------------------------------------------------------------------------
# Partial results
# ---------------------------------------------------------------------------


class TestPartialSync:
    async def test_empty_batch_stops(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=200)
        result = await _engine(source, store, keys).sync(1, 300)
        assert result.stopped_early
        assert result.stop_reason == "empty-batch"
        assert result.final_height == 200
        assert result.blocks_processed == 200
        assert source.requests[-1] == (201, 300)
        assert "stopped early (empty-batch)" in result.describe()

    async def test_empty_first_batch_advances_nothing(
        self, store: WalletStore, keys: SeedKeystore
    ) -> None:
        source = FakeSource(tip=0)
        result = await _engine(source, store, keys).sync(50, 300)
        assert result.stop_reason == "empty-batch"
        assert result.blocks_processed == 0
        assert result.final_height == 49
        assert result.final_height < result.end_height

    async def test_short_batch_stops_at_last_fetched_block(
        self, store: WalletStore, keys: SeedKeystore
    ) -> None:
        source = FakeSource(tip=150)
        result = await _engine(source, store, keys).sync(1, 300)
        assert result.stop_reason == "short-batch"
        assert result.final_height == 150
        assert result.blocks_processed == 150
        assert source.requests == [(1, 100), (101, 200)]
        assert not result.is_complete

    async def test_scan_failure_continues(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=250, broken_links=(101,))
        result = await _engine(source, store, keys).sync(1, 250)

        assert result.final_height == 250
        assert [(r.start, r.end) for r in result.failed_ranges] == [(101, 200)]
        assert "prev_hash" in result.failed_ranges[0].reason
        assert result.blocks_processed == 250
        assert result.blocks_scanned == 150
        assert result.is_partial
        assert "scan failed for 101..200" in result.describe()

    async def test_scan_failure_halts(self, store: WalletStore, keys: SeedKeystore) -> None:
        source = FakeSource(tip=250, broken_links=(101,))
        result = await _engine(
            source, store, keys, scan_failure_policy=ScanFailurePolicy.HALT
        ).sync(1, 250)

        assert result.stopped_early
        assert result.stop_reason == "scan-failed"
        assert result.final_height == 100
        assert [(r.start, r.end) for r in result.failed_ranges] == [(101, 200)]
        assert source.requests == [(1, 100), (101, 200)]

    async def test_foreign_scanner_exception_is_a_failed_batch(
        self, store: WalletStore, keys: SeedKeystore
    ) -> None:
        engine = _engine(FakeSource(tip=250), store, keys, scanner=ExplodingScanner())
        result = await engine.sync(1, 250)

        assert engine.state is SyncState.DONE
        assert result.final_height == 250
        assert [(r.start, r.end) for r in result.failed_ranges] == [
            (1, 100),
            (101, 200),
            (201, 250),
        ]
        assert result.failed_ranges[0].reason == "RuntimeError: decrypt failed"
        assert result.blocks_scanned == 0

    async def test_foreign_scanner_exception_halts(
        self, store: WalletStore, keys: SeedKeystore
    ) -> None:
        result = await _engine(
            FakeSource(tip=250),
            store,
            keys,
            scanner=ExplodingScanner(),
            scan_failure_policy=ScanFailurePolicy.HALT,
        ).sync(1, 250)
        assert result.stop_reason == "scan-failed"
        assert result.final_height == 0

    async def test_fetch_failure_propagates(self, store: WalletStore, keys: SeedKeystore) -> None:
        engine = _engine(FakeSource(tip=250, fail_at=120), store, keys)
        with pytest.raises(RemoteUnavailable, match="dropped at 120"):
            await engine.sync(1, 250)
        assert engine.state is SyncState.ERRORED

    async def test_stop_before_first_batch(self, store: WalletStore, keys: SeedKeystore) -> None:
        stop = asyncio.Event()
        stop.set()
        source = FakeSource(tip=100)
        result = await _engine(source, store, keys).sync(1, 100, stop=stop)
        assert result.stopped_early
        assert result.batches == 0
        assert result.stop_reason == "stop-requested"
        assert result.final_height == 0
        assert source.requests == []

    async def test_stop_between_batches(self, store: WalletStore, keys: SeedKeystore) -> None:
        stop = asyncio.Event()
        engine = _engine(
            FakeSource(tip=300), store, keys, progress=lambda _progress: stop.set()
        )
        result = await engine.sync(1, 300, stop=stop)
        assert result.batches == 1
        assert result.final_height == 100
        assert result.stopped_early


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------


class TestObservers:
    async def test_progress_callback(self, store: WalletStore, keys: SeedKeystore) -> None:
        seen: list[SyncProgress] = []
        await _engine(FakeSource(tip=250), store, keys, progress=seen.append).sync(1, 250)
        assert [p.current_height for p in seen] == [101, 201, 251]
        assert seen[0].fraction == pytest.approx(0.4)
        assert seen[-1].fraction == 1.0
        assert seen[-1].blocks_processed == 250

    async def test_metrics(self, store: WalletStore, keys: SeedKeystore) -> None:
        metrics = WalletMetrics()
        source = FakeSource(tip=300, broken_links=(101,))
        await _engine(source, store, keys, metrics=metrics).sync(1, 350)

        registry = metrics.registry
        sample = registry.get_sample_value
        assert sample("zwallet_sync_batches_total", {"outcome": "scanned"}) == 2
        assert sample("zwallet_sync_batches_total", {"outcome": "scan_failed"}) == 1
        assert sample("zwallet_sync_batches_total", {"outcome": "empty"}) == 1
        assert sample("zwallet_blocks_scanned_total") == 200
        assert sample("zwallet_sync_height") == 300
