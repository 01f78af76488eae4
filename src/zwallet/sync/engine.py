"""Sync engine — batched compact-block retrieval and hand-off to the scanner.

One call to :meth:`SyncEngine.sync` walks the states::

    IDLE -> RESOLVING -> IMPORTING -> (FETCHING -> SCANNING -> ADVANCING)* -> DONE
                                                                           \\-> ERRORED

Batches run strictly one after another because each batch continues from
the chain state the previous one recorded. A batch that fails to scan is
recorded in :attr:`SyncResult.failed_ranges`; under the ``continue`` policy
the loop moves past it, under ``halt`` it stops there.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from zwallet.config.settings import ScanFailurePolicy
from zwallet.errors.validation_errors import InvalidSyncRange, ValidationError
from zwallet.errors.wallet_errors import WalletError
from zwallet.sync.cursor import ChainState, ChainStateTracker
from zwallet.sync.scanner import HeaderScanner
from zwallet.utils.redact import redact_middle
from zwallet.wallet.models import AccountPurpose

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncIterator, Callable

    from zwallet.chain.lightwalletd.models import CompactBlock
    from zwallet.config.settings import SyncConfig
    from zwallet.metrics.collector import WalletMetrics
    from zwallet.sync.scanner import BlockScanner
    from zwallet.wallet.keystore import ViewingKeyProvider
    from zwallet.wallet.models import Account
    from zwallet.wallet.store import WalletStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class CompactBlockSource(Protocol):
    """Remote chain-data service (implemented by ``LightwalletdClient``)."""

    async def latest_height(self) -> int: ...

    def block_range(self, start: int, end: int) -> AsyncIterator[CompactBlock]: ...


class SyncState(enum.StrEnum):
    """Where a sync call currently is."""

    IDLE = "idle"
    RESOLVING = "resolving"
    IMPORTING = "importing"
    FETCHING = "fetching"
    SCANNING = "scanning"
    ADVANCING = "advancing"
    DONE = "done"
    ERRORED = "errored"


@dataclass(frozen=True)
class FailedRange:
    """An inclusive height range whose scan failed."""

    start: int
    end: int
    reason: str


@dataclass(frozen=True)
class SyncProgress:
    """Snapshot passed to the progress callback after each batch."""

    start_height: int
    end_height: int
    current_height: int
    blocks_processed: int
    failed_batches: int

    @property
    def fraction(self) -> float:
        total = self.end_height - self.start_height + 1
        done = self.current_height - self.start_height
        return min(1.0, max(0.0, done / total)) if total > 0 else 1.0


@dataclass
class SyncResult:
    """Outcome of one sync call.

    Attributes:
        start_height: Requested first height.
        end_height: Resolved last height.
        final_height: Last height the loop advanced past; ``start_height - 1``
            when nothing was advanced.
        blocks_processed: Blocks fetched and handed to the scanner.
        blocks_scanned: Blocks the scanner reported as scanned.
        batches: Batches attempted.
        failed_ranges: Ranges whose scan failed, for targeted re-sync.
        stopped_early: True if the loop ended before ``end_height``.
        stop_reason: Why it ended early: ``stop-requested``, ``empty-batch``,
            ``short-batch`` or ``scan-failed``.
        account_id: Account the blocks were scanned for.
    """

    start_height: int
    end_height: int
    final_height: int
    blocks_processed: int = 0
    blocks_scanned: int = 0
    batches: int = 0
    failed_ranges: list[FailedRange] = field(default_factory=list)
    stopped_early: bool = False
    stop_reason: str | None = None
    account_id: str | None = None

    def stop(self, reason: str) -> None:
        self.stopped_early = True
        self.stop_reason = reason

    @property
    def is_complete(self) -> bool:
        return not self.stopped_early and not self.failed_ranges

    @property
    def is_partial(self) -> bool:
        return not self.is_complete

    def describe(self) -> str:
        text = (
            f"Synced {self.blocks_processed} blocks "
            f"({self.start_height}..{self.final_height} of {self.end_height})"
        )
        if self.failed_ranges:
            ranges = ", ".join(f"{r.start}..{r.end}" for r in self.failed_ranges)
            text += f"; scan failed for {ranges}"
        if self.stopped_early:
            text += f"; stopped early ({self.stop_reason})"
        return text


class SyncEngine:
    """Synchronizes one account's wallet state against a compact block source.

    Args:
        source: Remote chain-data service.
        store: Wallet store for accounts and chain states.
        keys: Supplies the account's viewing key.
        scanner: Block scanner; defaults to :class:`HeaderScanner`.
        batch_size: Blocks per fetch.
        scan_failure_policy: ``continue`` past or ``halt`` at a failed batch.
        metrics: Optional metrics sink.
        progress: Optional callback invoked after every batch.
    """

    def __init__(
        self,
        source: CompactBlockSource,
        store: WalletStore,
        keys: ViewingKeyProvider,
        *,
        scanner: BlockScanner | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        scan_failure_policy: ScanFailurePolicy = ScanFailurePolicy.CONTINUE,
        metrics: WalletMetrics | None = None,
        progress: Callable[[SyncProgress], None] | None = None,
    ) -> None:
        if batch_size < 1:
            msg = f"batch_size must be at least 1, got {batch_size}"
            raise ValueError(msg)
        self._source = source
        self._store = store
        self._keys = keys
        self._scanner = scanner or HeaderScanner(store)
        self._tracker = ChainStateTracker(store)
        self._batch_size = batch_size
        self._policy = scan_failure_policy
        self._metrics = metrics
        self._progress = progress
        self._state = SyncState.IDLE

    @classmethod
    def from_config(
        cls,
        source: CompactBlockSource,
        store: WalletStore,
        keys: ViewingKeyProvider,
        config: SyncConfig,
        **kwargs: object,
    ) -> SyncEngine:
        return cls(
            source,
            store,
            keys,
            batch_size=config.batch_size,
            scan_failure_policy=config.scan_failure_policy,
            **kwargs,  # type: ignore[arg-type]
        )

    @property
    def state(self) -> SyncState:
        return self._state

    async def sync(
        self,
        start_height: int,
        end_height: int | None = None,
        *,
        stop: asyncio.Event | None = None,
    ) -> SyncResult:
        """Fetch and scan ``[start_height, end_height]``.

        Args:
            start_height: First height to scan.
            end_height: Last height to scan; ``None`` means the source's tip.
            stop: Checked between batches; when set the loop ends early.

        Returns:
            A :class:`SyncResult`; compare ``final_height`` with
            ``end_height`` or check ``is_complete``.

        Raises:
            InvalidSyncRange: If start lies beyond the resolved end.
            RemoteUnavailable, RemoteRejected: If resolving or fetching fails.
            AccountImportFailed: If the account cannot be looked up or created.
        """
        try:
            return await self._run(start_height, end_height, stop)
        except BaseException:
            self._state = SyncState.ERRORED
            raise

    async def _run(
        self, start_height: int, end_height: int | None, stop: asyncio.Event | None
    ) -> SyncResult:
        if start_height < 0:
            raise ValidationError(
                f"start height must be non-negative, got {start_height}",
                code="invalid-sync-range",
            )

        self._enter(SyncState.RESOLVING)
        end = end_height if end_height is not None else await self._source.latest_height()
        if start_height > end:
            raise InvalidSyncRange(start_height, end)
        if start_height == end:
            logger.info("Already at height %d; nothing to sync", end)
            self._enter(SyncState.DONE)
            return SyncResult(start_height=start_height, end_height=end, final_height=end)

        self._enter(SyncState.IMPORTING)
        viewing_key = self._keys.viewing_key()
        account = await self._store.get_or_create_account(
            viewing_key.encoded,
            purpose=AccountPurpose.VIEW_ONLY,
            birthday=ChainState.empty(start_height),
        )
        logger.info(
            "Starting sync %d..%d for account %s (key %s)",
            start_height,
            end,
            account.id,
            redact_middle(viewing_key.encoded, 8, 6),
        )

        result = SyncResult(
            start_height=start_height,
            end_height=end,
            final_height=start_height - 1,
            account_id=account.id,
        )
        current = start_height
        while current <= end:
            if stop is not None and stop.is_set():
                logger.info("Sync stop requested at height %d", current)
                result.stop("stop-requested")
                break

            batch_start = current
            batch_end = min(current + self._batch_size - 1, end)
            result.batches += 1

            self._enter(SyncState.FETCHING)
            blocks = [block async for block in self._source.block_range(current, batch_end)]
            if not blocks:
                logger.warning("No blocks returned for range %d..%d; stopping", current, batch_end)
                self._record_batch("empty")
                result.stop("empty-batch")
                break
            fetched_end = blocks[-1].height

            self._enter(SyncState.SCANNING)
            failure = await self._scan_batch(account, blocks, current, fetched_end, result)
            if failure is not None and self._policy is ScanFailurePolicy.HALT:
                logger.warning("Halting sync at failed batch %d..%d", current, fetched_end)
                result.stop("scan-failed")
                break

            self._enter(SyncState.ADVANCING)
            result.blocks_processed += len(blocks)
            current = fetched_end + 1
            if self._metrics is not None:
                self._metrics.set_sync_height(fetched_end)
            if self._progress is not None:
                self._progress(
                    SyncProgress(
                        start_height=start_height,
                        end_height=end,
                        current_height=current,
                        blocks_processed=result.blocks_processed,
                        failed_batches=len(result.failed_ranges),
                    )
                )
            if fetched_end < batch_end:
                logger.warning(
                    "Source returned blocks only up to %d of %d..%d; stopping",
                    fetched_end,
                    batch_start,
                    batch_end,
                )
                result.stop("short-batch")
                break

        result.final_height = current - 1
        self._enter(SyncState.DONE)
        logger.info(result.describe())
        return result

    async def _scan_batch(
        self,
        account: Account,
        blocks: list[CompactBlock],
        start: int,
        end: int,
        result: SyncResult,
    ) -> FailedRange | None:
        """Scan one batch; a failure is recorded on *result* instead of raised."""
        try:
            chain_state = await self._tracker.continuation(account.id)
        except WalletError as exc:
            return self._fail_batch(result, start, end, str(exc))
        try:
            summary = await self._scanner.scan(
                account,
                blocks,
                from_height=start,
                chain_state=chain_state,
                limit=len(blocks),
            )
        except WalletError as exc:
            return self._fail_batch(result, start, end, str(exc))
        except Exception as exc:
            # Scanner implementations may raise any exception type.
            logger.debug("Scanner raised %s", type(exc).__name__, exc_info=True)
            return self._fail_batch(result, start, end, f"{type(exc).__name__}: {exc}")

        result.blocks_scanned += summary.blocks_scanned
        self._record_batch("scanned", summary.blocks_scanned)
        logger.debug(
            "Scanned %d blocks (%d..%d)", summary.blocks_scanned, summary.start_height, end
        )
        return None

    def _fail_batch(self, result: SyncResult, start: int, end: int, reason: str) -> FailedRange:
        logger.warning("Failed to scan blocks %d..%d: %s", start, end, reason)
        failure = FailedRange(start=start, end=end, reason=reason)
        result.failed_ranges.append(failure)
        self._record_batch("scan_failed")
        return failure

    def _enter(self, state: SyncState) -> None:
        logger.debug("Sync state %s -> %s", self._state, state)
        self._state = state

    def _record_batch(self, outcome: str, blocks: int = 0) -> None:
        if self._metrics is not None:
            self._metrics.record_batch(outcome, blocks)
