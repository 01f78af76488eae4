"""Operation poller — waits for a submitted operation to reach a terminal state.

Time and sleeping are injectable so callers (and tests) control the clock,
and an optional :class:`asyncio.Event` lets a caller stop waiting early.
A timeout or cancellation never implies the operation failed: it may
still complete on the node.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Protocol

from zwallet.chain.rpc.models import Failed, Pending, Succeeded
from zwallet.errors.chain_errors import OperationCancelled, OperationFailed, OperationTimeout

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from zwallet.chain.rpc.models import OperationStatus
    from zwallet.config.settings import PollerConfig
    from zwallet.metrics.collector import WalletMetrics

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 2.0
DEFAULT_MAX_WAIT_SECONDS = 300.0


class OperationStatusSource(Protocol):
    """Remote processor side of polling (implemented by ``ZcashRPCClient``)."""

    async def z_getoperationstatus(self, operation_id: str) -> list[OperationStatus]: ...


class OperationPoller:
    """Polls operation status at a fixed interval.

    Args:
        source: Where status records come from.
        interval: Seconds to sleep between polls.
        max_wait: Default wait budget in seconds.
        clock: Monotonic clock returning seconds.
        sleep: Coroutine function used to pause between polls.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        source: OperationStatusSource,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        metrics: WalletMetrics | None = None,
    ) -> None:
        self._source = source
        self._interval = interval
        self._max_wait = max_wait
        self._clock = clock
        self._sleep = sleep
        self._metrics = metrics

    @classmethod
    def from_config(
        cls,
        source: OperationStatusSource,
        config: PollerConfig,
        *,
        metrics: WalletMetrics | None = None,
    ) -> OperationPoller:
        return cls(
            source,
            interval=config.interval_seconds,
            max_wait=config.max_wait_seconds,
            metrics=metrics,
        )

    async def check(self, operation_id: str) -> OperationStatus:
        """Poll once and return the operation's current status."""
        statuses = await self._source.z_getoperationstatus(operation_id)
        for status in statuses:
            if status.operation_id == operation_id:
                return status
        if statuses:
            return statuses[0]
        # Not listed yet: the node has accepted but not scheduled it.
        return Pending(operation_id=operation_id)

    async def wait_for_terminal(
        self,
        operation_id: str,
        max_wait_seconds: float | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Poll until the operation succeeds or fails; return its txid.

        Raises:
            OperationFailed: The node reported failure; ``reason`` is verbatim.
            OperationTimeout: The wait budget ran out while still pending.
            OperationCancelled: *cancel* was set while still pending.
            RemoteUnavailable, RemoteRejected: Polling itself failed.
        """
        budget = self._max_wait if max_wait_seconds is None else max_wait_seconds
        if self._metrics is None:
            return await self._poll(operation_id, budget, cancel)
        with self._metrics.track_operation_wait() as ctx:
            try:
                txid = await self._poll(operation_id, budget, cancel)
            except OperationTimeout:
                ctx["outcome"] = "timeout"
                raise
            except OperationCancelled:
                ctx["outcome"] = "cancelled"
                raise
            ctx["outcome"] = "succeeded"
            return txid

    async def _poll(self, operation_id: str, budget: float, cancel: asyncio.Event | None) -> str:
        start = self._clock()
        attempts = 0
        while True:
            elapsed = self._clock() - start
            if elapsed > budget:
                logger.warning(
                    "Gave up on operation %s after %.1fs and %d polls", operation_id, elapsed, attempts
                )
                raise OperationTimeout(operation_id, budget)
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(operation_id)

            status = await self.check(operation_id)
            attempts += 1
            match status:
                case Succeeded(txid=txid):
                    logger.info("Operation %s succeeded: txid %s", operation_id, txid)
                    return txid
                case Failed(reason=reason, code=code):
                    logger.warning("Operation %s failed: %s", operation_id, reason)
                    raise OperationFailed(operation_id, reason, rpc_code=code)
                case Pending(state=state):
                    logger.debug("Operation %s still %s", operation_id, state)

            await self._pause(cancel)

    async def _pause(self, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await self._sleep(self._interval)
            return
        sleeper = asyncio.ensure_future(self._sleep(self._interval))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()
