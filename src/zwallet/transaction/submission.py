"""Submission pipeline — validate a payment batch and hand it to the node.

Submission is all-or-nothing: the whole batch is validated before anything
is sent, and the first violation aborts with its payment index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from zwallet.chain.rpc.models import Failed, Pending, Succeeded
from zwallet.errors.chain_errors import RemoteRejected
from zwallet.errors.validation_errors import ValidationError
from zwallet.transaction.fees import estimate_fee
from zwallet.transaction.payment import Payment
from zwallet.transaction.payment_request import PaymentRequest
from zwallet.transaction.validator import validate_address, validate_payments
from zwallet.utils.redact import redact_middle

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal

    from zwallet.chain.rpc.models import OperationStatus
    from zwallet.metrics.collector import WalletMetrics
    from zwallet.zcash.network import Network

logger = logging.getLogger(__name__)


class PaymentProcessor(Protocol):
    """Remote transaction processor (implemented by ``ZcashRPCClient``)."""

    async def z_sendmany(
        self,
        from_address: str,
        payments: Sequence[Payment],
        minconf: int = 1,
        fee: int | None = None,
    ) -> str: ...


@dataclass
class Submission:
    """A submitted operation and its last known status."""

    operation_id: str
    status: OperationStatus = field(init=False)

    def __post_init__(self) -> None:
        self.status = Pending(operation_id=self.operation_id)

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.status, Succeeded | Failed)

    def describe(self) -> str:
        match self.status:
            case Succeeded(txid=txid):
                return f"{self.operation_id}: success (txid {txid})"
            case Failed(reason=reason):
                return f"{self.operation_id}: failed ({reason})"
            case Pending(state=state):
                return f"{self.operation_id}: {state}"
        return self.operation_id


class SubmissionPipeline:
    """Validates payments and submits them through a :class:`PaymentProcessor`.

    Args:
        processor: Remote processor accepting ``z_sendmany`` batches.
        network: Network every address must belong to.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        processor: PaymentProcessor,
        network: Network,
        *,
        metrics: WalletMetrics | None = None,
    ) -> None:
        self._processor = processor
        self._network = network
        self._metrics = metrics

    @property
    def network(self) -> Network:
        return self._network

    def estimate_fee(self, from_address: str, payments: Sequence[Payment]) -> int:
        """ZIP-317 estimate in zatoshis; a shielded source counts as a shielded input."""
        source = validate_address(from_address, self._network)
        return estimate_fee(payments, source.is_shielded)

    async def submit(
        self,
        from_address: str,
        payments: Sequence[Payment],
        min_confirmations: int = 1,
        fee: int | None = None,
    ) -> str:
        """Validate and submit a payment batch; return the operation id.

        Args:
            from_address: Source address held by the node's wallet.
            payments: Recipients, validated as a whole before sending.
            min_confirmations: Minimum confirmations for spent funds.
            fee: Explicit fee in zatoshis; ``None`` lets the node decide.

        Raises:
            ValidationError: On the first invalid input; nothing is sent.
            RemoteUnavailable, RemoteRejected: If the node could not accept the batch.
        """
        try:
            source = validate_address(from_address, self._network)
            validate_payments(payments, self._network)
            if min_confirmations < 0:
                raise ValidationError(
                    f"min_confirmations must be >= 0, got {min_confirmations}",
                    code="invalid-minconf",
                )
            if fee is not None and fee < 0:
                raise ValidationError(f"fee must be >= 0, got {fee}", code="invalid-fee")
        except ValidationError:
            self._record("invalid")
            raise

        estimate = estimate_fee(payments, source.is_shielded)
        if fee is not None and fee < estimate:
            logger.warning(
                "Explicit fee %d zatoshis is below the ZIP-317 estimate of %d; "
                "the node may reject the transaction",
                fee,
                estimate,
            )

        logger.info(
            "Submitting %d payment(s) from %s (estimated fee %d zatoshis)",
            len(payments),
            redact_middle(from_address),
            estimate,
        )
        try:
            operation_id = await self._processor.z_sendmany(
                from_address, list(payments), min_confirmations, fee
            )
        except RemoteRejected:
            self._record("rejected")
            raise
        self._record("accepted")
        logger.info("Submission accepted as operation %s", operation_id)
        return operation_id

    async def send_to_address(
        self,
        from_address: str,
        to_address: str,
        amount: Decimal | int | float | str,
        memo: str | bytes | None = None,
        min_confirmations: int = 1,
        fee: int | None = None,
    ) -> str:
        """Single-recipient form of :meth:`submit`."""
        try:
            payment = Payment.create(to_address, amount, memo, index=0)
        except ValidationError:
            self._record("invalid")
            raise
        return await self.submit(from_address, [payment], min_confirmations, fee)

    async def submit_request(
        self,
        from_address: str,
        request: PaymentRequest | str,
        min_confirmations: int = 1,
        fee: int | None = None,
    ) -> str:
        """Submit a ZIP-321 request (parsed or as a ``zcash:`` URI)."""
        if isinstance(request, str):
            try:
                request = PaymentRequest.from_uri(request, self._network)
            except ValidationError:
                self._record("invalid")
                raise
        return await self.submit(from_address, request.payments, min_confirmations, fee)

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_submission(outcome)
