"""Payment validation — pure checks run before anything reaches the network.

Each payment is checked against these rules, in order:
1. amount is finite, positive, no more than the 21M ZEC supply and a whole
   number of zatoshis
2. memo is at most 512 bytes
3. a memo is only sent to an address that can receive one
4. the address parses under the active network
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from zwallet.errors.validation_errors import (
    InvalidAddress,
    InvalidAmount,
    MemoOnTransparentAddress,
    MemoTooLarge,
    ValidationError,
)
from zwallet.transaction.payment import MAX_MEMO_BYTES
from zwallet.zcash.address import parse_address
from zwallet.zcash.amounts import MAX_SUPPLY_ZEC, is_whole_zatoshis, to_decimal

if TYPE_CHECKING:
    from collections.abc import Sequence

    from zwallet.transaction.payment import Payment
    from zwallet.zcash.address import ParsedAddress
    from zwallet.zcash.network import Network


def validate_address(address: str, network: Network, *, index: int | None = None) -> ParsedAddress:
    """Parse *address* under *network*, tagging any failure with *index*."""
    try:
        return parse_address(address, network)
    except InvalidAddress as exc:
        raise InvalidAddress(address, exc.reason, index=index) from exc


def validate_amount(amount: object, *, index: int | None = None) -> None:
    try:
        value = to_decimal(amount)  # type: ignore[arg-type]
    except ValueError as exc:
        raise InvalidAmount(amount, "not a number", index=index) from exc
    if not value.is_finite():
        raise InvalidAmount(amount, "must be a finite number", index=index)
    if value <= 0:
        raise InvalidAmount(amount, "must be positive", index=index)
    if value > MAX_SUPPLY_ZEC:
        raise InvalidAmount(amount, f"exceeds maximum of {MAX_SUPPLY_ZEC} ZEC", index=index)
    if not is_whole_zatoshis(value):
        raise InvalidAmount(amount, "has more than 8 decimal places", index=index)


def validate_payment(payment: Payment, network: Network, *, index: int | None = None) -> None:
    """Check one payment.

    Raises:
        ValidationError: The first rule the payment breaks, tagged with *index*.
    """
    validate_amount(payment.amount, index=index)

    if payment.memo:
        if len(payment.memo) > MAX_MEMO_BYTES:
            raise MemoTooLarge(len(payment.memo), MAX_MEMO_BYTES, index=index)
        try:
            parsed = parse_address(payment.address, network)
        except InvalidAddress as exc:
            raise InvalidAddress(payment.address, exc.reason, index=index) from exc
        if not parsed.can_receive_memo:
            raise MemoOnTransparentAddress(payment.address, index=index)
        return

    validate_address(payment.address, network, index=index)


def check_payments(payments: Sequence[Payment], network: Network) -> list[ValidationError]:
    """Every violation in the batch, one per offending payment."""
    errors: list[ValidationError] = []
    for index, payment in enumerate(payments):
        try:
            validate_payment(payment, network, index=index)
        except ValidationError as exc:
            errors.append(exc)
    return errors


def validate_payments(payments: Sequence[Payment], network: Network) -> None:
    """Validate a whole batch, stopping at the first violation.

    Raises:
        ValidationError: If the batch is empty or any payment is invalid.
    """
    if not payments:
        raise ValidationError("at least one payment is required", code="empty-payments")
    for index, payment in enumerate(payments):
        validate_payment(payment, network, index=index)
