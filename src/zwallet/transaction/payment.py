"""Payment — one recipient line of an outgoing transaction."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from zwallet.errors.validation_errors import InvalidAmount
from zwallet.zcash.amounts import to_decimal, zec_to_zatoshis

MAX_MEMO_BYTES = 512


@dataclass(frozen=True)
class Payment:
    """A recipient, an amount in ZEC and an optional memo.

    Attributes:
        address: Encoded recipient address.
        amount: Amount in ZEC.
        memo: Raw memo bytes; ``None`` when absent.
    """

    address: str
    amount: Decimal
    memo: bytes | None = None

    @classmethod
    def create(
        cls,
        address: str,
        amount: Decimal | int | float | str,
        memo: str | bytes | None = None,
        *,
        index: int | None = None,
    ) -> Payment:
        """Build a payment from user input.

        Text memos are UTF-8 encoded and an empty memo counts as no memo.

        Raises:
            InvalidAmount: If *amount* is not numeric.
        """
        try:
            value = to_decimal(amount)
        except ValueError as exc:
            raise InvalidAmount(amount, "not a number", index=index) from exc
        if isinstance(memo, str):
            memo = memo.encode("utf-8")
        return cls(address=address.strip(), amount=value, memo=memo or None)

    @property
    def has_memo(self) -> bool:
        return bool(self.memo)

    @property
    def zatoshis(self) -> int:
        return zec_to_zatoshis(self.amount)

    def to_rpc(self) -> dict[str, Any]:
        """Render as a ``z_sendmany`` amounts entry (memo as hex)."""
        entry: dict[str, Any] = {"address": self.address, "amount": float(self.amount)}
        if self.memo:
            entry["memo"] = self.memo.hex()
        return entry
