"""Validation errors — raised locally before any network call."""

from __future__ import annotations

from zwallet.errors.wallet_errors import WalletError


class ValidationError(WalletError):
    """Bad address, amount, memo or range supplied by the caller.

    Attributes:
        index: Position of the offending payment in its batch, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "validation-error",
        index: int | None = None,
    ) -> None:
        if index is not None:
            message = f"Payment {index}: {message}"
        super().__init__(message, code=code)
        self.index = index


class InvalidAmount(ValidationError):
    """Amount is not finite, not positive, or above the maximum supply."""

    def __init__(self, amount: object, reason: str, *, index: int | None = None) -> None:
        super().__init__(f"invalid amount {amount}: {reason}", code="invalid-amount", index=index)
        self.amount = amount
        self.reason = reason


class MemoTooLarge(ValidationError):
    """Memo exceeds the 512-byte protocol limit."""

    def __init__(self, size: int, limit: int, *, index: int | None = None) -> None:
        super().__init__(
            f"memo is {size} bytes, exceeding the {limit}-byte limit",
            code="memo-too-large",
            index=index,
        )
        self.size = size
        self.limit = limit


class MemoOnTransparentAddress(ValidationError):
    """A memo was attached to a recipient that cannot receive one."""

    def __init__(self, address: str, *, index: int | None = None) -> None:
        super().__init__(
            "memo provided but recipient address is transparent "
            "(memos are only supported for shielded addresses)",
            code="memo-on-transparent-address",
            index=index,
        )
        self.address = address


class InvalidAddress(ValidationError):
    """Address does not parse under the active network's grammar."""

    def __init__(self, address: str, reason: str, *, index: int | None = None) -> None:
        super().__init__(f"invalid address: {reason}", code="invalid-address", index=index)
        self.address = address
        self.reason = reason


class InvalidPaymentRequest(ValidationError):
    """A structured payment request (ZIP-321 URI) is malformed."""

    def __init__(self, reason: str, *, index: int | None = None) -> None:
        super().__init__(
            f"invalid payment request: {reason}", code="invalid-payment-request", index=index
        )
        self.reason = reason


class InvalidSyncRange(ValidationError):
    """Sync start height lies beyond the resolved end height."""

    def __init__(self, start_height: int, end_height: int) -> None:
        super().__init__(
            f"start height {start_height} is greater than end height {end_height}",
            code="invalid-sync-range",
        )
        self.start_height = start_height
        self.end_height = end_height
