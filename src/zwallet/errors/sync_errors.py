"""Block scanning errors."""

from __future__ import annotations

from zwallet.errors.wallet_errors import WalletError


class ScanError(WalletError):
    """A batch of compact blocks could not be scanned.

    Attributes:
        height: Height of the block that failed.
        reason: Why scanning stopped.
    """

    def __init__(self, height: int, reason: str) -> None:
        super().__init__(f"Scan failed at height {height}: {reason}", code="scan-error")
        self.height = height
        self.reason = reason
