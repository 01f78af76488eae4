"""Wallet storage errors."""

from __future__ import annotations

from zwallet.errors.wallet_errors import WalletError


class StorageError(WalletError):
    """Failure reading or writing wallet storage."""

    def __init__(self, message: str, *, code: str = "storage-error") -> None:
        super().__init__(message, code=code)


class AccountImportFailed(StorageError):
    """Account lookup-or-create failed for a viewing key."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to import account: {reason}", code="account-import-failed")


class ChainStateRegression(StorageError):
    """A chain state lower than the latest recorded one was submitted."""

    def __init__(self, account_id: str, height: int, latest: int) -> None:
        super().__init__(
            f"Chain state for account {account_id} cannot move back from {latest} to {height}",
            code="chain-state-regression",
        )
        self.account_id = account_id
        self.height = height
        self.latest = latest


class BalanceOverflow(StorageError):
    """A balance aggregate exceeded the 64-bit range."""

    def __init__(self, pool: str) -> None:
        super().__init__(f"{pool} balance exceeds u64 range", code="balance-overflow")
        self.pool = pool
