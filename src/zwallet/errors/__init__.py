"""Error taxonomy for wallet operations."""

from zwallet.errors.chain_errors import (
    ChainError,
    InvalidEndpoint,
    OperationCancelled,
    OperationFailed,
    OperationTimeout,
    RemoteRejected,
    RemoteUnavailable,
)
from zwallet.errors.storage_errors import (
    AccountImportFailed,
    BalanceOverflow,
    ChainStateRegression,
    StorageError,
)
from zwallet.errors.sync_errors import ScanError
from zwallet.errors.validation_errors import (
    InvalidAddress,
    InvalidAmount,
    InvalidPaymentRequest,
    InvalidSyncRange,
    MemoOnTransparentAddress,
    MemoTooLarge,
    ValidationError,
)
from zwallet.errors.wallet_errors import WalletError

__all__ = [
    "AccountImportFailed",
    "BalanceOverflow",
    "ChainError",
    "ChainStateRegression",
    "InvalidAddress",
    "InvalidAmount",
    "InvalidEndpoint",
    "InvalidPaymentRequest",
    "InvalidSyncRange",
    "MemoOnTransparentAddress",
    "MemoTooLarge",
    "OperationCancelled",
    "OperationFailed",
    "OperationTimeout",
    "RemoteRejected",
    "RemoteUnavailable",
    "ScanError",
    "StorageError",
    "ValidationError",
    "WalletError",
]
