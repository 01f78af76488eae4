"""Remote service errors — chain-data service and transaction processor."""

from __future__ import annotations

from zwallet.errors.wallet_errors import WalletError


class ChainError(WalletError):
    """Error talking to a remote service."""

    def __init__(self, message: str, *, code: str = "chain-error") -> None:
        super().__init__(message, code=code)


class InvalidEndpoint(ChainError):
    """The remote endpoint URL is malformed; raised before any network call."""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(f"invalid endpoint {endpoint!r}: {reason}", code="invalid-endpoint")
        self.endpoint = endpoint


class RemoteUnavailable(ChainError):
    """Transport-level failure: connection refused, DNS, TLS, read timeout."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="remote-unavailable")


class RemoteRejected(ChainError):
    """The remote service answered with a structured error.

    Attributes:
        rpc_code: Remote error code, if the service supplied one.
    """

    def __init__(
        self,
        message: str,
        *,
        rpc_code: int | None = None,
        code: str = "remote-rejected",
    ) -> None:
        super().__init__(message, code=code)
        self.rpc_code = rpc_code


class OperationFailed(RemoteRejected):
    """The transaction processor reported an operation as failed."""

    def __init__(self, operation_id: str, reason: str, *, rpc_code: int | None = None) -> None:
        super().__init__(
            f"Operation {operation_id} failed: {reason}",
            rpc_code=rpc_code,
            code="operation-failed",
        )
        self.operation_id = operation_id
        self.reason = reason


class OperationTimeout(WalletError):
    """Polling gave up before the operation reached a terminal state.

    The operation itself may still succeed later.
    """

    def __init__(self, operation_id: str, waited_seconds: float) -> None:
        super().__init__(
            f"Operation {operation_id} did not reach a terminal state within "
            f"{waited_seconds:g} seconds; it may still complete, so check its status "
            "before resubmitting",
            code="operation-timeout",
        )
        self.operation_id = operation_id
        self.waited_seconds = waited_seconds


class OperationCancelled(WalletError):
    """Polling was cancelled by the caller before a terminal state."""

    def __init__(self, operation_id: str) -> None:
        super().__init__(
            f"Stopped waiting for operation {operation_id}; it may still complete",
            code="operation-cancelled",
        )
        self.operation_id = operation_id
