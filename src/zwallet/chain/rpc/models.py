"""zcashd RPC data models — chain info, address info, operation status.

Operation status records are decoded exactly once, here, into the tagged
variants :class:`Pending`, :class:`Succeeded` and :class:`Failed`; nothing
downstream inspects the raw JSON.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from zwallet.errors.chain_errors import RemoteRejected
from zwallet.zcash.amounts import zec_to_zatoshis

# ---------------------------------------------------------------------------
# Chain info
# ---------------------------------------------------------------------------


@dataclass
class BlockchainInfo:
    """Subset of ``getblockchaininfo``."""

    chain: str = ""
    blocks: int = 0
    headers: int = 0
    best_block_hash: str = ""
    difficulty: float = 0.0
    verification_progress: float = 0.0
    chainwork: str = ""
    pruned: bool = False
    commitments: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockchainInfo:
        return cls(
            chain=data.get("chain", ""),
            blocks=int(data.get("blocks", 0)),
            headers=int(data.get("headers", 0)),
            best_block_hash=data.get("bestblockhash", ""),
            difficulty=float(data.get("difficulty", 0)),
            verification_progress=float(data.get("verificationprogress", 0)),
            chainwork=data.get("chainwork", ""),
            pruned=bool(data.get("pruned", False)),
            commitments=int(data.get("commitments", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain": self.chain,
            "blocks": self.blocks,
            "headers": self.headers,
            "bestblockhash": self.best_block_hash,
            "difficulty": self.difficulty,
            "verificationprogress": self.verification_progress,
            "chainwork": self.chainwork,
            "pruned": self.pruned,
            "commitments": self.commitments,
        }


# ---------------------------------------------------------------------------
# Wallet queries
# ---------------------------------------------------------------------------


@dataclass
class AddressInfo:
    """One entry from ``z_listaddresses``."""

    address: str
    account: str | None = None
    label: str | None = None
    balance: Decimal | None = None

    @classmethod
    def from_value(cls, value: str | dict[str, Any]) -> AddressInfo:
        # Older zcashd answers with bare strings
        if isinstance(value, str):
            return cls(address=value)
        balance = value.get("balance")
        return cls(
            address=value.get("address", ""),
            account=value.get("account"),
            label=value.get("label"),
            balance=Decimal(str(balance)) if balance is not None else None,
        )


@dataclass
class TotalBalance:
    """``z_gettotalbalance`` result in zatoshis."""

    transparent: int = 0
    private: int = 0
    total: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TotalBalance:
        return cls(
            transparent=zec_to_zatoshis(str(data.get("transparent", "0"))),
            private=zec_to_zatoshis(str(data.get("private", "0"))),
            total=zec_to_zatoshis(str(data.get("total", "0"))),
        )


@dataclass
class TransactionDetail:
    """A spend or output line from ``z_viewtransaction``."""

    category: str = ""
    address: str | None = None
    amount: Decimal = Decimal(0)
    memo: str | None = None
    output_index: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionDetail:
        index = data.get("output", data.get("outgoing", data.get("vout")))
        return cls(
            category=data.get("type", data.get("category", "")),
            address=data.get("address"),
            amount=Decimal(str(data.get("value", data.get("amount", 0)))),
            memo=data.get("memoStr", data.get("memo")),
            output_index=index if isinstance(index, int) else None,
        )


@dataclass
class TransactionDetails:
    """``z_viewtransaction`` result."""

    txid: str
    spends: list[TransactionDetail] = field(default_factory=list)
    outputs: list[TransactionDetail] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionDetails:
        return cls(
            txid=data.get("txid", ""),
            spends=[TransactionDetail.from_dict(s) for s in data.get("spends", [])],
            outputs=[TransactionDetail.from_dict(o) for o in data.get("outputs", [])],
        )


# ---------------------------------------------------------------------------
# Operation status
# ---------------------------------------------------------------------------


class OperationState(enum.StrEnum):
    """Raw async-operation states reported by zcashd."""

    QUEUED = "queued"
    EXECUTING = "executing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Pending:
    """Operation still queued or executing."""

    operation_id: str
    state: OperationState = OperationState.QUEUED


@dataclass(frozen=True)
class Succeeded:
    """Operation finished; ``txid`` identifies the resulting transaction."""

    operation_id: str
    txid: str


@dataclass(frozen=True)
class Failed:
    """Operation failed or was cancelled remotely; ``reason`` is verbatim."""

    operation_id: str
    reason: str
    code: int | None = None


OperationStatus = Pending | Succeeded | Failed


def decode_operation_status(record: dict[str, Any]) -> OperationStatus:
    """Decode one ``z_getoperationstatus`` / ``z_getoperationresult`` record.

    Raises:
        RemoteRejected: If the record is malformed, has an unknown status, or
            reports success without a transaction id.
    """
    if not isinstance(record, dict):
        raise RemoteRejected(f"Malformed operation status record: {record!r}")
    operation_id = str(record.get("id", ""))
    raw_state = record.get("status")
    try:
        state = OperationState(raw_state)
    except ValueError:
        msg = f"Operation {operation_id} has unrecognised status {raw_state!r}"
        raise RemoteRejected(msg) from None

    if state in (OperationState.QUEUED, OperationState.EXECUTING):
        return Pending(operation_id=operation_id, state=state)

    if state is OperationState.SUCCESS:
        result = record.get("result")
        txid = result.get("txid") if isinstance(result, dict) else None
        txid = txid or record.get("txid")
        if not txid:
            msg = f"Operation {operation_id} reported success without a txid"
            raise RemoteRejected(msg)
        return Succeeded(operation_id=operation_id, txid=str(txid))

    error = record.get("error")
    if isinstance(error, dict):
        return Failed(
            operation_id=operation_id,
            reason=str(error.get("message", "Unknown error")),
            code=error.get("code"),
        )
    if error:
        return Failed(operation_id=operation_id, reason=str(error))
    if state is OperationState.CANCELLED:
        return Failed(operation_id=operation_id, reason="cancelled")
    return Failed(operation_id=operation_id, reason="Unknown error")
