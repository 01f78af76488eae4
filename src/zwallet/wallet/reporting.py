"""Compliance reporting — viewing-key disclosure and a CSV audit trail.

The audit CSV has one row per received note and one per recorded
submission::

    txid,operation_id,direction,status,height,pool,amount_zec,fee_zec,memo

Received notes have status ``spent`` or ``unspent`` and no fee. Submissions
carry the node's last known status and have no height or pool; their txid
stays empty until the operation succeeds.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TextIO

from zwallet.wallet.keystore import SeedKeystore
from zwallet.zcash.amounts import zatoshis_to_zec

if TYPE_CHECKING:
    from collections.abc import Iterable

    from zwallet.wallet.keystore import ViewingKeyProvider
    from zwallet.wallet.models import ReceivedNote, SubmissionRecord
    from zwallet.zcash.network import Network

logger = logging.getLogger(__name__)

AUDIT_COLUMNS = (
    "txid",
    "operation_id",
    "direction",
    "status",
    "height",
    "pool",
    "amount_zec",
    "fee_zec",
    "memo",
)


@dataclass(frozen=True)
class ExportedViewingKeys:
    """What a wallet discloses to an auditor; never includes spending material.

    Attributes:
        network: Network the keys belong to.
        viewing_key: Encoded viewing key.
        fingerprint: SHA-256 hex id of ``viewing_key``.
        transparent_address: First external transparent address, when the
            wallet holds a seed; ``None`` for a bare viewing key.
    """

    network: Network
    viewing_key: str
    fingerprint: str
    transparent_address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": str(self.network),
            "viewing_key": self.viewing_key,
            "fingerprint": self.fingerprint,
            "transparent_address": self.transparent_address,
        }


def export_viewing_keys(keys: ViewingKeyProvider) -> ExportedViewingKeys:
    """Collect the viewing key and the attestation address for disclosure."""
    key = keys.viewing_key()
    address = keys.transparent_address() if isinstance(keys, SeedKeystore) else None
    logger.info("Exporting viewing key %s", key.fingerprint[:16])
    return ExportedViewingKeys(
        network=key.network,
        viewing_key=key.encoded,
        fingerprint=key.fingerprint,
        transparent_address=address,
    )


def _zec(zatoshis: int | None) -> str:
    return "" if zatoshis is None else format(zatoshis_to_zec(zatoshis), "f")


def audit_rows(
    notes: Iterable[ReceivedNote],
    submissions: Iterable[SubmissionRecord],
) -> list[list[str]]:
    """Rows in ``AUDIT_COLUMNS`` order: received notes first, then submissions."""
    rows = [
        [
            note.txid,
            "",
            "received",
            "spent" if note.spent else "unspent",
            str(note.height),
            note.pool,
            _zec(note.value),
            "",
            note.memo or "",
        ]
        for note in notes
    ]
    rows.extend(
        [
            sub.txid or "",
            sub.operation_id,
            "sent",
            sub.status,
            "",
            "",
            _zec(sub.amount),
            _zec(sub.fee),
            sub.memo or "",
        ]
        for sub in submissions
    )
    return rows


def write_audit_csv(
    stream: TextIO,
    notes: Iterable[ReceivedNote],
    submissions: Iterable[SubmissionRecord],
) -> int:
    """Write the header and every row to *stream*; returns the row count."""
    rows = audit_rows(notes, submissions)
    writer = csv.writer(stream)
    writer.writerow(AUDIT_COLUMNS)
    writer.writerows(rows)
    return len(rows)


def export_audit_csv(
    notes: Iterable[ReceivedNote],
    submissions: Iterable[SubmissionRecord],
) -> str:
    """The audit CSV as a string."""
    buffer = io.StringIO()
    write_audit_csv(buffer, notes, submissions)
    return buffer.getvalue()
