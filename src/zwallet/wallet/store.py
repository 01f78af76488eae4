"""Wallet store — accounts, chain-state continuation points, balances and submissions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from zwallet.chain.rpc.models import Failed, Pending, Succeeded
from zwallet.errors.storage_errors import (
    AccountImportFailed,
    ChainStateRegression,
    StorageError,
)
from zwallet.sync.cursor import ChainState
from zwallet.wallet.balance import Balance, checked_sum
from zwallet.wallet.keystore import viewing_key_id
from zwallet.wallet.models import (
    Account,
    AccountPurpose,
    ChainStateRecord,
    Pool,
    ReceivedNote,
    SubmissionRecord,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from zwallet.chain.rpc.models import OperationStatus
    from zwallet.datastore.client import Datastore
    from zwallet.transaction.payment import Payment

logger = logging.getLogger(__name__)


class WalletStore:
    """Persistence for one wallet database.

    All methods open their own transaction; callers never see a session.
    """

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_or_create_account(
        self,
        viewing_key: str,
        *,
        name: str = "",
        purpose: AccountPurpose = AccountPurpose.VIEW_ONLY,
        birthday: ChainState | None = None,
    ) -> Account:
        """Return the account for *viewing_key*, creating it on first use.

        Lookup and insert run in one transaction against the unique
        ``viewing_key_id`` column; a concurrent insert that wins the race is
        re-read instead of duplicated.

        Raises:
            AccountImportFailed: On any storage failure.
        """
        key_id = viewing_key_id(viewing_key)
        birthday = birthday or ChainState.empty()
        try:
            async with self._ds.transaction() as session:
                existing = await self._account_by_key_id(session, key_id)
                if existing is not None:
                    return existing
                account = Account(
                    name=name,
                    viewing_key_id=key_id,
                    viewing_key=viewing_key,
                    purpose=purpose,
                    birthday_height=birthday.height,
                    birthday_hash=birthday.block_hash,
                )
                session.add(account)
                await session.flush()
                logger.info("Imported account %s (%s)", account.id, purpose)
                return account
        except IntegrityError:
            logger.debug("Account for key %s created concurrently; re-reading", key_id[:16])
        except SQLAlchemyError as exc:
            raise AccountImportFailed(str(exc)) from exc

        try:
            async with self._ds.transaction() as session:
                existing = await self._account_by_key_id(session, key_id)
        except SQLAlchemyError as exc:
            raise AccountImportFailed(str(exc)) from exc
        if existing is None:
            raise AccountImportFailed("account vanished after uniqueness conflict")
        return existing

    async def get_account_for_viewing_key(self, viewing_key: str) -> Account | None:
        key_id = viewing_key_id(viewing_key)
        try:
            async with self._ds.transaction() as session:
                return await self._account_by_key_id(session, key_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to look up account: {exc}") from exc

    async def get_account(self, account_id: str) -> Account | None:
        try:
            async with self._ds.transaction() as session:
                return await session.get(Account, account_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to look up account {account_id}: {exc}") from exc

    async def list_accounts(self) -> list[Account]:
        try:
            async with self._ds.transaction() as session:
                result = await session.execute(select(Account).order_by(Account.created_at))
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list accounts: {exc}") from exc

    # ------------------------------------------------------------------
    # Chain state
    # ------------------------------------------------------------------

    async def latest_chain_state(self, account_id: str) -> ChainState | None:
        """Highest recorded chain state for the account, if any."""
        try:
            async with self._ds.transaction() as session:
                record = await self._latest_record(session, account_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read chain state: {exc}") from exc
        if record is None:
            return None
        return ChainState(height=record.height, block_hash=record.block_hash)

    async def record_chain_state(self, account_id: str, state: ChainState) -> None:
        """Record *state* as the newest scanned position.

        Re-recording the current height replaces its hash.

        Raises:
            ChainStateRegression: If *state* is lower than the latest recorded height.
            StorageError: On any other storage failure.
        """
        try:
            async with self._ds.transaction() as session:
                latest = await self._latest_record(session, account_id)
                if latest is not None and state.height < latest.height:
                    raise ChainStateRegression(account_id, state.height, latest.height)
                if latest is not None and state.height == latest.height:
                    latest.block_hash = state.block_hash
                else:
                    session.add(
                        ChainStateRecord(
                            account_id=account_id,
                            height=state.height,
                            block_hash=state.block_hash,
                        )
                    )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to record chain state: {exc}") from exc

    # ------------------------------------------------------------------
    # Notes & balance
    # ------------------------------------------------------------------

    async def add_received_note(
        self,
        account_id: str,
        *,
        txid: str,
        output_index: int,
        pool: Pool,
        value: int,
        height: int,
        memo: str | None = None,
    ) -> ReceivedNote:
        checked_sum(pool, value)
        try:
            async with self._ds.transaction() as session:
                note = ReceivedNote(
                    account_id=account_id,
                    txid=txid,
                    output_index=output_index,
                    pool=pool,
                    value=value,
                    height=height,
                    memo=memo,
                )
                session.add(note)
                await session.flush()
                return note
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to store note {txid}:{output_index}: {exc}") from exc

    async def mark_spent(self, account_id: str, txid: str, output_index: int, pool: Pool) -> bool:
        """Mark a note spent; returns False if no such unspent note exists."""
        try:
            async with self._ds.transaction() as session:
                result = await session.execute(
                    update(ReceivedNote)
                    .where(
                        ReceivedNote.account_id == account_id,
                        ReceivedNote.txid == txid,
                        ReceivedNote.output_index == output_index,
                        ReceivedNote.pool == pool,
                        ReceivedNote.spent.is_(False),
                    )
                    .values(spent=True)
                )
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to mark {txid}:{output_index} spent: {exc}") from exc

    async def list_received_notes(self, account_id: str) -> list[ReceivedNote]:
        """Every note received by the account, oldest first."""
        try:
            async with self._ds.transaction() as session:
                result = await session.execute(
                    select(ReceivedNote)
                    .where(ReceivedNote.account_id == account_id)
                    .order_by(ReceivedNote.height, ReceivedNote.txid, ReceivedNote.output_index)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list notes: {exc}") from exc

    async def get_balance(self, account_id: str) -> Balance:
        """Sum unspent notes per pool.

        Raises:
            BalanceOverflow: If a pool or the total exceeds the u64 range.
            StorageError: If the notes cannot be read.
        """
        try:
            async with self._ds.transaction() as session:
                result = await session.execute(
                    select(ReceivedNote.pool, ReceivedNote.value).where(
                        ReceivedNote.account_id == account_id,
                        ReceivedNote.spent.is_(False),
                    )
                )
                rows = result.all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read balance: {exc}") from exc

        per_pool: dict[str, list[int]] = {pool: [] for pool in Pool}
        for pool, value in rows:
            per_pool[pool].append(value)
        return Balance(
            transparent=checked_sum(Pool.TRANSPARENT, *per_pool[Pool.TRANSPARENT]),
            sapling=checked_sum(Pool.SAPLING, *per_pool[Pool.SAPLING]),
            orchard=checked_sum(Pool.ORCHARD, *per_pool[Pool.ORCHARD]),
        )

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def record_submission(
        self,
        operation_id: str,
        from_address: str,
        payments: Sequence[Payment],
        fee: int | None = None,
    ) -> SubmissionRecord:
        """Remember a batch the node accepted, in the queued state."""
        memos = [p.memo.decode("utf-8", errors="replace") for p in payments if p.memo]
        try:
            async with self._ds.transaction() as session:
                record = SubmissionRecord(
                    operation_id=operation_id,
                    from_address=from_address,
                    recipients=len(payments),
                    amount=sum(p.zatoshis for p in payments),
                    fee=fee,
                    memo="\n".join(memos) or None,
                )
                session.add(record)
                await session.flush()
                return record
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to record submission {operation_id}: {exc}") from exc

    async def update_submission(self, status: OperationStatus) -> bool:
        """Store the latest status; returns False for an operation never recorded."""
        match status:
            case Succeeded(txid=txid):
                values = {"status": "success", "txid": txid, "reason": None}
            case Failed(reason=reason):
                values = {"status": "failed", "txid": None, "reason": reason}
            case Pending(state=state):
                values = {"status": str(state), "txid": None, "reason": None}
        try:
            async with self._ds.transaction() as session:
                result = await session.execute(
                    update(SubmissionRecord)
                    .where(SubmissionRecord.operation_id == status.operation_id)
                    .values(**values)
                )
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise StorageError(
                f"Failed to update submission {status.operation_id}: {exc}"
            ) from exc

    async def list_submissions(self) -> list[SubmissionRecord]:
        """Every recorded submission, oldest first."""
        try:
            async with self._ds.transaction() as session:
                result = await session.execute(
                    select(SubmissionRecord).order_by(
                        SubmissionRecord.created_at, SubmissionRecord.operation_id
                    )
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list submissions: {exc}") from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _account_by_key_id(session: AsyncSession, key_id: str) -> Account | None:
        result = await session.execute(select(Account).where(Account.viewing_key_id == key_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def _latest_record(session: AsyncSession, account_id: str) -> ChainStateRecord | None:
        result = await session.execute(
            select(ChainStateRecord)
            .where(ChainStateRecord.account_id == account_id)
            .order_by(ChainStateRecord.height.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
