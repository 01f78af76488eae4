"""Wallet storage ORM models — accounts, chain states, received notes, submissions."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for wallet models."""


class TimestampMixin:
    """Created / updated timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Pool(enum.StrEnum):
    """Value pools a received note can belong to."""

    TRANSPARENT = "transparent"
    SAPLING = "sapling"
    ORCHARD = "orchard"


class AccountPurpose(enum.StrEnum):
    """Whether the account can spend or only observe."""

    SPENDING = "spending"
    VIEW_ONLY = "view_only"


def _new_account_id() -> str:
    return str(uuid.uuid4())


class Account(Base, TimestampMixin):
    """A wallet identity derived from one viewing key.

    ``viewing_key_id`` is unique: one viewing key maps to at most one account.
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_account_id)
    name: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    viewing_key_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="SHA-256 hex of the encoded viewing key",
    )
    viewing_key: Mapped[str] = mapped_column(Text, nullable=False)
    purpose: Mapped[str] = mapped_column(
        String(16), default=AccountPurpose.VIEW_ONLY, nullable=False
    )
    birthday_height: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    birthday_hash: Mapped[str] = mapped_column(String(64), default="", nullable=False)

    def __repr__(self) -> str:
        return f"<Account id={self.id} key={self.viewing_key_id[:16]}...>"


class ChainStateRecord(Base, TimestampMixin):
    """A scanned chain position for an account."""

    __tablename__ = "chain_states"
    __table_args__ = (UniqueConstraint("account_id", "height", name="uq_chain_state_height"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<ChainStateRecord account={self.account_id} height={self.height}>"


class ReceivedNote(Base, TimestampMixin):
    """A note (or transparent output) received by an account."""

    __tablename__ = "received_notes"
    __table_args__ = (
        UniqueConstraint("account_id", "txid", "output_index", "pool", name="uq_received_note"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    txid: Mapped[str] = mapped_column(String(64), nullable=False)
    output_index: Mapped[int] = mapped_column(Integer, nullable=False)
    pool: Mapped[str] = mapped_column(String(16), nullable=False)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    spent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    def __repr__(self) -> str:
        return f"<ReceivedNote {self.txid[:16]}...:{self.output_index} {self.pool}={self.value}>"


class SubmissionRecord(Base, TimestampMixin):
    """An outgoing batch accepted by the node, keyed by its operation id.

    ``status`` is one of queued, executing, success or failed; ``txid`` is set
    on success and ``reason`` on failure.
    """

    __tablename__ = "submissions"

    operation_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    from_address: Mapped[str] = mapped_column(Text, nullable=False)
    recipients: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    status: Mapped[str] = mapped_column(String(16), default="queued", nullable=False)
    txid: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    def __repr__(self) -> str:
        return f"<SubmissionRecord {self.operation_id} {self.status}>"
