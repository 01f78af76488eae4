"""Wallet datastore — owns the async engine, the schema and unit-of-work sessions."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from zwallet.datastore.engines import create_engine
from zwallet.wallet.models import Base

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from zwallet.config.settings import DatabaseConfig

logger = logging.getLogger(__name__)


class Datastore:
    """Wallet database handle.

    ``open`` creates the wallet tables unless told not to. Every store
    operation runs in its own ``transaction()``::

        ds = Datastore(config.db)
        await ds.open()
        async with ds.transaction() as session:
            ...
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        """The async engine.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._engine is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._engine

    async def open(self, *, create_schema: bool = True) -> None:
        """Connect and, by default, create any missing wallet tables."""
        dsn = make_url(self._config.dsn).render_as_string(hide_password=True)
        logger.info("Opening wallet database %s", dsn)
        self._engine = create_engine(self._config)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        if create_schema:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the engine. Safe to call more than once."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None

    def session(self) -> AsyncSession:
        """A bare session; the caller commits and closes it.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._sessions is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._sessions()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """A session committed on clean exit and rolled back on any exception."""
        async with self.session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
