"""
asyncpg pool wrapper shared by the vector store, index manager and chat history.

The pool connects to AlloyDB or Cloud SQL for PostgreSQL through an endpoint
that is already authenticated (auth proxy, private IP, or a local instance).
Credential and IAM resolution happen outside this module.
"""

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

import asyncpg

from cloudpg.config.settings import get_settings

logger = logging.getLogger(__name__)


class Database:
    """
    Pooled connection handle for one PostgreSQL instance.

    Every adapter in this package talks to the database through this
    object, which keeps fakes in tests down to a handful of coroutines
    (execute, executemany, fetch, fetchval, transaction).

    Usage:
        async with Database() as db:
            await db.execute('CREATE INDEX ...')
            rows = await db.fetch("SELECT ...", 10)
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        command_timeout: float | None = None,
        extensions: Sequence[str] | None = None,
    ):
        """
        Args:
            database_url: DSN; falls back to DATABASE_URL
            min_size: smallest pool size; falls back to DB_POOL_MIN_SIZE
            max_size: largest pool size; falls back to DB_POOL_MAX_SIZE
            command_timeout: per-statement timeout in seconds
            extensions: extensions created on connect if missing; falls back
                to DB_EXTENSIONS
        """
        settings = get_settings()

        self._database_url = database_url or str(settings.database_url)
        self._min_size = min_size or settings.db_pool_min_size
        self._max_size = max_size or settings.db_pool_max_size
        self._command_timeout = command_timeout or settings.db_command_timeout
        self._extensions = tuple(
            settings.db_extensions if extensions is None else extensions
        )

        self._pool: asyncpg.Pool | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Open the pool and make sure the configured extensions exist."""
        try:
            self._pool = await asyncpg.create_pool(
                self._database_url,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=self._command_timeout,
            )
            async with self._pool.acquire() as conn:
                for extension in self._extensions:
                    await conn.execute(f"CREATE EXTENSION IF NOT EXISTS {extension}")
        except Exception:
            logger.exception("Could not open PostgreSQL pool")
            raise

        logger.info(
            "PostgreSQL pool ready (size %d-%d, extensions: %s)",
            self._min_size,
            self._max_size,
            ", ".join(self._extensions) or "none",
        )

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("PostgreSQL pool closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected; await connect() first")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Yield a connection inside an open transaction.

        Statements issued on the yielded connection commit together when the
        block exits and roll back together if it raises.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Run one statement; returns the server's status tag (e.g. ``DELETE 3``)."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def executemany(self, query: str, args: Iterable[Sequence[Any]]) -> None:
        """Run ``query`` once per parameter tuple; all rows commit or none do."""
        async with self.transaction() as conn:
            await conn.executemany(query, args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True when ``SELECT 1`` round-trips; connection errors count as unhealthy."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except (OSError, asyncpg.PostgresError, RuntimeError):
            return False
