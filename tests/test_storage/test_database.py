"""Tests for Database pool management using a mocked asyncpg pool."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cloudpg.storage.database import Database


def _mock_pool():
    """asyncpg-like pool whose acquire() yields one shared mock connection."""
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="OK")
    conn.executemany = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=1)

    @asynccontextmanager
    async def transaction():
        yield

    conn.transaction = transaction

    @asynccontextmanager
    async def acquire():
        yield conn

    pool = MagicMock()
    pool.acquire = acquire
    pool.close = AsyncMock()
    pool.conn = conn
    return pool


@pytest.fixture
def pool():
    return _mock_pool()


class TestDatabase:

    @pytest.mark.asyncio
    async def test_connect_enables_pgvector(self, pool):
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)) as create_pool:
            db = Database("postgresql://u:p@db:5432/app", min_size=2, max_size=5, command_timeout=30)
            await db.connect()

        create_pool.assert_awaited_once_with(
            "postgresql://u:p@db:5432/app", min_size=2, max_size=5, command_timeout=30
        )
        pool.conn.execute.assert_awaited_with("CREATE EXTENSION IF NOT EXISTS vector")

    def test_not_connected(self):
        db = Database("postgresql://u:p@db:5432/app")
        with pytest.raises(RuntimeError, match="not connected"):
            db.pool

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, pool):
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)):
            async with Database("postgresql://u:p@db:5432/app") as db:
                assert db.pool is pool

        pool.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_executemany_uses_transaction(self, pool):
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)):
            db = Database("postgresql://u:p@db:5432/app")
            await db.connect()

        rows = [("a", 1), ("b", 2)]
        await db.executemany("INSERT INTO t VALUES ($1, $2)", rows)
        pool.conn.executemany.assert_awaited_once_with("INSERT INTO t VALUES ($1, $2)", rows)

    @pytest.mark.asyncio
    async def test_health_check(self, pool):
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)):
            db = Database("postgresql://u:p@db:5432/app")
            await db.connect()

        assert await db.health_check() is True

        pool.conn.fetchval = AsyncMock(side_effect=OSError("gone"))
        assert await db.health_check() is False

    @pytest.mark.asyncio
    async def test_defaults_from_settings(self, monkeypatch):
        from cloudpg.config.settings import get_settings

        monkeypatch.setenv("DB_POOL_MAX_SIZE", "42")
        get_settings.cache_clear()
        try:
            db = Database()
            assert db._max_size == 42
        finally:
            get_settings.cache_clear()

    @pytest.mark.asyncio
    async def test_connect_creates_each_extension(self, pool):
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)):
            db = Database("postgresql://u:p@db:5432/app", extensions=("vector", "alloydb_scann"))
            assert db.connected is False
            await db.connect()

        assert db.connected is True
        statements = [c.args[0] for c in pool.conn.execute.await_args_list]
        assert statements == [
            "CREATE EXTENSION IF NOT EXISTS vector",
            "CREATE EXTENSION IF NOT EXISTS alloydb_scann",
        ]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, pool):
        with patch("asyncpg.create_pool", AsyncMock(return_value=pool)):
            db = Database("postgresql://u:p@db:5432/app")
            await db.connect()

        await db.close()
        await db.close()
        pool.close.assert_awaited_once()
        assert db.connected is False
