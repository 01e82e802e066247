"""Pytest fixtures for vectorstore tests."""

import re
from contextlib import asynccontextmanager
from typing import Any

import asyncpg
import pytest

from cloudpg.vectorstore.base import Embeddings
from cloudpg.vectorstore.config import VectorStoreConfig

_CREATE_INDEX_RE = re.compile(r'CREATE INDEX (?:CONCURRENTLY )?"([^"]+)" ON "([^"]+)"\."([^"]+)"')
_DROP_INDEX_RE = re.compile(r'DROP INDEX IF EXISTS "([^"]+)"\."([^"]+)"')
_REINDEX_RE = re.compile(r'REINDEX INDEX "([^"]+)"\."([^"]+)"')


class FakeDatabase:
    """
    In-memory stand-in for cloudpg.storage.Database.

    Records every statement and keeps a tiny ``pg_indexes`` catalog so
    index lifecycle tests can observe state transitions.
    """

    def __init__(self) -> None:
        self.statements: list[str] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.batches: list[tuple[str, list[Any]]] = []
        # (schema, table, index name)
        self.indexes: set[tuple[str, str, str]] = set()
        self.fetch_result: list[dict[str, Any]] = []
        # substring of a statement -> exception raised when it is issued
        self.failures: dict[str, Exception] = {}

    def fail_on(self, fragment: str, exc: Exception) -> None:
        self.failures[fragment] = exc

    def _record(self, query: str, args: tuple[Any, ...]) -> None:
        self.statements.append(query)
        self.calls.append((query, args))
        for fragment, exc in self.failures.items():
            if fragment in query:
                raise exc

    async def execute(self, query: str, *args: Any) -> str:
        self._record(query, args)

        match = _CREATE_INDEX_RE.search(query)
        if match:
            name, schema, table = match.groups()
            if any(s == schema and n == name for s, _, n in self.indexes):
                raise asyncpg.exceptions.DuplicateTableError(f'relation "{name}" already exists')
            self.indexes.add((schema, table, name))
            return "CREATE INDEX"

        match = _DROP_INDEX_RE.search(query)
        if match:
            schema, name = match.groups()
            self.indexes = {i for i in self.indexes if not (i[0] == schema and i[2] == name)}
            return "DROP INDEX"

        match = _REINDEX_RE.search(query)
        if match:
            schema, name = match.groups()
            if not any(s == schema and n == name for s, _, n in self.indexes):
                raise asyncpg.exceptions.UndefinedObjectError(f'index "{name}" does not exist')
            return "REINDEX"

        return "OK"

    async def executemany(self, query: str, args) -> None:
        rows = [list(a) for a in args]
        self._record(query, ())
        self.batches.append((query, rows))

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        self._record(query, args)
        return self.fetch_result

    async def fetchval(self, query: str, *args: Any) -> Any:
        self._record(query, args)
        if "pg_indexes" in query:
            return tuple(args) in self.indexes
        return 1

    @asynccontextmanager
    async def transaction(self):
        yield self

    def statements_containing(self, fragment: str) -> list[str]:
        return [s for s in self.statements if fragment in s]


class FakeEmbeddings(Embeddings):
    """Deterministic embedder: each text maps to a 3-dimensional vector."""

    def __init__(self, drop_last: bool = False, fail: bool = False) -> None:
        self.drop_last = drop_last
        self.fail = fail
        self.document_calls: list[list[str]] = []
        self.query_calls: list[str] = []

    @staticmethod
    def vector_for(text: str) -> list[float]:
        return [float(len(text)), 1.0, 0.5]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        vectors = [self.vector_for(t) for t in texts]
        return vectors[:-1] if self.drop_last else vectors

    async def embed_query(self, text: str) -> list[float]:
        self.query_calls.append(text)
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        return self.vector_for(text)


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def store_config() -> VectorStoreConfig:
    """Config with one dedicated metadata column."""
    return VectorStoreConfig(metadata_columns=["region"])


@pytest.fixture
def failing_embeddings() -> FakeEmbeddings:
    """Embedder whose every call raises."""
    return FakeEmbeddings(fail=True)


@pytest.fixture
def short_embeddings() -> FakeEmbeddings:
    """Embedder that returns one vector fewer than requested."""
    return FakeEmbeddings(drop_last=True)
