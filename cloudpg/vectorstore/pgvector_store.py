"""
pgvector implementation of the VectorStore interface for AlloyDB and
Cloud SQL for PostgreSQL.

Documents live in one table: an id column, a content column, a
``vector(n)`` embedding column, optional per-key metadata columns, and an
optional JSONB column holding the remaining metadata. Index DDL is
delegated to VectorIndexManager.
"""

import json
import re
import time
import uuid
from decimal import Decimal
from typing import Any

import numpy as np
import structlog
from pydantic import ValidationError

from cloudpg.observability.metrics import get_metrics
from cloudpg.observability.tracing import get_tracer, traced
from cloudpg.storage.database import Database
from cloudpg.vectorstore.base import Document, Embeddings, VectorStore
from cloudpg.vectorstore.config import DISTANCE_ALIAS, VectorStoreConfig
from cloudpg.vectorstore.errors import (
    ConfigurationError,
    EmbeddingCountMismatchError,
    EmbeddingError,
    InsertBatchFailedError,
    MetadataDecodeError,
    OverwriteRequiredError,
    QueryFailedError,
    ResultDecodeError,
)
from cloudpg.vectorstore.index_manager import VectorIndexManager
from cloudpg.vectorstore.indexes import IndexSpec
from cloudpg.vectorstore.sql import (
    column_list,
    is_valid_identifier,
    qualified_name,
    quote_identifier,
    vector_literal,
)

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

# Column type names accepted by init_vectorstore_table, e.g. TEXT,
# VARCHAR(64), NUMERIC(10, 2), TEXT[]
_COLUMN_TYPE_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_ ]*(\(\d+(\s*,\s*\d+)?\))?(\[\])?$")


async def init_vectorstore_table(
    database: Database,
    table_name: str,
    vector_size: int,
    config: VectorStoreConfig | None = None,
    metadata_column_types: dict[str, str] | None = None,
    id_column_type: str = "UUID",
    overwrite_existing: bool = False,
) -> None:
    """
    Create a table laid out the way PostgresVectorStore reads and writes it.

    Args:
        database: Connected Database instance
        table_name: Table to create
        vector_size: Embedding dimension
        config: Column mapping (defaults when None)
        metadata_column_types: SQL types for configured metadata columns
            (TEXT for any column not listed)
        id_column_type: SQL type of the id column
        overwrite_existing: Drop an existing table first (needs overwrite)

    Raises:
        OverwriteRequiredError: overwrite_existing without the overwrite opt-in
        ConfigurationError: bad table name, vector size or column type
        QueryFailedError: DDL failed (including "table already exists")
    """
    cfg = config or VectorStoreConfig()
    if not table_name or not is_valid_identifier(table_name):
        raise ConfigurationError(
            f"Invalid table name: {table_name!r}",
            operation="init_vectorstore_table",
            table=table_name or None,
        )
    if isinstance(vector_size, bool) or not isinstance(vector_size, int) or vector_size < 1:
        raise ConfigurationError(
            f"vector_size must be a positive integer, got {vector_size!r}",
            operation="init_vectorstore_table",
            table=table_name,
        )
    types = metadata_column_types or {}
    unknown = set(types) - set(cfg.metadata_columns)
    if unknown:
        raise ConfigurationError(
            f"Types given for undeclared metadata columns: {sorted(unknown)}",
            operation="init_vectorstore_table",
            table=table_name,
        )
    for column, sql_type in [*types.items(), (cfg.id_column, id_column_type)]:
        if not _COLUMN_TYPE_RE.match(sql_type):
            raise ConfigurationError(
                f"Invalid column type {sql_type!r}",
                operation="init_vectorstore_table",
                table=table_name,
                column=column,
            )

    if overwrite_existing and not cfg.overwrite:
        raise OverwriteRequiredError(
            f"Replacing table {table_name!r} requires overwrite to be enabled",
            operation="init_vectorstore_table",
            table=table_name,
        )

    column_defs = [
        f"{quote_identifier(cfg.id_column)} {id_column_type} PRIMARY KEY",
        f"{quote_identifier(cfg.content_column)} TEXT NOT NULL",
        f"{quote_identifier(cfg.embedding_column)} vector({vector_size}) NOT NULL",
    ]
    for column in cfg.metadata_columns:
        column_defs.append(f"{quote_identifier(column)} {types.get(column, 'TEXT')}")
    if cfg.metadata_json_column:
        column_defs.append(f"{quote_identifier(cfg.metadata_json_column)} JSONB")

    table = qualified_name(cfg.schema_name, table_name)
    create_sql = f"CREATE TABLE {table} (\n    " + ",\n    ".join(column_defs) + "\n)"

    try:
        await database.execute("CREATE EXTENSION IF NOT EXISTS vector")
        if overwrite_existing:
            await database.execute(f"DROP TABLE IF EXISTS {table}")
        await database.execute(create_sql)
    except Exception as e:
        raise QueryFailedError(
            f"Failed to create table {table_name!r}: {e}",
            operation="init_vectorstore_table",
            table=table_name,
        ) from e

    logger.info(
        "Initialized vector store table",
        table=table_name,
        schema=cfg.schema_name,
        vector_size=vector_size,
        metadata_columns=cfg.metadata_columns,
    )


class PostgresVectorStore(VectorStore):
    """
    pgvector-backed vector store over a single table.

    The store holds no mutable state besides its immutable configuration,
    so one instance can be shared by concurrent tasks; concurrency
    guarantees are those of the underlying pool and PostgreSQL.

    Usage:
        store = PostgresVectorStore(db, embeddings, "documents",
                                    metadata_columns=["region"])
        await store.init_vectorstore_table(vector_size=768)
        ids = await store.add_documents([Document("hello", {"region": "us"})])
        docs = await store.similarity_search("hi", k=2, filter="region = 'us'")
    """

    def __init__(
        self,
        database: Database,
        embeddings: Embeddings,
        table_name: str,
        config: VectorStoreConfig | None = None,
        **overrides: Any,
    ):
        """
        Initialize the store.

        Args:
            database: Connected Database instance
            embeddings: Embedder used for documents and queries
            table_name: Table holding the documents
            config: Column mapping and defaults
            **overrides: Individual VectorStoreConfig fields (schema_name,
                metadata_columns, k, distance_strategy, overwrite, ...)

        Raises:
            ConfigurationError: a required input is missing or invalid
        """
        if database is None:
            raise ConfigurationError("A database handle is required", operation="init")
        if embeddings is None:
            raise ConfigurationError("An embedder is required", operation="init")
        if not table_name:
            raise ConfigurationError("A table name is required", operation="init")
        if not is_valid_identifier(table_name):
            raise ConfigurationError(
                f"Invalid table name: {table_name!r}", operation="init", table=table_name
            )

        if overrides:
            base = config.model_dump() if config is not None else {}
            try:
                config = VectorStoreConfig(**{**base, **overrides})
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid vector store configuration: {e}",
                    operation="init",
                    table=table_name,
                ) from e

        self._db = database
        self._embeddings = embeddings
        self._table = table_name
        self._config = config or VectorStoreConfig()
        self._indexes = VectorIndexManager(database, table_name, self._config)

    @property
    def config(self) -> VectorStoreConfig:
        return self._config

    @property
    def table_name(self) -> str:
        return self._table

    @property
    def embeddings(self) -> Embeddings:
        return self._embeddings

    @property
    def index_manager(self) -> VectorIndexManager:
        return self._indexes

    @property
    def qualified_table(self) -> str:
        return qualified_name(self._config.schema_name, self._table)

    # ── Table setup ──────────────────────────────────────────────────

    async def init_vectorstore_table(
        self,
        vector_size: int,
        metadata_column_types: dict[str, str] | None = None,
        id_column_type: str = "UUID",
        overwrite_existing: bool = False,
    ) -> None:
        """Create the table this store reads and writes; see init_vectorstore_table."""
        await init_vectorstore_table(
            self._db,
            self._table,
            vector_size,
            config=self._config,
            metadata_column_types=metadata_column_types,
            id_column_type=id_column_type,
            overwrite_existing=overwrite_existing,
        )

    # ── Ingestion ────────────────────────────────────────────────────

    async def add_documents(self, documents: list[Document]) -> list[str]:
        """
        Embed documents and insert them in one atomic batch.

        Ids come from ``metadata["id"]`` when it is a string, then
        ``Document.id``, else a new UUID4. Metadata keys matching a
        configured metadata column go to that column; everything else is
        stored in the JSON column (``{}`` when nothing remains).

        Returns:
            Inserted ids, in input order

        Raises:
            EmbeddingError: the embedder failed or returned a bad vector
            EmbeddingCountMismatchError: vector count differs from document count
            InsertBatchFailedError: the batch was rejected; no rows are inserted
        """
        if not documents:
            return []

        start = time.perf_counter()
        texts = [doc.page_content for doc in documents]

        with traced(
            tracer, "vectorstore.add_documents", {"db.table": self._table, "batch_size": len(texts)}
        ):
            try:
                vectors = await self._embeddings.embed_documents(texts)
            except Exception as e:
                get_metrics().record_error("add_documents", type(e).__name__)
                raise EmbeddingError(
                    f"Failed to embed {len(texts)} documents: {e}",
                    operation="add_documents",
                    table=self._table,
                ) from e

            if len(vectors) != len(texts):
                get_metrics().record_error("add_documents", "EmbeddingCountMismatchError")
                raise EmbeddingCountMismatchError(
                    expected=len(texts),
                    actual=len(vectors),
                    operation="add_documents",
                    table=self._table,
                )

            ids: list[str] = []
            rows: list[list[Any]] = []
            for doc, vector in zip(documents, vectors):
                doc_id = self._resolve_id(doc)
                ids.append(doc_id)
                rows.append(self._build_row(doc_id, doc, vector))

            try:
                await self._db.executemany(self._insert_sql(), rows)
            except Exception as e:
                get_metrics().record_error("add_documents", type(e).__name__)
                raise InsertBatchFailedError(
                    f"Failed to insert {len(rows)} documents into {self._table!r}: {e}",
                    operation="add_documents",
                    table=self._table,
                ) from e

        latency = time.perf_counter() - start
        get_metrics().record_documents_added(self._table, len(ids), latency)
        logger.info(
            "Added documents",
            table=self._table,
            count=len(ids),
            latency_ms=round(latency * 1000, 1),
        )
        return ids

    async def add_texts(
        self,
        texts: list[str],
        metadatas: list[dict[str, Any]] | None = None,
        ids: list[str] | None = None,
    ) -> list[str]:
        """
        Wrap raw texts as documents and add them.

        Raises:
            ValueError: metadatas or ids length differs from texts
        """
        if metadatas is not None and len(metadatas) != len(texts):
            raise ValueError(
                f"texts and metadatas must have same length: {len(texts)} != {len(metadatas)}"
            )
        if ids is not None and len(ids) != len(texts):
            raise ValueError(f"texts and ids must have same length: {len(texts)} != {len(ids)}")

        documents = [
            Document(
                page_content=text,
                metadata=dict(metadatas[i]) if metadatas is not None else {},
                id=ids[i] if ids is not None else None,
            )
            for i, text in enumerate(texts)
        ]
        return await self.add_documents(documents)

    def _resolve_id(self, doc: Document) -> str:
        candidate = doc.metadata.get("id") if doc.metadata else None
        if isinstance(candidate, str) and candidate:
            return candidate
        if doc.id:
            return doc.id
        return str(uuid.uuid4())

    def _build_row(self, doc_id: str, doc: Document, vector: list[float]) -> list[Any]:
        try:
            embedding = vector_literal(vector)
        except (TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid embedding for document {doc_id!r}: {e}",
                operation="add_documents",
                table=self._table,
                column=self._config.embedding_column,
            ) from e

        residual = dict(doc.metadata or {})
        row: list[Any] = [doc_id, doc.page_content, embedding]
        for column in self._config.metadata_columns:
            row.append(residual.pop(column, None))

        if self._config.metadata_json_column:
            try:
                row.append(json.dumps(residual))
            except (TypeError, ValueError) as e:
                raise InsertBatchFailedError(
                    f"Metadata for document {doc_id!r} is not JSON serializable: {e}",
                    operation="add_documents",
                    table=self._table,
                    column=self._config.metadata_json_column,
                ) from e
        return row

    def _insert_sql(self) -> str:
        cfg = self._config
        placeholders = ["$1", "$2", "$3::vector"]
        n = 3
        for _ in cfg.metadata_columns:
            n += 1
            placeholders.append(f"${n}")
        if cfg.metadata_json_column:
            n += 1
            placeholders.append(f"${n}::jsonb")

        return (
            f"INSERT INTO {self.qualified_table} ({column_list(cfg.insert_columns)}) "
            f"VALUES ({', '.join(placeholders)})"
        )

    # ── Search ───────────────────────────────────────────────────────

    async def similarity_search(
        self,
        query: str,
        k: int | None = None,
        filter: str | None = None,
    ) -> list[Document]:
        """
        Embed ``query`` and return the nearest documents.

        Args:
            query: Query text
            k: Result count (config default when None)
            filter: Raw SQL predicate applied as the WHERE clause. It is
                trusted caller input and is interpolated as-is.

        Returns:
            Documents nearest first. Rows at equal distance come back in
            storage order, which is not guaranteed to be stable.

        Raises:
            EmbeddingError: the query could not be embedded
            MetadataDecodeError: a stored metadata value is not a JSON object
            ResultDecodeError: a row had an unexpected distance value
            QueryFailedError: the SELECT failed
        """
        try:
            embedding = await self._embeddings.embed_query(query)
        except Exception as e:
            get_metrics().record_error("similarity_search", type(e).__name__)
            raise EmbeddingError(
                f"Failed to embed query: {e}",
                operation="similarity_search",
                table=self._table,
            ) from e

        return await self.similarity_search_by_vector(embedding, k=k, filter=filter)

    async def similarity_search_by_vector(
        self,
        embedding: list[float],
        k: int | None = None,
        filter: str | None = None,
    ) -> list[Document]:
        """Return the documents nearest to ``embedding``; see similarity_search."""
        limit = self._config.k if k is None else k
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError(f"k must be a positive integer, got {limit!r}")

        try:
            query_vector = vector_literal(embedding)
        except (TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid query embedding: {e}",
                operation="similarity_search",
                table=self._table,
            ) from e

        sql = self._search_sql(filter)
        strategy = self._config.distance_strategy
        start = time.perf_counter()

        with traced(
            tracer,
            "vectorstore.similarity_search",
            {"db.table": self._table, "k": limit, "distance_strategy": strategy.value},
        ):
            try:
                rows = await self._db.fetch(sql, query_vector, limit)
            except Exception as e:
                get_metrics().record_error("similarity_search", type(e).__name__)
                raise QueryFailedError(
                    f"Similarity search on {self._table!r} failed: {e}",
                    operation="similarity_search",
                    table=self._table,
                ) from e

            documents = [self._row_to_document(row) for row in rows]

        latency = time.perf_counter() - start
        get_metrics().record_search(self._table, len(documents), latency, strategy.value)
        logger.debug(
            "Similarity search completed",
            table=self._table,
            k=limit,
            results=len(documents),
            latency_ms=round(latency * 1000, 1),
        )
        return documents

    def _search_sql(self, filter: str | None) -> str:
        cfg = self._config
        columns = [*cfg.metadata_columns, cfg.id_column, cfg.content_column, cfg.embedding_column]
        if cfg.metadata_json_column:
            columns.append(cfg.metadata_json_column)

        distance_expr = (
            f"{quote_identifier(cfg.embedding_column)} "
            f"{cfg.distance_strategy.operator} $1::vector"
        )
        where_clause = filter if filter else "TRUE"

        return (
            f"SELECT {column_list(columns)}, {distance_expr} AS {DISTANCE_ALIAS} "
            f"FROM {self.qualified_table} "
            f"WHERE {where_clause} "
            f"ORDER BY {distance_expr} "
            f"LIMIT $2"
        )

    def _row_to_document(self, row: Any) -> Document:
        """Convert a result row to a Document, failing on malformed values."""
        cfg = self._config

        metadata: dict[str, Any] = {}
        if cfg.metadata_json_column:
            raw = row[cfg.metadata_json_column]
            if isinstance(raw, str):
                try:
                    raw = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise MetadataDecodeError(
                        f"Column {cfg.metadata_json_column!r} holds invalid JSON: {e}",
                        operation="similarity_search",
                        table=self._table,
                        column=cfg.metadata_json_column,
                    ) from e
            if raw is None:
                raw = {}
            if not isinstance(raw, dict):
                raise MetadataDecodeError(
                    f"Column {cfg.metadata_json_column!r} must hold a JSON object, "
                    f"got {type(raw).__name__}",
                    operation="similarity_search",
                    table=self._table,
                    column=cfg.metadata_json_column,
                )
            metadata.update(raw)

        # Dedicated columns win over JSON keys of the same name
        for column in cfg.metadata_columns:
            value = row[column]
            if value is not None:
                metadata[column] = value

        distance = row[DISTANCE_ALIAS]
        if isinstance(distance, bool) or not isinstance(distance, (int, float, Decimal, np.floating)):
            raise ResultDecodeError(
                f"Unexpected distance value {distance!r} ({type(distance).__name__})",
                operation="similarity_search",
                table=self._table,
                column=DISTANCE_ALIAS,
            )

        row_id = row[cfg.id_column]
        return Document(
            page_content=row[cfg.content_column],
            metadata=metadata,
            id=str(row_id) if row_id is not None else None,
            score=float(np.float32(float(distance))),
        )

    # ── Deletion ─────────────────────────────────────────────────────

    async def delete(self, ids: list[str]) -> int:
        """
        Delete documents by ID.

        Returns:
            Number of documents deleted
        """
        if not ids:
            return 0

        id_column = quote_identifier(self._config.id_column)
        sql = (
            f"DELETE FROM {self.qualified_table} "
            f"WHERE {id_column}::text = ANY($1::text[]) "
            f"RETURNING {id_column}"
        )
        try:
            rows = await self._db.fetch(sql, [str(i) for i in ids])
        except Exception as e:
            get_metrics().record_error("delete", type(e).__name__)
            raise QueryFailedError(
                f"Failed to delete from {self._table!r}: {e}",
                operation="delete",
                table=self._table,
            ) from e

        deleted = len(rows)
        get_metrics().record_documents_deleted(self._table, deleted)
        logger.info(f"Deleted {deleted}/{len(ids)} documents", table=self._table)
        return deleted

    async def clear(self) -> None:
        """
        Remove every row from the table.

        Raises:
            OverwriteRequiredError: overwrite is not enabled; nothing is executed
        """
        if not self._config.overwrite:
            raise OverwriteRequiredError(
                f"Clearing table {self._table!r} requires overwrite to be enabled",
                operation="clear",
                table=self._table,
            )
        try:
            await self._db.execute(f"DELETE FROM {self.qualified_table}")
        except Exception as e:
            raise QueryFailedError(
                f"Failed to clear {self._table!r}: {e}",
                operation="clear",
                table=self._table,
            ) from e
        logger.info("Cleared vector store table", table=self._table)

    # ── Index lifecycle ──────────────────────────────────────────────

    async def apply_vector_index(
        self,
        index: IndexSpec,
        name: str | None = None,
        concurrently: bool = False,
        overwrite: bool | None = None,
    ) -> None:
        """Create (or, for exact nearest neighbor, drop) the vector index."""
        await self._indexes.apply_vector_index(
            index, name=name, concurrently=concurrently, overwrite=overwrite
        )

    async def drop_vector_index(
        self,
        name: str | None = None,
        overwrite: bool | None = None,
    ) -> None:
        """Drop the vector index; refused unless overwrite is enabled."""
        await self._indexes.drop_vector_index(name, overwrite=overwrite)

    async def reindex(self, name: str | None = None) -> None:
        """Rebuild the vector index."""
        await self._indexes.reindex(name)

    async def is_valid_index(self, name: str | None = None) -> bool:
        """Check whether the vector index exists."""
        return await self._indexes.is_valid_index(name)
