"""
Vector index lifecycle for a single embedding table.

Index state is tracked by PostgreSQL itself (``pg_indexes``); the manager
only issues DDL and reads the catalog:

    Absent --apply_vector_index--> Present
    Present --drop_vector_index(overwrite)--> Absent
    Present --reindex--> Present

Every operation addresses the same default index name
(``<table>langchainvectorindex``) when none is given.
"""

import time

import asyncpg
import structlog

from cloudpg.observability.metrics import get_metrics
from cloudpg.observability.tracing import get_tracer, traced
from cloudpg.storage.database import Database
from cloudpg.vectorstore.config import VectorStoreConfig
from cloudpg.vectorstore.distance import DistanceStrategy
from cloudpg.vectorstore.errors import (
    ConfigurationError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    InvalidIndexOptionsError,
    OverwriteRequiredError,
    QueryFailedError,
)
from cloudpg.vectorstore.indexes import (
    IndexSpec,
    IndexType,
    build_index_options_clause,
    default_index_name,
)
from cloudpg.vectorstore.sql import (
    is_valid_identifier,
    qualified_name,
    quote_identifier,
    validate_identifier,
)

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

_INDEX_EXISTS_SQL = """
    SELECT EXISTS (
        SELECT 1 FROM pg_indexes
        WHERE schemaname = $1 AND tablename = $2 AND indexname = $3
    )
"""


class VectorIndexManager:
    """
    Creates, drops, rebuilds and inspects the ANN index on a table's
    embedding column.

    Usage:
        manager = VectorIndexManager(db, "documents")
        await manager.apply_vector_index(IndexSpec.hnsw(m=32))
        assert await manager.is_valid_index()
    """

    def __init__(
        self,
        database: Database,
        table_name: str,
        config: VectorStoreConfig | None = None,
    ):
        """
        Initialize the manager.

        Args:
            database: Connected Database instance
            table_name: Table holding the embedding column
            config: Column mapping, distance strategy and overwrite opt-in
        """
        if database is None:
            raise ConfigurationError("A database handle is required", operation="init")
        if not table_name:
            raise ConfigurationError("A table name is required", operation="init")
        if not is_valid_identifier(table_name):
            raise ConfigurationError(
                f"Invalid table name: {table_name!r}", operation="init", table=table_name
            )

        self._db = database
        self._table = table_name
        self._config = config or VectorStoreConfig()

    @property
    def table_name(self) -> str:
        return self._table

    @property
    def qualified_table(self) -> str:
        return qualified_name(self._config.schema_name, self._table)

    def resolve_index_name(self, name: str | None = None, spec: IndexSpec | None = None) -> str:
        """
        Pick the index name: explicit argument, then the IndexSpec name, then the default.

        Raises:
            ConfigurationError: if the resulting name is not a valid identifier
        """
        resolved = name or (spec.name if spec is not None else "") or default_index_name(self._table)
        try:
            return validate_identifier(resolved, "index name")
        except ValueError as e:
            raise ConfigurationError(
                str(e), operation="resolve_index_name", table=self._table, index=resolved
            ) from e

    def resolve_distance_strategy(self, index: IndexSpec) -> DistanceStrategy:
        """
        Strategy whose operator class the index is built with: the store's
        configured one, which an explicit IndexSpec strategy must match.

        Raises:
            InvalidIndexOptionsError: the IndexSpec names a strategy other than the store's
        """
        configured = self._config.distance_strategy
        if index.distance_strategy is None or index.distance_strategy is configured:
            return configured
        raise InvalidIndexOptionsError(
            f"Index built for {index.distance_strategy.value!r} cannot serve a store "
            f"searching with {configured.value!r}",
            operation="apply_vector_index",
            table=self._table,
            index=index.name or None,
        )

    async def apply_vector_index(
        self,
        index: IndexSpec,
        name: str | None = None,
        concurrently: bool = False,
        overwrite: bool | None = None,
    ) -> None:
        """
        Build the vector index described by ``index``.

        An exact-nearest-neighbor spec drops the index instead (and so needs
        ``overwrite``). ScaNN first enables its extension.

        Args:
            index: Index family, options, distance strategy and predicate. The
                strategy defaults to the store's own.
            name: Index name override
            concurrently: Use CREATE INDEX CONCURRENTLY (does not block writes)
            overwrite: Overwrite opt-in for the drop path (store default when None)

        Raises:
            InvalidIndexOptionsError: options do not fit the index type, or the
                distance strategy differs from the store's
            IndexAlreadyExistsError: an index with this name already exists
            QueryFailedError: any other database failure
        """
        if index.index_type is IndexType.EXACT_NEAREST_NEIGHBOR:
            await self.drop_vector_index(self.resolve_index_name(name, index), overwrite=overwrite)
            return

        index_name = self.resolve_index_name(name, index)
        strategy = self.resolve_distance_strategy(index)
        options_clause = build_index_options_clause(index)

        stmt = (
            f"CREATE INDEX {'CONCURRENTLY ' if concurrently else ''}"
            f"{quote_identifier(index_name)} ON {self.qualified_table} "
            f"USING {index.index_type.value} "
            f"({quote_identifier(self._config.embedding_column)} "
            f"{strategy.index_function}) "
            f"WITH {options_clause}"
        )
        if index.partial_index_predicate:
            stmt += f" WHERE {index.partial_index_predicate}"

        start = time.perf_counter()
        with traced(
            tracer,
            "vectorstore.apply_vector_index",
            {"db.table": self._table, "index.name": index_name, "index.type": index.index_type.value},
        ):
            try:
                if index.required_extension:
                    await self._db.execute(
                        f"CREATE EXTENSION IF NOT EXISTS {index.required_extension}"
                    )
                await self._db.execute(stmt)
            except (asyncpg.exceptions.DuplicateTableError, asyncpg.exceptions.DuplicateObjectError) as e:
                get_metrics().record_error("apply_index", type(e).__name__)
                raise IndexAlreadyExistsError(
                    f"Index {index_name!r} already exists on {self._table!r}",
                    operation="apply_vector_index",
                    table=self._table,
                    index=index_name,
                ) from e
            except Exception as e:
                get_metrics().record_error("apply_index", type(e).__name__)
                raise QueryFailedError(
                    f"Failed to create index {index_name!r}: {e}",
                    operation="apply_vector_index",
                    table=self._table,
                    index=index_name,
                ) from e

        latency = time.perf_counter() - start
        get_metrics().record_index_operation("apply", index.index_type.value, latency)
        logger.info(
            "Created vector index",
            table=self._table,
            index_name=index_name,
            index_type=index.index_type.value,
            distance_strategy=strategy.value,
            concurrently=concurrently,
            latency_ms=round(latency * 1000, 1),
        )

    async def drop_vector_index(
        self,
        name: str | None = None,
        overwrite: bool | None = None,
    ) -> None:
        """
        Drop the vector index if it exists.

        Args:
            name: Index name (default name when None)
            overwrite: Overwrite opt-in (store default when None)

        Raises:
            OverwriteRequiredError: overwrite is not enabled; nothing is executed
            QueryFailedError: the DROP statement failed
        """
        index_name = self.resolve_index_name(name)
        allowed = self._config.overwrite if overwrite is None else overwrite
        if not allowed:
            raise OverwriteRequiredError(
                f"Dropping index {index_name!r} requires overwrite to be enabled",
                operation="drop_vector_index",
                table=self._table,
                index=index_name,
            )

        stmt = (
            f"DROP INDEX IF EXISTS "
            f"{qualified_name(self._config.schema_name, index_name)}"
        )
        with traced(
            tracer, "vectorstore.drop_vector_index", {"db.table": self._table, "index.name": index_name}
        ):
            try:
                await self._db.execute(stmt)
            except Exception as e:
                get_metrics().record_error("drop_index", type(e).__name__)
                raise QueryFailedError(
                    f"Failed to drop index {index_name!r}: {e}",
                    operation="drop_vector_index",
                    table=self._table,
                    index=index_name,
                ) from e

        get_metrics().record_index_operation("drop")
        logger.info("Dropped vector index", table=self._table, index_name=index_name)

    async def reindex(self, name: str | None = None) -> None:
        """
        Rebuild an existing index.

        Raises:
            IndexNotFoundError: the index does not exist
            QueryFailedError: the REINDEX statement failed
        """
        index_name = self.resolve_index_name(name)
        if not await self.is_valid_index(index_name):
            raise IndexNotFoundError(
                f"Index {index_name!r} does not exist on {self._table!r}",
                operation="reindex",
                table=self._table,
                index=index_name,
            )

        stmt = f"REINDEX INDEX {qualified_name(self._config.schema_name, index_name)}"
        start = time.perf_counter()
        with traced(tracer, "vectorstore.reindex", {"db.table": self._table, "index.name": index_name}):
            try:
                await self._db.execute(stmt)
            except (asyncpg.exceptions.UndefinedTableError, asyncpg.exceptions.UndefinedObjectError) as e:
                # Dropped between the catalog check and the REINDEX
                raise IndexNotFoundError(
                    f"Index {index_name!r} does not exist on {self._table!r}",
                    operation="reindex",
                    table=self._table,
                    index=index_name,
                ) from e
            except Exception as e:
                get_metrics().record_error("reindex", type(e).__name__)
                raise QueryFailedError(
                    f"Failed to reindex {index_name!r}: {e}",
                    operation="reindex",
                    table=self._table,
                    index=index_name,
                ) from e

        get_metrics().record_index_operation("reindex", latency=time.perf_counter() - start)
        logger.info("Rebuilt vector index", table=self._table, index_name=index_name)

    async def is_valid_index(self, name: str | None = None) -> bool:
        """
        Check whether the index exists on this table in the configured schema.

        Raises:
            QueryFailedError: the catalog query failed
        """
        index_name = self.resolve_index_name(name)
        try:
            exists = await self._db.fetchval(
                _INDEX_EXISTS_SQL, self._config.schema_name, self._table, index_name
            )
        except Exception as e:
            raise QueryFailedError(
                f"Failed to check index {index_name!r}: {e}",
                operation="is_valid_index",
                table=self._table,
                index=index_name,
            ) from e
        return bool(exists)
