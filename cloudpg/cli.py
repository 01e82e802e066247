"""
Command-line interface for cloudpg.

Provides commands to create vector store and chat history tables, manage
the vector index on a table, and run health checks.

Usage:
    cloudpg init-table documents --vector-size 768
    cloudpg apply-index documents --type hnsw --m 32
    cloudpg index-status documents
    cloudpg reindex documents
    cloudpg drop-index documents --overwrite
    cloudpg init-chat-table chat_history
    cloudpg health
"""

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click

from cloudpg.config.settings import get_settings
from cloudpg.observability.logging import setup_logging
from cloudpg.vectorstore.distance import DistanceStrategy
from cloudpg.vectorstore.indexes import IndexType

_INDEX_TYPES = [t.value for t in IndexType]
_DISTANCES = [d.value for d in DistanceStrategy]


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, debug: bool) -> None:
    """cloudpg - pgvector tooling for AlloyDB and Cloud SQL for PostgreSQL."""
    setup_logging(level="DEBUG" if debug else None)

    settings = get_settings()
    if settings.tracing_enabled:
        from cloudpg.observability.tracing import setup_tracing, shutdown_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )
        ctx.call_on_close(shutdown_tracing)


def _run_with_database(action: Callable[[Any], Awaitable[None]]) -> None:
    """Connect, run ``action(db)``, close; adapter errors become CLI errors."""
    from pydantic import ValidationError

    from cloudpg.storage.database import Database
    from cloudpg.vectorstore.errors import VectorStoreError

    async def run():
        db = Database()
        await db.connect()
        try:
            await action(db)
        except (VectorStoreError, ValidationError) as e:
            raise click.ClickException(f"{type(e).__name__}: {e}") from e
        finally:
            await db.close()

    asyncio.run(run())


def _store_config(schema: str, overwrite: bool = False, **fields: Any):
    from cloudpg.vectorstore.config import VectorStoreConfig

    return VectorStoreConfig(schema_name=schema, overwrite=overwrite, **fields)


@main.command("init-table")
@click.argument("table")
@click.option("--vector-size", required=True, type=int, help="Embedding dimension")
@click.option("--schema", default="public", help="Schema holding the table")
@click.option("--metadata-column", "metadata_columns", multiple=True,
              help="Metadata key stored in its own TEXT column (can repeat)")
@click.option("--id-type", default="UUID", help="SQL type of the id column")
@click.option("--overwrite", is_flag=True, help="Drop the table first if it exists")
def init_table(
    table: str,
    vector_size: int,
    schema: str,
    metadata_columns: tuple[str, ...],
    id_type: str,
    overwrite: bool,
) -> None:
    """Create a vector store table."""
    from cloudpg.vectorstore.pgvector_store import init_vectorstore_table

    async def action(db):
        config = _store_config(schema, overwrite, metadata_columns=list(metadata_columns))
        await init_vectorstore_table(
            db,
            table,
            vector_size,
            config=config,
            id_column_type=id_type,
            overwrite_existing=overwrite,
        )
        click.echo(f"Table {schema}.{table} created (vector size {vector_size})")

    _run_with_database(action)


def _build_index_spec(
    index_type: str,
    name: str | None,
    where: str | None,
    m: int | None,
    ef_construction: int | None,
    lists: int | None,
    num_leaves: int | None,
    quantizer: str | None,
):
    """Turn CLI flags into an IndexSpec; unset tuning flags keep family defaults."""
    from cloudpg.vectorstore.indexes import (
        HNSWOptions,
        IndexSpec,
        IVFFlatOptions,
        IVFOptions,
        ScaNNOptions,
    )

    kind = IndexType(index_type)
    options: Any = None
    if kind is IndexType.HNSW:
        options = HNSWOptions(
            m=m if m is not None else HNSWOptions.m,
            ef_construction=ef_construction if ef_construction is not None else HNSWOptions.ef_construction,
        )
    elif kind is IndexType.IVFFLAT:
        options = IVFFlatOptions(lists=lists if lists is not None else IVFFlatOptions.lists)
    elif kind is IndexType.IVF:
        options = IVFOptions(
            lists=lists if lists is not None else IVFOptions.lists,
            quantizer=quantizer or IVFOptions.quantizer,
        )
    elif kind is IndexType.SCANN:
        options = ScaNNOptions(
            num_leaves=num_leaves if num_leaves is not None else ScaNNOptions.num_leaves,
            quantizer=quantizer or ScaNNOptions.quantizer,
        )

    return IndexSpec(
        kind,
        options,
        name=name or "",
        partial_index_predicate=where,
    )


@main.command("apply-index")
@click.argument("table")
@click.option("--type", "index_type", type=click.Choice(_INDEX_TYPES), default="hnsw",
              help="Index family")
@click.option("--name", default=None, help="Index name (default: <table>langchainvectorindex)")
@click.option("--distance", type=click.Choice(_DISTANCES), default=None,
              help="Distance strategy the table is searched with")
@click.option("--schema", default="public", help="Schema holding the table")
@click.option("--embedding-column", default="embedding", help="Embedding column")
@click.option("--where", default=None, help="Predicate for a partial index")
@click.option("--concurrently", is_flag=True, help="Build without blocking writes")
@click.option("--overwrite", is_flag=True, help="Allow dropping (exactnearestneighbor)")
@click.option("--m", type=int, default=None, help="HNSW: max connections per node")
@click.option("--ef-construction", type=int, default=None, help="HNSW: build candidate list size")
@click.option("--lists", type=int, default=None, help="IVF/IVFFlat: number of lists")
@click.option("--num-leaves", type=int, default=None, help="ScaNN: number of leaves")
@click.option("--quantizer", default=None, help="IVF/ScaNN: quantizer (e.g. sq8)")
def apply_index(
    table: str,
    index_type: str,
    name: str | None,
    distance: str | None,
    schema: str,
    embedding_column: str,
    where: str | None,
    concurrently: bool,
    overwrite: bool,
    m: int | None,
    ef_construction: int | None,
    lists: int | None,
    num_leaves: int | None,
    quantizer: str | None,
) -> None:
    """Create the vector index on TABLE."""
    from cloudpg.vectorstore.errors import VectorStoreError
    from cloudpg.vectorstore.index_manager import VectorIndexManager

    try:
        spec = _build_index_spec(
            index_type, name, where, m, ef_construction, lists, num_leaves, quantizer
        )
    except VectorStoreError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e

    async def action(db):
        fields: dict[str, Any] = {"embedding_column": embedding_column}
        if distance:
            fields["distance_strategy"] = DistanceStrategy(distance)
        config = _store_config(schema, overwrite, **fields)
        manager = VectorIndexManager(db, table, config)
        await manager.apply_vector_index(spec, concurrently=concurrently)
        index_name = manager.resolve_index_name(spec=spec)
        if spec.index_type is IndexType.EXACT_NEAREST_NEIGHBOR:
            click.echo(f"Dropped index {index_name} (exact nearest neighbor search)")
        else:
            click.echo(f"Created {spec.index_type.value} index {index_name} on {schema}.{table}")

    _run_with_database(action)


@main.command("drop-index")
@click.argument("table")
@click.option("--name", default=None, help="Index name (default: <table>langchainvectorindex)")
@click.option("--schema", default="public", help="Schema holding the table")
@click.option("--overwrite", is_flag=True, help="Confirm the drop")
def drop_index(table: str, name: str | None, schema: str, overwrite: bool) -> None:
    """Drop the vector index on TABLE."""
    from cloudpg.vectorstore.index_manager import VectorIndexManager

    async def action(db):
        manager = VectorIndexManager(db, table, _store_config(schema, overwrite))
        await manager.drop_vector_index(name)
        click.echo(f"Dropped index {manager.resolve_index_name(name)}")

    _run_with_database(action)


@main.command()
@click.argument("table")
@click.option("--name", default=None, help="Index name (default: <table>langchainvectorindex)")
@click.option("--schema", default="public", help="Schema holding the table")
def reindex(table: str, name: str | None, schema: str) -> None:
    """Rebuild the vector index on TABLE."""
    from cloudpg.vectorstore.index_manager import VectorIndexManager

    async def action(db):
        manager = VectorIndexManager(db, table, _store_config(schema))
        await manager.reindex(name)
        click.echo(f"Rebuilt index {manager.resolve_index_name(name)}")

    _run_with_database(action)


@main.command("index-status")
@click.argument("table")
@click.option("--name", default=None, help="Index name (default: <table>langchainvectorindex)")
@click.option("--schema", default="public", help="Schema holding the table")
def index_status(table: str, name: str | None, schema: str) -> None:
    """Report whether the vector index on TABLE exists."""
    from cloudpg.vectorstore.index_manager import VectorIndexManager

    async def action(db):
        manager = VectorIndexManager(db, table, _store_config(schema))
        index_name = manager.resolve_index_name(name)
        if await manager.is_valid_index(index_name):
            click.echo(click.style(f"  ✓ {index_name}: present", fg="green"))
        else:
            click.echo(click.style(f"  ✗ {index_name}: missing", fg="red"))

    _run_with_database(action)


@main.command("init-chat-table")
@click.argument("table")
@click.option("--schema", default="public", help="Schema holding the table")
def init_chat_table(table: str, schema: str) -> None:
    """Create a chat message history table."""
    from cloudpg.memory.chat_message_history import init_chat_history_table

    async def action(db):
        await init_chat_history_table(db, table, schema_name=schema)
        click.echo(f"Chat history table {schema}.{table} ready")

    _run_with_database(action)


@main.command()
def health() -> None:
    """Check database connectivity and the pgvector extension."""
    from cloudpg.observability.logging import get_logger
    logger = get_logger(__name__)

    async def check() -> dict[str, bool]:
        results: dict[str, bool] = {}

        try:
            from cloudpg.storage.database import Database
            db = Database()
            await db.connect()
            try:
                results["postgres"] = await db.health_check()
                results["pgvector"] = bool(
                    await db.fetchval(
                        "SELECT EXISTS (SELECT 1 FROM pg_extension WHERE extname = 'vector')"
                    )
                )
            finally:
                await db.close()
        except Exception as e:
            results.setdefault("postgres", False)
            results.setdefault("pgvector", False)
            logger.error("Postgres health check failed", error=str(e))

        return results

    results = asyncio.run(check())

    click.echo("\nHealth Check Results:")
    click.echo("-" * 40)
    for name, status in results.items():
        icon = "✓" if status else "✗"
        color = "green" if status else "red"
        click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
    click.echo("-" * 40)

    if all(results.values()):
        click.echo(click.style("All core services healthy!", fg="green"))
        sys.exit(0)
    else:
        click.echo(click.style("Some services unhealthy!", fg="red"))
        sys.exit(1)


if __name__ == "__main__":
    main()
