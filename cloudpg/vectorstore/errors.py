"""
Typed errors raised by the vector store and chat history adapters.

Every error carries the operation it came from plus whatever naming
context applies (table, column, index). Driver errors are chained as
``__cause__`` so the original asyncpg exception is never lost.

Callers branch on the class:

    try:
        await store.drop_vector_index()
    except OverwriteRequiredError:
        ...
"""


class VectorStoreError(Exception):
    """Base exception for vector store operations."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        table: str | None = None,
        column: str | None = None,
        index: str | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.table = table
        self.column = column
        self.index = index


class ConfigurationError(VectorStoreError):
    """A required construction input is missing or invalid."""


class EmbeddingError(VectorStoreError):
    """The embedder failed or returned an unusable result."""


class EmbeddingCountMismatchError(EmbeddingError):
    """The embedder returned a different number of vectors than texts."""

    def __init__(self, expected: int, actual: int, **context):
        super().__init__(
            f"Embedder returned {actual} vectors for {expected} texts",
            **context,
        )
        self.expected = expected
        self.actual = actual


class InsertBatchFailedError(VectorStoreError):
    """The batched insert was rejected by the database."""


class MetadataDecodeError(VectorStoreError):
    """A stored metadata JSON value could not be decoded."""


class ResultDecodeError(VectorStoreError):
    """A result row had an unexpected shape or type."""


class InvalidIndexOptionsError(VectorStoreError, ValueError):
    """Index tuning options do not match the index type."""


class IndexAlreadyExistsError(VectorStoreError):
    """CREATE INDEX hit an existing relation with the same name."""


class IndexNotFoundError(VectorStoreError):
    """The named index does not exist."""


class OverwriteRequiredError(VectorStoreError):
    """A destructive operation was requested without the overwrite opt-in."""


class QueryFailedError(VectorStoreError):
    """A statement failed for a reason without a more specific mapping."""
