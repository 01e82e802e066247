"""
pgvector-backed vector store for AlloyDB and Cloud SQL for PostgreSQL.

Main components:
- PostgresVectorStore: document ingestion and similarity search over one table
- VectorIndexManager: ANN index lifecycle (create, drop, reindex, inspect)
- IndexSpec: index family plus matching tuning options
- DistanceStrategy: distance metric and its SQL operator/opclass
- VectorStoreConfig: immutable column mapping and search defaults
"""

from cloudpg.vectorstore.base import Document, Embeddings, VectorStore
from cloudpg.vectorstore.config import VectorStoreConfig
from cloudpg.vectorstore.distance import DistanceStrategy
from cloudpg.vectorstore.errors import (
    ConfigurationError,
    EmbeddingCountMismatchError,
    EmbeddingError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    InsertBatchFailedError,
    InvalidIndexOptionsError,
    MetadataDecodeError,
    OverwriteRequiredError,
    QueryFailedError,
    ResultDecodeError,
    VectorStoreError,
)
from cloudpg.vectorstore.index_manager import VectorIndexManager
from cloudpg.vectorstore.indexes import (
    HNSWOptions,
    IndexSpec,
    IndexType,
    IVFFlatOptions,
    IVFOptions,
    ScaNNOptions,
    build_index_options_clause,
)
from cloudpg.vectorstore.pgvector_store import PostgresVectorStore, init_vectorstore_table

__all__ = [
    "Document",
    "Embeddings",
    "VectorStore",
    "VectorStoreConfig",
    "DistanceStrategy",
    "IndexType",
    "IndexSpec",
    "HNSWOptions",
    "IVFFlatOptions",
    "IVFOptions",
    "ScaNNOptions",
    "build_index_options_clause",
    "VectorIndexManager",
    "PostgresVectorStore",
    "init_vectorstore_table",
    "VectorStoreError",
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingCountMismatchError",
    "InsertBatchFailedError",
    "MetadataDecodeError",
    "ResultDecodeError",
    "InvalidIndexOptionsError",
    "IndexAlreadyExistsError",
    "IndexNotFoundError",
    "OverwriteRequiredError",
    "QueryFailedError",
]
