"""
Prometheus metrics for monitoring vector store and chat history traffic.

Defines metrics for:
- Documents ingested per table
- Similarity search volume and latency
- Index DDL operations
- Error rates by operation and error type

Collectors register in a prometheus_client registry (the global REGISTRY by
default); the host application serves that registry alongside its own metrics.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
)

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the cloudpg adapters.

    Usage:
        metrics = get_metrics()
        metrics.record_documents_added("docs", 10, latency=0.2)
        metrics.record_search("docs", results=4, latency=0.03)
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Registry to register metrics in (defaults to the global one)
        """
        self._registry = registry or REGISTRY

        self.documents_added = Counter(
            "cloudpg_vectorstore_documents_added_total",
            "Total number of documents inserted into vector store tables",
            ["table"],
            registry=self._registry,
        )

        self.documents_deleted = Counter(
            "cloudpg_vectorstore_documents_deleted_total",
            "Total number of documents deleted from vector store tables",
            ["table"],
            registry=self._registry,
        )

        self.searches = Counter(
            "cloudpg_vectorstore_searches_total",
            "Total number of similarity searches",
            ["table", "distance_strategy"],
            registry=self._registry,
        )

        self.search_results = Histogram(
            "cloudpg_vectorstore_search_results",
            "Number of documents returned per similarity search",
            ["table"],
            buckets=(0, 1, 2, 4, 8, 16, 32, 64, 128),
            registry=self._registry,
        )

        self.operation_latency = Histogram(
            "cloudpg_operation_latency_seconds",
            "Latency of vector store and chat history operations",
            ["operation"],  # add_documents, similarity_search, apply_index, ...
            buckets=LATENCY_BUCKETS,
            registry=self._registry,
        )

        self.index_operations = Counter(
            "cloudpg_vectorstore_index_operations_total",
            "Total vector index DDL operations",
            ["operation", "index_type"],
            registry=self._registry,
        )

        self.chat_messages_added = Counter(
            "cloudpg_chat_messages_added_total",
            "Total chat messages persisted",
            ["table"],
            registry=self._registry,
        )

        self.errors = Counter(
            "cloudpg_errors_total",
            "Total failed operations",
            ["operation", "error_type"],
            registry=self._registry,
        )

        logger.info("Prometheus metrics initialized")

    # Convenience methods

    def record_documents_added(
        self,
        table: str,
        count: int,
        latency: float | None = None,
    ) -> None:
        """
        Record a successful ingestion batch.

        Args:
            table: Table name, without schema
            count: Number of rows inserted
            latency: Optional batch latency in seconds (embedding included)
        """
        self.documents_added.labels(table=table).inc(count)
        if latency is not None:
            self.operation_latency.labels(operation="add_documents").observe(latency)

    def record_documents_deleted(self, table: str, count: int) -> None:
        """Record rows removed by delete()."""
        self.documents_deleted.labels(table=table).inc(count)

    def record_search(
        self,
        table: str,
        results: int,
        latency: float | None = None,
        distance_strategy: str = "cosine_distance",
    ) -> None:
        """
        Record a completed similarity search.

        Args:
            table: Table name, without schema
            results: Number of documents returned
            latency: Optional query latency in seconds
            distance_strategy: Strategy label used for ordering
        """
        self.searches.labels(table=table, distance_strategy=distance_strategy).inc()
        self.search_results.labels(table=table).observe(results)
        if latency is not None:
            self.operation_latency.labels(operation="similarity_search").observe(latency)

    def record_index_operation(
        self,
        operation: str,
        index_type: str = "unknown",
        latency: float | None = None,
    ) -> None:
        """
        Record an index DDL statement.

        Args:
            operation: apply, drop or reindex
            index_type: Index family (hnsw, ivfflat, ...)
            latency: Optional DDL latency in seconds
        """
        self.index_operations.labels(operation=operation, index_type=index_type).inc()
        if latency is not None:
            self.operation_latency.labels(operation=f"{operation}_index").observe(latency)

    def record_chat_messages(self, table: str, count: int = 1) -> None:
        """Record chat messages written to a history table."""
        self.chat_messages_added.labels(table=table).inc(count)

    def record_error(self, operation: str, error_type: str) -> None:
        """
        Record a failed operation.

        Args:
            operation: Operation name (add_documents, similarity_search, ...)
            error_type: Error class name
        """
        self.errors.labels(operation=operation, error_type=error_type).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
