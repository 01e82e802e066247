"""Tests for the Prometheus metrics collector."""

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from cloudpg.observability.metrics import MetricsCollector, get_metrics


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry) -> MetricsCollector:
    return MetricsCollector(registry=registry)


class TestMetricsCollector:

    def test_documents_added(self, metrics, registry):
        metrics.record_documents_added("docs", 3, latency=0.2)
        metrics.record_documents_added("docs", 2)

        assert registry.get_sample_value(
            "cloudpg_vectorstore_documents_added_total", {"table": "docs"}
        ) == 5
        assert registry.get_sample_value(
            "cloudpg_operation_latency_seconds_count", {"operation": "add_documents"}
        ) == 1

    def test_search(self, metrics, registry):
        metrics.record_search("docs", results=4, latency=0.01, distance_strategy="euclidean")

        assert registry.get_sample_value(
            "cloudpg_vectorstore_searches_total",
            {"table": "docs", "distance_strategy": "euclidean"},
        ) == 1
        assert registry.get_sample_value(
            "cloudpg_vectorstore_search_results_sum", {"table": "docs"}
        ) == 4

    def test_index_operation(self, metrics, registry):
        metrics.record_index_operation("apply", "hnsw", latency=1.5)
        metrics.record_index_operation("drop")

        assert registry.get_sample_value(
            "cloudpg_vectorstore_index_operations_total",
            {"operation": "apply", "index_type": "hnsw"},
        ) == 1
        assert registry.get_sample_value(
            "cloudpg_vectorstore_index_operations_total",
            {"operation": "drop", "index_type": "unknown"},
        ) == 1
        assert registry.get_sample_value(
            "cloudpg_operation_latency_seconds_count", {"operation": "apply_index"}
        ) == 1

    def test_errors_and_chat(self, metrics, registry):
        metrics.record_error("similarity_search", "QueryFailedError")
        metrics.record_chat_messages("chat_history", 2)
        metrics.record_documents_deleted("docs", 1)

        assert registry.get_sample_value(
            "cloudpg_errors_total",
            {"operation": "similarity_search", "error_type": "QueryFailedError"},
        ) == 1
        assert registry.get_sample_value(
            "cloudpg_chat_messages_added_total", {"table": "chat_history"}
        ) == 2
        assert registry.get_sample_value(
            "cloudpg_vectorstore_documents_deleted_total", {"table": "docs"}
        ) == 1

    def test_exposed_through_host_registry(self, metrics, registry):
        metrics.record_documents_added("docs", 1)

        exposition = generate_latest(registry).decode()
        assert 'cloudpg_vectorstore_documents_added_total{table="docs"} 1.0' in exposition
        assert not hasattr(metrics, "start_server")

    def test_global_instance_is_shared(self):
        assert get_metrics() is get_metrics()
