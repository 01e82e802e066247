"""Tests for VectorStoreConfig validation."""

import pytest
from pydantic import ValidationError

from cloudpg.vectorstore.config import DISTANCE_ALIAS, VectorStoreConfig
from cloudpg.vectorstore.distance import DistanceStrategy


class TestVectorStoreConfig:

    def test_defaults(self):
        config = VectorStoreConfig()
        assert config.schema_name == "public"
        assert config.id_column == "langchain_id"
        assert config.content_column == "content"
        assert config.embedding_column == "embedding"
        assert config.metadata_json_column == "langchain_metadata"
        assert config.metadata_columns == []
        assert config.k == 4
        assert config.distance_strategy is DistanceStrategy.COSINE_DISTANCE
        assert config.overwrite is False

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("VECTORSTORE_K", "10")
        monkeypatch.setenv("VECTORSTORE_DISTANCE_STRATEGY", "euclidean")
        config = VectorStoreConfig()
        assert config.k == 10
        assert config.distance_strategy is DistanceStrategy.EUCLIDEAN

    def test_frozen(self):
        config = VectorStoreConfig()
        with pytest.raises(ValidationError):
            config.k = 8

    def test_invalid_identifier(self):
        with pytest.raises(ValidationError):
            VectorStoreConfig(content_column="page content")

    def test_empty_json_column_disables_it(self):
        config = VectorStoreConfig(metadata_json_column="")
        assert config.metadata_json_column is None
        assert config.insert_columns == ["langchain_id", "content", "embedding"]

    def test_duplicate_metadata_columns(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            VectorStoreConfig(metadata_columns=["region", "region"])

    def test_metadata_column_collides_with_reserved(self):
        with pytest.raises(ValidationError, match="collide"):
            VectorStoreConfig(metadata_columns=["content"])

    def test_metadata_column_named_distance_rejected(self):
        with pytest.raises(ValidationError, match="collide"):
            VectorStoreConfig(metadata_columns=["region", DISTANCE_ALIAS])

    @pytest.mark.parametrize(
        "field", ["id_column", "content_column", "embedding_column", "metadata_json_column"]
    )
    def test_table_column_named_distance_rejected(self, field):
        with pytest.raises(ValidationError, match="reserved"):
            VectorStoreConfig(**{field: DISTANCE_ALIAS})

    def test_reserved_columns_must_differ(self):
        with pytest.raises(ValidationError):
            VectorStoreConfig(id_column="content")

    @pytest.mark.parametrize("k", [0, -1, 10001])
    def test_k_bounds(self, k):
        with pytest.raises(ValidationError):
            VectorStoreConfig(k=k)

    def test_insert_columns_order(self):
        config = VectorStoreConfig(metadata_columns=["region", "lang"])
        assert config.insert_columns == [
            "langchain_id", "content", "embedding", "region", "lang", "langchain_metadata",
        ]
