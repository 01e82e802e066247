"""Tests for the cloudpg CLI commands."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from cloudpg.cli import main


@pytest.fixture
def runner():
    return CliRunner()


def _mock_db(index_exists: bool = False):
    """Create a mock Database with the methods the commands touch."""
    db = AsyncMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    db.execute = AsyncMock(return_value="OK")
    db.fetchval = AsyncMock(return_value=index_exists)
    db.health_check = AsyncMock(return_value=True)
    return db


def _statements(db) -> list[str]:
    return [c[0][0] for c in db.execute.call_args_list]


class TestInitTable:

    def test_creates_table(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(
                main, ["init-table", "docs", "--vector-size", "768", "--metadata-column", "region"]
            )

        assert result.exit_code == 0, result.output
        assert "Table public.docs created" in result.output
        create = _statements(db)[-1]
        assert '"embedding" vector(768) NOT NULL' in create
        assert '"region" TEXT' in create
        db.close.assert_awaited_once()

    def test_vector_size_required(self, runner):
        result = runner.invoke(main, ["init-table", "docs"])
        assert result.exit_code != 0
        assert "--vector-size" in result.output


class TestApplyIndex:

    def test_hnsw_with_tuning(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(
                main, ["apply-index", "docs", "--type", "hnsw", "--m", "32", "--distance", "euclidean"]
            )

        assert result.exit_code == 0, result.output
        assert "Created hnsw index docslangchainvectorindex" in result.output
        stmt = _statements(db)[-1]
        assert '("embedding" vector_l2_ops)' in stmt
        assert stmt.endswith("WITH (m = 32, ef_construction = 64)")

    def test_scann(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(
                main, ["apply-index", "docs", "--type", "ScaNN", "--num-leaves", "10", "--name", "idx"]
            )

        assert result.exit_code == 0, result.output
        statements = _statements(db)
        assert statements[0] == "CREATE EXTENSION IF NOT EXISTS alloydb_scann"
        assert statements[1].startswith('CREATE INDEX "idx"')
        assert statements[1].endswith("WITH (num_leaves = 10, quantizer = sq8)")

    def test_invalid_tuning_value(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["apply-index", "docs", "--type", "ivfflat", "--lists", "0"])

        assert result.exit_code == 1
        assert "InvalidIndexOptionsError" in result.output
        db.execute.assert_not_called()

    def test_exact_requires_overwrite(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["apply-index", "docs", "--type", "exactnearestneighbor"])

        assert result.exit_code == 1
        assert "OverwriteRequiredError" in result.output
        db.execute.assert_not_called()

    def test_exact_with_overwrite_drops(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(
                main, ["apply-index", "docs", "--type", "exactnearestneighbor", "--overwrite"]
            )

        assert result.exit_code == 0, result.output
        assert _statements(db) == ['DROP INDEX IF EXISTS "public"."docslangchainvectorindex"']

    def test_unknown_type_rejected(self, runner):
        result = runner.invoke(main, ["apply-index", "docs", "--type", "diskann"])
        assert result.exit_code != 0


class TestDropIndex:

    def test_refused_without_overwrite(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["drop-index", "docs"])

        assert result.exit_code == 1
        assert "requires overwrite" in result.output
        db.execute.assert_not_called()
        db.close.assert_awaited_once()

    def test_drop(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["drop-index", "docs", "--name", "idx", "--overwrite"])

        assert result.exit_code == 0, result.output
        assert _statements(db) == ['DROP INDEX IF EXISTS "public"."idx"']


class TestReindexAndStatus:

    def test_reindex_missing(self, runner):
        db = _mock_db(index_exists=False)
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["reindex", "docs"])

        assert result.exit_code == 1
        assert "IndexNotFoundError" in result.output

    def test_reindex(self, runner):
        db = _mock_db(index_exists=True)
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["reindex", "docs"])

        assert result.exit_code == 0, result.output
        assert _statements(db) == ['REINDEX INDEX "public"."docslangchainvectorindex"']

    @pytest.mark.parametrize("exists,label", [(True, "present"), (False, "missing")])
    def test_index_status(self, runner, exists, label):
        db = _mock_db(index_exists=exists)
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["index-status", "docs", "--schema", "vectors"])

        assert result.exit_code == 0, result.output
        assert f"docslangchainvectorindex: {label}" in result.output
        assert db.fetchval.call_args[0][1:] == ("vectors", "docs", "docslangchainvectorindex")


class TestInitChatTable:

    def test_creates_table(self, runner):
        db = _mock_db()
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["init-chat-table", "chat_history"])

        assert result.exit_code == 0, result.output
        assert 'CREATE TABLE IF NOT EXISTS "public"."chat_history"' in _statements(db)[0]


class TestHealth:

    def test_healthy(self, runner):
        db = _mock_db(index_exists=True)
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "postgres: True" in result.output
        assert "pgvector: True" in result.output

    def test_connection_failure(self, runner):
        db = _mock_db()
        db.connect = AsyncMock(side_effect=OSError("connection refused"))
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "postgres: False" in result.output

    def test_missing_extension(self, runner):
        db = _mock_db(index_exists=False)
        with patch("cloudpg.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "pgvector: False" in result.output
