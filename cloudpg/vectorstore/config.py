"""
Configuration for PostgresVectorStore.

Uses Pydantic BaseSettings for environment variable support. The config
is frozen: a store's column mapping and defaults never change after
construction.
"""

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cloudpg.vectorstore.distance import DEFAULT_DISTANCE_STRATEGY, DistanceStrategy
from cloudpg.vectorstore.sql import validate_identifier

# Name of the computed distance column in search results
DISTANCE_ALIAS = "distance"


class VectorStoreConfig(BaseSettings):
    """
    Table layout and search defaults for a vector store.

    All settings can be overridden via environment variables with
    VECTORSTORE_ prefix (e.g., VECTORSTORE_K=10).
    """

    # Table layout
    schema_name: str = Field(default="public", description="Schema holding the table")
    id_column: str = Field(default="langchain_id", description="Primary key column")
    content_column: str = Field(default="content", description="Page content column")
    embedding_column: str = Field(default="embedding", description="vector(n) column")
    metadata_json_column: str | None = Field(
        default="langchain_metadata",
        description="JSONB column for metadata not mapped to a column; None disables it",
    )
    metadata_columns: list[str] = Field(
        default_factory=list,
        description="Metadata keys stored in their own columns, in column order",
    )

    # Search defaults
    k: int = Field(default=4, ge=1, le=10000, description="Default number of results")
    distance_strategy: DistanceStrategy = Field(
        default=DEFAULT_DISTANCE_STRATEGY,
        description="Distance metric for ordering and index builds",
    )

    # Destructive operations (index drop, table clear) are refused unless set
    overwrite: bool = False

    model_config = SettingsConfigDict(env_prefix="VECTORSTORE_", frozen=True)

    @field_validator("schema_name", "id_column", "content_column", "embedding_column")
    @classmethod
    def _check_identifier(cls, v: str) -> str:
        return validate_identifier(v, "column or schema name")

    @field_validator("metadata_json_column")
    @classmethod
    def _check_json_column(cls, v: str | None) -> str | None:
        if v is None or v == "":
            return None
        return validate_identifier(v, "metadata JSON column")

    @field_validator("metadata_columns")
    @classmethod
    def _check_metadata_columns(cls, v: list[str]) -> list[str]:
        for name in v:
            validate_identifier(name, "metadata column")
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate metadata columns: {v}")
        return v

    @model_validator(mode="after")
    def _check_collisions(self) -> "VectorStoreConfig":
        reserved = {self.id_column, self.content_column, self.embedding_column}
        if self.metadata_json_column:
            reserved.add(self.metadata_json_column)
        if len(reserved) != (4 if self.metadata_json_column else 3):
            raise ValueError("id, content, embedding and metadata JSON columns must differ")
        if DISTANCE_ALIAS in reserved:
            raise ValueError(f"{DISTANCE_ALIAS!r} is reserved for the search distance column")
        reserved.add(DISTANCE_ALIAS)
        clashes = reserved.intersection(self.metadata_columns)
        if clashes:
            raise ValueError(f"Metadata columns collide with reserved columns: {sorted(clashes)}")
        return self

    @property
    def insert_columns(self) -> list[str]:
        """Columns written by add_documents, in statement order."""
        columns = [self.id_column, self.content_column, self.embedding_column]
        columns.extend(self.metadata_columns)
        if self.metadata_json_column:
            columns.append(self.metadata_json_column)
        return columns
