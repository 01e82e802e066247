"""
Abstract base classes and data models for vector store implementations.

Defines the document model exchanged with callers, the embedder contract
the store depends on, and the interface every vector store backend
implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Document:
    """
    A piece of text with metadata, as stored in or returned from a vector store.

    Attributes:
        page_content: The document text
        metadata: Arbitrary metadata. Keys naming a configured metadata column
            are stored in that column; the rest go to the JSON metadata column.
        id: Row identifier (set on results; on input ``metadata["id"]`` wins)
        score: Distance to the query for search results (smaller is closer)
    """

    page_content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    score: float | None = None


class Embeddings(ABC):
    """
    Embedder contract.

    ``embed_documents`` must return exactly one vector per input text, in
    input order. Any embedding provider (Vertex AI, OpenAI, a local model)
    can be adapted by implementing these two coroutines.
    """

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts."""
        ...

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""
        ...


class VectorStore(ABC):
    """
    Abstract base class for vector store implementations.

    All methods are async; each call runs to completion on the caller's
    task and never schedules background work.
    """

    @abstractmethod
    async def add_documents(self, documents: list[Document]) -> list[str]:
        """
        Embed and insert documents.

        Args:
            documents: Documents to store

        Returns:
            Ids of the inserted rows, in input order
        """
        ...

    @abstractmethod
    async def similarity_search(
        self,
        query: str,
        k: int | None = None,
        filter: str | None = None,
    ) -> list[Document]:
        """
        Find the documents nearest to a text query.

        Args:
            query: Query text, embedded with the store's embedder
            k: Maximum number of results (store default when None)
            filter: Optional SQL boolean predicate

        Returns:
            Documents ordered nearest first, ``score`` set to the distance
        """
        ...

    @abstractmethod
    async def similarity_search_by_vector(
        self,
        embedding: list[float],
        k: int | None = None,
        filter: str | None = None,
    ) -> list[Document]:
        """Find the documents nearest to an already computed embedding."""
        ...

    @abstractmethod
    async def delete(self, ids: list[str]) -> int:
        """
        Delete documents by ID.

        Args:
            ids: Document IDs to delete

        Returns:
            Number of documents deleted
        """
        ...
