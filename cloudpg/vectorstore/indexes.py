"""
Approximate-nearest-neighbor index descriptions and DDL option rendering.

An ``IndexSpec`` pairs an index family with the tuning options for that
family. The pairing is checked when the IndexSpec is built, so an HNSW index
can never carry IVFFlat options by accident:

    spec = IndexSpec.hnsw(m=32, ef_construction=128)
    build_index_options_clause(spec)  # "(m = 32, ef_construction = 128)"

``IndexType.EXACT_NEAREST_NEIGHBOR`` means "no index": applying it drops
whatever vector index exists instead of creating one.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

from cloudpg.vectorstore.distance import DistanceStrategy
from cloudpg.vectorstore.errors import InvalidIndexOptionsError
from cloudpg.vectorstore.sql import is_valid_identifier

DEFAULT_INDEX_NAME_SUFFIX = "langchainvectorindex"

# Extension providing the ScaNN access method on AlloyDB
SCANN_EXTENSION = "alloydb_scann"

_QUANTIZER_RE = re.compile(r"^[A-Za-z0-9_]+$")


class IndexType(str, Enum):
    """Vector index families."""

    HNSW = "hnsw"
    IVFFLAT = "ivfflat"
    IVF = "ivf"
    SCANN = "ScaNN"
    EXACT_NEAREST_NEIGHBOR = "exactnearestneighbor"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class HNSWOptions:
    """Build parameters for an HNSW graph index."""

    m: int = 16
    ef_construction: int = 64


@dataclass(frozen=True)
class IVFFlatOptions:
    """Build parameters for a pgvector IVFFlat index."""

    lists: int = 100


@dataclass(frozen=True)
class IVFOptions:
    """Build parameters for an AlloyDB IVF index."""

    lists: int = 100
    quantizer: str = "sq8"


@dataclass(frozen=True)
class ScaNNOptions:
    """Build parameters for an AlloyDB ScaNN index."""

    num_leaves: int = 5
    quantizer: str = "sq8"


IndexOptions = Union[HNSWOptions, IVFFlatOptions, IVFOptions, ScaNNOptions]

_OPTIONS_BY_TYPE: dict[IndexType, type] = {
    IndexType.HNSW: HNSWOptions,
    IndexType.IVFFLAT: IVFFlatOptions,
    IndexType.IVF: IVFOptions,
    IndexType.SCANN: ScaNNOptions,
}


def default_index_name(table_name: str) -> str:
    """Name used when the caller does not supply one."""
    return f"{table_name}{DEFAULT_INDEX_NAME_SUFFIX}"


@dataclass(frozen=True)
class IndexSpec:
    """
    A named vector index on the embedding column.

    Attributes:
        index_type: Index family
        options: Tuning options matching ``index_type``; family defaults when None.
            Must be None for exact nearest neighbor.
        distance_strategy: Strategy whose operator class the index is built with.
            None means the store's configured strategy; a different value
            is rejected when the index is applied.
        name: Index name; empty means ``<table>langchainvectorindex``
        partial_index_predicate: Raw SQL predicate for a partial index. It is
            trusted caller input and is interpolated as-is.
    """

    index_type: IndexType
    options: IndexOptions | None = None
    distance_strategy: DistanceStrategy | None = None
    name: str = ""
    partial_index_predicate: str | None = None

    def __post_init__(self) -> None:
        try:
            index_type = IndexType(self.index_type)
        except ValueError as e:
            raise InvalidIndexOptionsError(
                f"Unknown index type: {self.index_type!r}",
                operation="build_index_spec",
            ) from e
        object.__setattr__(self, "index_type", index_type)
        if self.distance_strategy is not None:
            object.__setattr__(
                self, "distance_strategy", DistanceStrategy(self.distance_strategy)
            )

        if self.name and not is_valid_identifier(self.name):
            raise InvalidIndexOptionsError(
                f"Invalid index name: {self.name!r}",
                operation="build_index_spec",
                index=self.name,
            )

        if index_type is IndexType.EXACT_NEAREST_NEIGHBOR:
            if self.options is not None:
                raise InvalidIndexOptionsError(
                    "Exact nearest neighbor takes no tuning options, "
                    f"got {type(self.options).__name__}",
                    operation="build_index_spec",
                    index=self.name or None,
                )
            return

        expected = _OPTIONS_BY_TYPE[index_type]
        if self.options is None:
            object.__setattr__(self, "options", expected())
        elif not isinstance(self.options, expected):
            raise InvalidIndexOptionsError(
                f"Index type {index_type.value!r} requires {expected.__name__}, "
                f"got {type(self.options).__name__}",
                operation="build_index_spec",
                index=self.name or None,
            )
        _validate_options(self.options)

    @property
    def required_extension(self) -> str | None:
        """Extension that must be enabled before the index can be built."""
        if self.index_type is IndexType.SCANN:
            return SCANN_EXTENSION
        return None

    @classmethod
    def hnsw(cls, m: int = 16, ef_construction: int = 64, **kwargs) -> "IndexSpec":
        return cls(IndexType.HNSW, HNSWOptions(m=m, ef_construction=ef_construction), **kwargs)

    @classmethod
    def ivfflat(cls, lists: int = 100, **kwargs) -> "IndexSpec":
        return cls(IndexType.IVFFLAT, IVFFlatOptions(lists=lists), **kwargs)

    @classmethod
    def ivf(cls, lists: int = 100, quantizer: str = "sq8", **kwargs) -> "IndexSpec":
        return cls(IndexType.IVF, IVFOptions(lists=lists, quantizer=quantizer), **kwargs)

    @classmethod
    def scann(cls, num_leaves: int = 5, quantizer: str = "sq8", **kwargs) -> "IndexSpec":
        return cls(
            IndexType.SCANN,
            ScaNNOptions(num_leaves=num_leaves, quantizer=quantizer),
            **kwargs,
        )

    @classmethod
    def exact_nearest_neighbor(cls, **kwargs) -> "IndexSpec":
        return cls(IndexType.EXACT_NEAREST_NEIGHBOR, **kwargs)


def _validate_options(options: IndexOptions) -> None:
    """Reject non-positive sizes and quantizer names that are not bare tokens."""
    for field_name in ("m", "ef_construction", "lists", "num_leaves"):
        value = getattr(options, field_name, None)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidIndexOptionsError(
                f"{field_name} must be a positive integer, got {value!r}",
                operation="build_index_spec",
            )

    quantizer = getattr(options, "quantizer", None)
    if quantizer is not None and not _QUANTIZER_RE.match(str(quantizer)):
        raise InvalidIndexOptionsError(
            f"Invalid quantizer: {quantizer!r}",
            operation="build_index_spec",
        )


def build_index_options_clause(spec: IndexSpec) -> str:
    """
    Render the ``WITH (...)`` parameter list for an index build.

    Returns:
        e.g. ``(m = 16, ef_construction = 64)`` for HNSW

    Raises:
        InvalidIndexOptionsError: if the options do not belong to the index
            type, or the index type has no build options (exact nearest neighbor)
    """
    options = spec.options
    index_type = spec.index_type

    if index_type is IndexType.HNSW and isinstance(options, HNSWOptions):
        return f"(m = {options.m}, ef_construction = {options.ef_construction})"
    if index_type is IndexType.IVFFLAT and isinstance(options, IVFFlatOptions):
        return f"(lists = {options.lists})"
    if index_type is IndexType.IVF and isinstance(options, IVFOptions):
        return f"(lists = {options.lists}, quantizer = {options.quantizer})"
    if index_type is IndexType.SCANN and isinstance(options, ScaNNOptions):
        return f"(num_leaves = {options.num_leaves}, quantizer = {options.quantizer})"

    raise InvalidIndexOptionsError(
        f"Invalid index options for type {index_type.value!r}: {options!r}",
        operation="build_index_options_clause",
        index=spec.name or None,
    )
