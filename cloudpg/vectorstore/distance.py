"""
Distance strategies supported by pgvector.

Each strategy fixes three SQL tokens: the ordering operator used in
``ORDER BY``, the operator class an index build uses, and the scalar
distance function. Smaller values always mean "more similar" for all
three operators, so search ordering is always ascending.
"""

from dataclasses import dataclass
from enum import Enum


class DistanceStrategy(str, Enum):
    """Vector distance metric used for search ordering and index builds."""

    EUCLIDEAN = "euclidean"
    COSINE_DISTANCE = "cosine_distance"
    INNER_PRODUCT = "inner_product"

    @property
    def operator(self) -> str:
        """Ordering operator, e.g. ``<=>`` for cosine distance."""
        return _tokens(self).operator

    @property
    def index_function(self) -> str:
        """Operator class used in ``CREATE INDEX ... (col <opclass>)``."""
        return _tokens(self).index_function

    @property
    def search_function(self) -> str:
        """Scalar distance function, e.g. ``cosine_distance(a, b)``."""
        return _tokens(self).search_function

    @property
    def label(self) -> str:
        """Human-readable name."""
        return _tokens(self).label

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class _StrategyTokens:
    operator: str
    index_function: str
    search_function: str
    label: str


_TOKENS: dict[DistanceStrategy, _StrategyTokens] = {
    DistanceStrategy.EUCLIDEAN: _StrategyTokens(
        operator="<->",
        index_function="vector_l2_ops",
        search_function="l2_distance",
        label="Euclidean",
    ),
    DistanceStrategy.COSINE_DISTANCE: _StrategyTokens(
        operator="<=>",
        index_function="vector_cosine_ops",
        search_function="cosine_distance",
        label="Cosine distance",
    ),
    DistanceStrategy.INNER_PRODUCT: _StrategyTokens(
        operator="<#>",
        index_function="vector_ip_ops",
        search_function="inner_product",
        label="Inner product",
    ),
}

# Every member must have tokens; a new member without an entry fails at import.
_missing = set(DistanceStrategy) - set(_TOKENS)
if _missing:
    raise RuntimeError(f"No SQL tokens defined for distance strategies: {_missing}")


def _tokens(strategy: DistanceStrategy) -> _StrategyTokens:
    return _TOKENS[strategy]


DEFAULT_DISTANCE_STRATEGY = DistanceStrategy.COSINE_DISTANCE
