"""Tests for DistanceStrategy SQL tokens."""

import pytest

from cloudpg.vectorstore.distance import DEFAULT_DISTANCE_STRATEGY, DistanceStrategy


class TestDistanceStrategy:
    """Operator, operator class and function per strategy."""

    @pytest.mark.parametrize(
        "strategy,operator,index_function,search_function",
        [
            (DistanceStrategy.EUCLIDEAN, "<->", "vector_l2_ops", "l2_distance"),
            (DistanceStrategy.COSINE_DISTANCE, "<=>", "vector_cosine_ops", "cosine_distance"),
            (DistanceStrategy.INNER_PRODUCT, "<#>", "vector_ip_ops", "inner_product"),
        ],
    )
    def test_tokens(self, strategy, operator, index_function, search_function):
        assert strategy.operator == operator
        assert strategy.index_function == index_function
        assert strategy.search_function == search_function

    def test_tokens_pairwise_distinct(self):
        strategies = list(DistanceStrategy)
        for attr in ("operator", "index_function", "search_function"):
            values = {getattr(s, attr) for s in strategies}
            assert len(values) == len(strategies)

    def test_default_is_cosine(self):
        assert DEFAULT_DISTANCE_STRATEGY is DistanceStrategy.COSINE_DISTANCE

    def test_every_member_has_a_label(self):
        for strategy in DistanceStrategy:
            assert strategy.label

    def test_lookup_by_value(self):
        assert DistanceStrategy("inner_product") is DistanceStrategy.INNER_PRODUCT
        assert str(DistanceStrategy.EUCLIDEAN) == "euclidean"

    def test_unknown_value_rejected(self):
        with pytest.raises(ValueError):
            DistanceStrategy("manhattan")
