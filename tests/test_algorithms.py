"""Tests for the recommendation algorithms.

This module checks the ranking contract shared by every algorithm and the
characteristic behaviour of each one on small hand-built matrices.
"""

import numpy as np
import pytest

from basketrec.config import PipelineConfig
from basketrec.data.loader import TransactionSet
from basketrec.data.matrix import InteractionMatrix
from basketrec.exceptions import AlgorithmTrainingError, ConfigurationError
from basketrec.pipeline import build_pipeline
from basketrec.recommender.algorithms import (
    AssociationRuleRecommender,
    ItemBasedCF,
    PopularityRecommender,
    RandomRecommender,
    UserBasedCF,
)
from basketrec.recommender.base import RankedRecommendation
from basketrec.recommender.catalog import default_catalog
from basketrec.recommender.similarity import jaccard_similarity, pairwise_similarity


@pytest.fixture
def scenario_matrix() -> InteractionMatrix:
    """Fixture providing the matrix built from the three-order A/B/C/D log."""
    transactions = TransactionSet.from_pairs([
        (1, "A"), (1, "B"), (1, "C"),
        (2, "A"), (2, "B"),
        (3, "A"), (3, "C"), (3, "D"),
    ])
    config = PipelineConfig(popularity_cutoff=1.0, min_basket_items=2, sample_size=3)
    return build_pipeline(transactions, config).matrix


@pytest.fixture
def neighbourhood_matrix() -> InteractionMatrix:
    """Fixture providing two loose clusters, {A, B} and {C, D}."""
    return InteractionMatrix.from_baskets({
        1: ["A", "B"],
        2: ["A", "B"],
        3: ["A", "B", "C"],
        4: ["C", "D"],
        5: ["C", "D"],
        6: ["B", "D"],
    })


@pytest.fixture
def random_matrix() -> InteractionMatrix:
    """Fixture providing 60 random baskets over 15 items."""
    rng = np.random.default_rng(11)
    items = [f"item_{i:02d}" for i in range(15)]
    baskets = {
        order_id: rng.choice(items, size=rng.integers(2, 6), replace=False).tolist()
        for order_id in range(60)
    }
    return InteractionMatrix.from_baskets(baskets)


def test_scenario_matrix_shape(scenario_matrix) -> None:
    """Test the matrix of the end-to-end scenario."""
    assert scenario_matrix.shape == (3, 4)
    assert scenario_matrix.columns == ("A", "B", "C", "D")
    assert sorted(scenario_matrix.row_sums().tolist()) == [2, 3, 3]


def test_popularity_scenario(scenario_matrix) -> None:
    """Test that popularity recommends the most frequent item not in the cart."""
    model = PopularityRecommender().train(scenario_matrix)

    recommendation = model.recommend_items(["A"], n=1)

    # B and C are tied at two purchases, column order breaks the tie
    assert recommendation.items == ("B",)
    assert recommendation.scores == (2.0,)


def test_popularity_full_ranking(scenario_matrix) -> None:
    """Test the full popularity ranking for an empty cart."""
    model = PopularityRecommender().train(scenario_matrix)

    recommendation = model.recommend(np.zeros(4), n=10)

    assert recommendation.items == ("A", "B", "C", "D")


def test_item_based_neighbourhood(neighbourhood_matrix) -> None:
    """Test that item-based CF follows item co-occurrence."""
    model = ItemBasedCF(method="cosine", k=5).train(neighbourhood_matrix)

    recommendation = model.recommend_items(["A"], n=3)

    # D never co-occurs with A, so it is not eligible
    assert recommendation.items == ("B", "C")
    assert recommendation.scores[0] == pytest.approx(3 / (2 * np.sqrt(3)))


def test_item_based_k_limits_neighbours(neighbourhood_matrix) -> None:
    """Test that only the k nearest neighbours of a candidate contribute."""
    model = ItemBasedCF(method="cosine", k=1).train(neighbourhood_matrix)

    assert model.recommend_items(["A"], n=3).items == ("B",)


def test_item_based_jaccard(neighbourhood_matrix) -> None:
    """Test item-based CF with Jaccard similarity."""
    model = ItemBasedCF(method="jaccard", k=5).train(neighbourhood_matrix)

    recommendation = model.recommend_items(["A"], n=3)

    assert recommendation.items == ("B", "C")
    assert recommendation.scores[0] == pytest.approx(3 / 4)


def test_user_based_neighbourhood(neighbourhood_matrix) -> None:
    """Test that user-based CF counts items of similar baskets."""
    model = UserBasedCF(method="cosine", nn=500).train(neighbourhood_matrix)

    recommendation = model.recommend_items(["A"], n=3)

    assert recommendation.items == ("B", "C")
    assert recommendation.scores == (3.0, 1.0)


def test_user_based_nearest_neighbour_only(neighbourhood_matrix) -> None:
    """Test that nn limits the voting baskets."""
    model = UserBasedCF(method="cosine", nn=1).train(neighbourhood_matrix)

    assert model.recommend_items(["A"], n=3).items == ("B",)


def test_user_based_weighted_votes(neighbourhood_matrix) -> None:
    """Test similarity-weighted voting."""
    model = UserBasedCF(method="jaccard", nn=500, weighted=True).train(neighbourhood_matrix)

    recommendation = model.recommend_items(["A"], n=3)

    assert recommendation.items == ("B", "C")
    assert recommendation.scores[0] == pytest.approx(0.5 + 0.5 + 1 / 3)
    assert recommendation.scores[1] == pytest.approx(1 / 3)


def test_user_based_empty_cart(neighbourhood_matrix) -> None:
    """Test that an empty cart has no neighbours and no recommendations."""
    model = UserBasedCF().train(neighbourhood_matrix)

    assert len(model.recommend(np.zeros(4), n=3)) == 0


def test_random_is_deterministic_and_excludes_cart(random_matrix) -> None:
    """Test that random recommendations are reproducible for a fixed seed."""
    model = RandomRecommender(seed=3).train(random_matrix)
    cart = ["item_00", "item_05"]

    first = model.recommend_items(cart, n=6)
    second = model.recommend_items(cart, n=6)

    assert first == second
    assert len(first) == 6
    assert not set(first.items) & set(cart)


def test_association_rules_scenario(scenario_matrix) -> None:
    """Test rule-based recommendations with permissive thresholds."""
    model = AssociationRuleRecommender(support=0.0, confidence=0.0).train(scenario_matrix)

    recommendation = model.recommend_items(["A"], n=10)

    assert recommendation.items == ("B", "C", "D")
    assert recommendation.scores[0] == pytest.approx(2 / 3)
    assert recommendation.scores[2] == pytest.approx(1 / 3)


def test_association_rules_confidence_threshold(scenario_matrix) -> None:
    """Test that the confidence threshold removes weak rules."""
    model = AssociationRuleRecommender(support=0.0, confidence=0.5).train(scenario_matrix)

    assert model.recommend_items(["A"], n=10).items == ("B", "C")


def test_association_rules_without_rules(scenario_matrix) -> None:
    """Test that a support only single items reach yields no rules."""
    model = AssociationRuleRecommender(support=1.0, confidence=0.0).train(scenario_matrix)

    assert model.n_rules == 0
    assert len(model.recommend_items(["A"], n=3)) == 0


@pytest.mark.parametrize("name", ["random", "popular", "ibcf", "ubcf", "ar"])
def test_ranking_contract(random_matrix, name) -> None:
    """Test the shared ranking contract for every algorithm."""
    algorithm = default_catalog().build(name)
    if name == "ar":
        algorithm = AssociationRuleRecommender(support=0.0, confidence=0.0)
    model = algorithm.train(random_matrix)

    for row in range(0, random_matrix.n_rows, 7):
        cart = random_matrix.row_items(row)
        vector = np.zeros(random_matrix.n_columns)
        vector[cart] = 1.0

        for n in (0, 1, 5, 20):
            recommendation = model.recommend(vector, n)
            assert len(recommendation) <= n
            assert len(recommendation) <= random_matrix.n_columns - len(cart)
            assert not set(recommendation.items) & set(random_matrix.decode(vector))
            assert len(set(recommendation.items)) == len(recommendation)
            assert all(a >= b for a, b in zip(recommendation.scores, recommendation.scores[1:]))


def test_recommend_rejects_wrong_length(scenario_matrix) -> None:
    """Test that a vector over a different vocabulary is rejected."""
    model = PopularityRecommender().train(scenario_matrix)

    with pytest.raises(ValueError, match="expects 4"):
        model.recommend(np.zeros(5), n=3)


def test_recommend_rejects_negative_n(scenario_matrix) -> None:
    """Test that a negative list length is rejected."""
    model = PopularityRecommender().train(scenario_matrix)

    with pytest.raises(ValueError):
        model.recommend(np.zeros(4), n=-1)


def test_recommend_items_ignores_unknown(scenario_matrix) -> None:
    """Test that unknown cart items are dropped rather than failing."""
    model = PopularityRecommender().train(scenario_matrix)

    assert model.recommend_items(["A", "unknown"], n=1).items == ("B",)


def test_train_wraps_failures(scenario_matrix) -> None:
    """Test that fitting errors surface as AlgorithmTrainingError."""

    class BrokenRecommender(PopularityRecommender):
        name = "broken"

        def _fit(self, matrix):
            raise RuntimeError("boom")

    with pytest.raises(AlgorithmTrainingError) as excinfo:
        BrokenRecommender().train(scenario_matrix)

    assert excinfo.value.algorithm == "broken"
    assert excinfo.value.details["error_type"] == "RuntimeError"


def test_train_rejects_empty_matrix(scenario_matrix) -> None:
    """Test that a matrix without rows cannot be trained on."""
    empty = scenario_matrix.take_rows([])

    with pytest.raises(AlgorithmTrainingError):
        ItemBasedCF().train(empty)


@pytest.mark.parametrize(
    "factory",
    [
        lambda: ItemBasedCF(k=0),
        lambda: ItemBasedCF(method="pearson"),
        lambda: UserBasedCF(nn=0),
        lambda: AssociationRuleRecommender(support=1.5),
        lambda: AssociationRuleRecommender(max_len=1),
        lambda: AssociationRuleRecommender(rank_by="leverage"),
        lambda: RandomRecommender(seed=-1),
    ],
)
def test_invalid_parameters(factory) -> None:
    """Test that out-of-range parameters fail at construction."""
    with pytest.raises(ConfigurationError):
        factory()


def test_ranked_recommendation_top() -> None:
    """Test truncating a ranked list."""
    ranked = RankedRecommendation(items=("A", "B", "C"), scores=(3.0, 2.0, 1.0))

    assert ranked.top(2).to_list() == [("A", 3.0), ("B", 2.0)]
    assert list(ranked) == ranked.to_list()


def test_jaccard_similarity_values() -> None:
    """Test Jaccard similarity on presence vectors."""
    matrix = InteractionMatrix.from_baskets({1: ["A", "B"], 2: ["B", "C"], 3: ["D"]}).matrix

    similarity = jaccard_similarity(matrix, matrix)

    assert similarity[0, 1] == pytest.approx(1 / 3)
    assert similarity[0, 2] == 0.0
    assert np.allclose(np.diag(similarity), 1.0)


def test_pairwise_similarity_unknown_method() -> None:
    """Test that an unknown similarity method is rejected."""
    matrix = InteractionMatrix.from_baskets({1: ["A"]}).matrix

    with pytest.raises(ValueError):
        pairwise_similarity(matrix, matrix, "euclidean")
