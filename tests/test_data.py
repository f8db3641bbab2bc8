"""Tests for the data preparation stages.

This module contains unit tests for transaction loading, frequency
profiling, basket sampling and interaction matrix construction.
"""

import numpy as np
import pandas as pd
import pytest

from basketrec.data.loader import TransactionSet, load_transactions, read_transaction_csvs
from basketrec.data.matrix import InteractionMatrix, build_interaction_matrix, normalize
from basketrec.data.profiler import profile_frequencies
from basketrec.data.sampler import sample_baskets
from basketrec.exceptions import ConfigurationError, DataIntegrityError, InsufficientDataError

SCENARIO_PAIRS = [
    (1, "A"), (1, "B"), (1, "C"),
    (2, "A"), (2, "B"),
    (3, "A"), (3, "C"), (3, "D"),
]


@pytest.fixture
def scenario_transactions() -> TransactionSet:
    """Fixture providing the small A/B/C/D order log."""
    return TransactionSet.from_pairs(SCENARIO_PAIRS)


@pytest.fixture
def catalog() -> pd.DataFrame:
    """Fixture providing a three product catalog."""
    return pd.DataFrame({
        "product_id": [10, 20, 30],
        "product_name": ["milk", "bread", "eggs"],
    })


@pytest.fixture
def skewed_transactions() -> TransactionSet:
    """Fixture providing 200 orders over 30 items with skewed popularity."""
    rng = np.random.default_rng(7)
    items = [f"item_{i:02d}" for i in range(30)]
    weights = 1.0 / np.arange(1, 31)
    weights = weights / weights.sum()

    pairs = []
    for order_id in range(200):
        size = rng.integers(1, 8)
        for item in rng.choice(items, size=size, replace=False, p=weights):
            pairs.append((order_id, str(item)))
    return TransactionSet.from_pairs(pairs)


# Loader


def test_load_transactions_joins_product_names(catalog) -> None:
    """Test that order lines are resolved to product names."""
    order_lines = pd.DataFrame({"order_id": [1, 1, 2], "product_id": [10, 20, 30]})

    transactions = load_transactions(catalog, order_lines)

    assert len(transactions) == 3
    assert transactions.dropped_lines == 0
    pairs = set(map(tuple, transactions.records[["order_id", "product_name"]].values.tolist()))
    assert pairs == {(1, "milk"), (1, "bread"), (2, "eggs")}


def test_load_transactions_unknown_product_raises(catalog) -> None:
    """Test that an unresolved product id fails the load by default."""
    order_lines = pd.DataFrame({"order_id": [1, 2, 2], "product_id": [10, 99, 98]})

    with pytest.raises(DataIntegrityError) as excinfo:
        load_transactions(catalog, order_lines)

    assert excinfo.value.missing_product_ids == [98, 99]


def test_load_transactions_drop_policy_reports_drops(catalog) -> None:
    """Test that the drop policy removes and records unresolved lines."""
    order_lines = pd.DataFrame({"order_id": [1, 2, 2], "product_id": [10, 99, 30]})

    transactions = load_transactions(catalog, order_lines, on_missing="drop")

    assert len(transactions) == 2
    assert transactions.dropped_lines == 1
    assert transactions.missing_product_ids == (99,)
    assert transactions.n_order_lines == 3


def test_load_transactions_duplicate_catalog_ids(catalog) -> None:
    """Test that a catalog with duplicate ids is rejected."""
    duplicated = pd.concat([catalog, catalog.iloc[[0]]], ignore_index=True)
    order_lines = pd.DataFrame({"order_id": [1], "product_id": [10]})

    with pytest.raises(DataIntegrityError, match="duplicated"):
        load_transactions(duplicated, order_lines)


def test_load_transactions_missing_columns(catalog) -> None:
    """Test that missing columns are reported."""
    order_lines = pd.DataFrame({"order": [1], "product_id": [10]})

    with pytest.raises(DataIntegrityError, match="missing required columns"):
        load_transactions(catalog, order_lines)


def test_read_transaction_csvs_missing_file(tmp_path) -> None:
    """Test that a missing CSV raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        read_transaction_csvs(str(tmp_path / "products.csv"), str(tmp_path / "orders.csv"))


def test_read_transaction_csvs_renames_columns(tmp_path) -> None:
    """Test reading CSVs with custom column names."""
    products_csv = tmp_path / "products.csv"
    orders_csv = tmp_path / "orders.csv"
    products_csv.write_text("pid,title\n1,apple\n2,pear\n")
    orders_csv.write_text("basket,pid\n7,1\n7,2\n8,2\n")

    transactions = read_transaction_csvs(
        str(products_csv),
        str(orders_csv),
        product_id_col="pid",
        product_name_col="title",
        order_col="basket",
    )

    assert transactions.n_orders == 2
    assert transactions.n_products == 2


# Profiler


def test_profile_frequencies_counts_and_order(scenario_transactions) -> None:
    """Test counts, tie-breaking and shares of the frequency table."""
    profile = profile_frequencies(scenario_transactions, popularity_cutoff=1.0)
    table = profile.table

    assert table["product_name"].tolist() == ["A", "B", "C", "D"]
    assert table["count"].tolist() == [3, 2, 2, 1]
    assert table["share"].sum() == pytest.approx(1.0)
    assert np.all(np.diff(table["cumulative_share"]) >= 0)
    assert profile.vocabulary == ("A", "B", "C", "D")


def test_profile_frequencies_half_cutoff(scenario_transactions) -> None:
    """Test that the cutoff keeps the shortest prefix reaching it."""
    profile = profile_frequencies(scenario_transactions, popularity_cutoff=0.5)

    # A covers 3/8, A+B covers 5/8
    assert profile.vocabulary == ("A", "B")


def test_profile_frequencies_tiny_cutoff_keeps_top_item(scenario_transactions) -> None:
    """Test that a cutoff far below one purchase still keeps the top item."""
    profile = profile_frequencies(scenario_transactions, popularity_cutoff=1e-10)

    assert profile.vocabulary == ("A",)
    assert profile.n_popular == 1


@pytest.mark.parametrize("cutoff", [1e-12, 1e-6, 0.05, 0.2, 0.35, 0.5, 0.65, 0.8, 0.95, 1.0])
def test_popular_set_is_minimal_prefix(skewed_transactions, cutoff) -> None:
    """Test that the popular set reaches the cutoff and nothing can be removed."""
    profile = profile_frequencies(skewed_transactions, popularity_cutoff=cutoff)
    table = profile.table
    n_popular = profile.n_popular

    assert table["is_popular"].tolist() == [True] * n_popular + [False] * (len(table) - n_popular)
    covered = table["share"].iloc[:n_popular].sum()
    without_last = table["share"].iloc[: n_popular - 1].sum()
    assert covered >= cutoff - 1e-9
    assert without_last < cutoff


@pytest.mark.parametrize("cutoff", [0.0, -0.1, 1.5])
def test_profile_frequencies_invalid_cutoff(scenario_transactions, cutoff) -> None:
    """Test that cutoffs outside (0, 1] are rejected."""
    with pytest.raises(ConfigurationError):
        profile_frequencies(scenario_transactions, popularity_cutoff=cutoff)


def test_profile_restrict_counts_dropped(scenario_transactions) -> None:
    """Test that restricting to popular items reports the dropped records."""
    profile = profile_frequencies(scenario_transactions, popularity_cutoff=0.5)

    restricted = profile.restrict(scenario_transactions)

    assert set(restricted.records["product_name"]) == {"A", "B"}
    assert restricted.dropped_lines == 3


# Sampler


def test_sample_baskets_scenario(scenario_transactions) -> None:
    """Test sampling every order of the small scenario."""
    sample = sample_baskets(
        scenario_transactions, ["A", "B", "C", "D"], sample_size=10, min_basket_items=2, seed=1
    )

    assert sample.order_ids == (1, 2, 3)
    assert sample.baskets[2] == frozenset({"A", "B"})
    assert sample.drawn == 3
    assert sample.shortfall == 7


def test_sample_baskets_same_seed_same_sample(skewed_transactions) -> None:
    """Test that a fixed seed reproduces the sampled order ids."""
    vocabulary = profile_frequencies(skewed_transactions, 0.8).vocabulary

    first = sample_baskets(skewed_transactions, vocabulary, sample_size=50, min_basket_items=1, seed=3)
    second = sample_baskets(skewed_transactions, vocabulary, sample_size=50, min_basket_items=1, seed=3)
    other = sample_baskets(skewed_transactions, vocabulary, sample_size=50, min_basket_items=1, seed=4)

    assert first.order_ids == second.order_ids
    assert first.baskets == second.baskets
    assert first.order_ids != other.order_ids


def test_sample_baskets_respects_min_items(skewed_transactions) -> None:
    """Test that every retained basket has at least min_basket_items items."""
    vocabulary = profile_frequencies(skewed_transactions, 0.8).vocabulary

    sample = sample_baskets(skewed_transactions, vocabulary, sample_size=150, min_basket_items=3, seed=0)

    assert len(sample) <= 150
    assert all(len(items) >= 3 for items in sample.baskets.values())
    assert all(items <= set(vocabulary) for items in sample.baskets.values())
    assert sample.drawn == len(sample) + sample.dropped_small_baskets


def test_sample_baskets_nothing_left(scenario_transactions) -> None:
    """Test that an empty sample is an error rather than an empty result."""
    with pytest.raises(InsufficientDataError):
        sample_baskets(scenario_transactions, ["A", "B"], min_basket_items=3)


def test_sample_baskets_invalid_parameters(scenario_transactions) -> None:
    """Test parameter validation of the sampler."""
    with pytest.raises(ConfigurationError):
        sample_baskets(scenario_transactions, ["A"], sample_size=0)
    with pytest.raises(ConfigurationError):
        sample_baskets(scenario_transactions, ["A"], min_basket_items=0)


# Matrix


def test_build_interaction_matrix_scenario(scenario_transactions) -> None:
    """Test the matrix built from the small scenario."""
    sample = sample_baskets(scenario_transactions, ["A", "B", "C", "D"], sample_size=3, min_basket_items=2)

    matrix = build_interaction_matrix(sample)

    assert matrix.shape == (3, 4)
    assert matrix.columns == ("A", "B", "C", "D")
    # Order 3 holds A, C and D
    assert matrix.row_sums().tolist() == [3, 2, 3]
    assert matrix.item_counts().tolist() == [3, 2, 2, 1]
    assert set(np.unique(matrix.matrix.toarray())) <= {0.0, 1.0}


def test_columns_are_union_of_basket_items(skewed_transactions) -> None:
    """Test that the column vocabulary is exactly the union of basket items."""
    vocabulary = profile_frequencies(skewed_transactions, 0.6).vocabulary
    sample = sample_baskets(skewed_transactions, vocabulary, sample_size=80, min_basket_items=2, seed=5)

    matrix = build_interaction_matrix(sample)

    union = set().union(*sample.baskets.values())
    assert set(matrix.columns) == union
    assert len(matrix.columns) == len(union)
    assert list(matrix.columns) == sorted(matrix.columns)
    assert np.all(matrix.row_sums() >= 2)


def test_encode_ignores_unknown_items() -> None:
    """Test encoding a cart against the frozen columns."""
    matrix = InteractionMatrix.from_baskets({1: ["A", "B"], 2: ["B", "C"]})

    vector = matrix.encode(["C", "A", "Z"])

    assert vector.tolist() == [1.0, 0.0, 1.0]
    assert matrix.decode(vector) == ("A", "C")


def test_take_rows_keeps_columns() -> None:
    """Test that row subsets keep the column vocabulary."""
    matrix = InteractionMatrix.from_baskets({1: ["A", "B"], 2: ["C"], 3: ["A"]})

    subset = matrix.take_rows([2, 0])

    assert subset.columns == matrix.columns
    assert subset.order_ids == (3, 1)
    assert subset.row_sums().tolist() == [1, 2]


def test_weighted_matrix_counts_repeat_lines() -> None:
    """Test that the weighted path counts repeated order lines."""
    transactions = TransactionSet.from_pairs([(1, "A"), (1, "A"), (1, "B"), (2, "B"), (2, "C")])
    sample = sample_baskets(transactions, ["A", "B", "C"], min_basket_items=2)

    matrix = build_interaction_matrix(sample, weighted=True)

    assert not matrix.binary
    assert matrix.to_frame().loc[1, "A"] == 2.0
    assert matrix.to_frame().loc[2, "C"] == 1.0


def test_normalize_centers_rows_and_keeps_structure() -> None:
    """Test row centering of a weighted matrix."""
    transactions = TransactionSet.from_pairs([(1, "A"), (1, "A"), (1, "A"), (1, "B"), (2, "B"), (2, "C")])
    sample = sample_baskets(transactions, ["A", "B", "C"], min_basket_items=2)
    weighted = build_interaction_matrix(sample, weighted=True)

    centered = normalize(weighted, "center")

    assert centered.normalization == "center"
    assert centered.to_frame().loc[1, "A"] == pytest.approx(1.0)
    assert centered.to_frame().loc[1, "B"] == pytest.approx(-1.0)
    assert centered.row_sums().tolist() == weighted.row_sums().tolist()


def test_normalize_rejects_binary() -> None:
    """Test that binary matrices cannot be normalized."""
    matrix = InteractionMatrix.from_baskets({1: ["A", "B"]})

    with pytest.raises(ConfigurationError):
        normalize(matrix)
