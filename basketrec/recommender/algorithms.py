"""Recommendation algorithms.

Five interchangeable strategies sharing the Recommender contract:

- RandomRecommender: random order of the columns not in the cart
- PopularityRecommender: most frequently bought columns
- ItemBasedCF: top-k item neighbourhoods, scores summed over the cart
- UserBasedCF: most similar training baskets vote for their items
- AssociationRuleRecommender: apriori rules whose antecedent is in the cart
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd
from mlxtend.frequent_patterns import apriori, association_rules
from scipy.sparse import csr_matrix

from basketrec.config import DEFAULT_SEED
from basketrec.data.matrix import InteractionMatrix
from basketrec.exceptions import ConfigurationError
from basketrec.recommender.base import Recommender, TrainedModel
from basketrec.recommender.similarity import SIMILARITY_METHODS, pairwise_similarity

# Configure module logger
logger = logging.getLogger(__name__)

# Default algorithm parameters
DEFAULT_IBCF_K = 5
DEFAULT_UBCF_NN = 500
DEFAULT_SIMILARITY = "cosine"
DEFAULT_SUPPORT = 0.01
DEFAULT_CONFIDENCE = 0.01
DEFAULT_MAX_RULE_LEN = 3
RULE_RANKING_METRICS = ("confidence", "lift", "support")


def _check_method(method: str) -> None:
    if method not in SIMILARITY_METHODS:
        raise ConfigurationError("method", method, f"must be one of {SIMILARITY_METHODS}")


def _positive_or_inf(scores: np.ndarray) -> np.ndarray:
    scores = np.asarray(scores, dtype=np.float64).ravel()
    return np.where(scores > 0, scores, -np.inf)


class RandomModel(TrainedModel):
    def __init__(self, name, columns, seed: int):
        super().__init__(name, columns)
        self.seed = seed

    def _score(self, basket: np.ndarray) -> np.ndarray:
        # Seeded from the cart so the same request always gets the same list
        rng = np.random.default_rng([self.seed, *np.flatnonzero(basket).tolist()])
        return rng.random(self.n_columns)


class RandomRecommender(Recommender):
    """Uniformly random recommendations, a lower bound for the others."""

    name = "random"

    def __init__(self, seed: int = DEFAULT_SEED):
        if seed < 0:
            raise ConfigurationError("seed", seed, "must be non-negative")
        self.seed = seed

    def _fit(self, matrix: InteractionMatrix) -> TrainedModel:
        return RandomModel(self.name, matrix.columns, self.seed)


class PopularityModel(TrainedModel):
    def __init__(self, name, columns, item_counts: np.ndarray):
        super().__init__(name, columns)
        self.item_counts = item_counts

    def _score(self, basket: np.ndarray) -> np.ndarray:
        return _positive_or_inf(self.item_counts)


class PopularityRecommender(Recommender):
    """Recommends the globally most purchased items."""

    name = "popular"

    def _fit(self, matrix: InteractionMatrix) -> TrainedModel:
        return PopularityModel(self.name, matrix.columns, matrix.item_counts())


class ItemBasedModel(TrainedModel):
    def __init__(self, name, columns, neighbours: csr_matrix):
        super().__init__(name, columns)
        # Row i holds the top-k neighbours of item i
        self.neighbours = neighbours

    def _score(self, basket: np.ndarray) -> np.ndarray:
        return _positive_or_inf(self.neighbours @ basket)


class ItemBasedCF(Recommender):
    """Item-based collaborative filtering.

    Precomputes item x item similarities, keeps the ``k`` most similar
    neighbours of every item and scores a candidate by the summed similarity
    to the cart items among its neighbours.
    """

    name = "ibcf"

    def __init__(self, method: str = DEFAULT_SIMILARITY, k: int = DEFAULT_IBCF_K):
        _check_method(method)
        if k < 1:
            raise ConfigurationError("k", k, "must be positive")
        self.method = method
        self.k = k

    def _fit(self, matrix: InteractionMatrix) -> TrainedModel:
        items = csr_matrix(matrix.matrix.T)
        similarity = pairwise_similarity(items, items, self.method)
        np.fill_diagonal(similarity, 0.0)

        n_items = similarity.shape[0]
        k = min(self.k, max(n_items - 1, 0))
        rows, cols, data = [], [], []
        if k > 0:
            # Stable sort keeps equally similar neighbours in column order
            top = np.argsort(-similarity, axis=1, kind="stable")[:, :k]
            for item in range(n_items):
                for neighbour in top[item]:
                    value = similarity[item, neighbour]
                    if value > 0:
                        rows.append(item)
                        cols.append(neighbour)
                        data.append(value)

        neighbours = csr_matrix((data, (rows, cols)), shape=(n_items, n_items), dtype=np.float64)

        logger.info(
            "Built item neighbourhoods",
            extra={"algorithm": self.name, "method": self.method, "k": k, "nnz": neighbours.nnz},
        )

        return ItemBasedModel(self.name, matrix.columns, neighbours)


class UserBasedModel(TrainedModel):
    def __init__(
        self,
        name,
        columns,
        rows: csr_matrix,
        presence: csr_matrix,
        method: str,
        nn: int,
        weighted: bool,
    ):
        super().__init__(name, columns)
        self.rows = rows
        self.presence = presence
        self.method = method
        self.nn = nn
        self.weighted = weighted

    def _score(self, basket: np.ndarray) -> np.ndarray:
        query = csr_matrix(basket.reshape(1, -1))
        if query.nnz == 0:
            return np.full(self.n_columns, -np.inf)

        # One row of similarities, never a full row x row matrix
        similarity = pairwise_similarity(query, self.rows, self.method)[0]
        candidates = np.flatnonzero(similarity > 0)
        if candidates.size == 0:
            return np.full(self.n_columns, -np.inf)

        nearest = candidates[np.argsort(-similarity[candidates], kind="stable")[: self.nn]]
        neighbours = self.presence[nearest]
        if self.weighted:
            scores = neighbours.T @ similarity[nearest]
        else:
            scores = np.asarray(neighbours.sum(axis=0)).ravel()
        return _positive_or_inf(scores)


class UserBasedCF(Recommender):
    """User-based collaborative filtering.

    At request time finds the ``nn`` training baskets most similar to the
    cart and scores every item by how many of them hold it (or by their
    summed similarity when ``weighted``).
    """

    name = "ubcf"

    def __init__(self, method: str = DEFAULT_SIMILARITY, nn: int = DEFAULT_UBCF_NN, weighted: bool = False):
        _check_method(method)
        if nn < 1:
            raise ConfigurationError("nn", nn, "must be positive")
        self.method = method
        self.nn = nn
        self.weighted = weighted

    def _fit(self, matrix: InteractionMatrix) -> TrainedModel:
        return UserBasedModel(
            self.name,
            matrix.columns,
            rows=csr_matrix(matrix.matrix, dtype=np.float64),
            presence=csr_matrix(matrix.presence, dtype=np.float64),
            method=self.method,
            nn=self.nn,
            weighted=self.weighted,
        )


class AssociationRuleModel(TrainedModel):
    def __init__(self, name, columns, rules: pd.DataFrame, rank_by: str):
        super().__init__(name, columns)
        self.rules = rules
        self.rank_by = rank_by

        n_rules = len(rules)
        antecedent_rows, antecedent_cols = [], []
        consequent_rows, consequent_cols = [], []
        for rule, (antecedents, consequents) in enumerate(
            zip(rules["antecedents"], rules["consequents"])
        ):
            for item in antecedents:
                antecedent_rows.append(rule)
                antecedent_cols.append(self._column_index[item])
            for item in consequents:
                consequent_rows.append(rule)
                consequent_cols.append(self._column_index[item])

        shape = (n_rules, self.n_columns)
        self.antecedents = csr_matrix(
            (np.ones(len(antecedent_rows)), (antecedent_rows, antecedent_cols)), shape=shape
        )
        self.consequents = csr_matrix(
            (np.ones(len(consequent_rows)), (consequent_rows, consequent_cols)), shape=shape
        )
        self.antecedent_sizes = np.asarray(self.antecedents.sum(axis=1)).ravel()
        self.metric = rules[rank_by].to_numpy(dtype=np.float64) if n_rules else np.zeros(0)

    @property
    def n_rules(self) -> int:
        return len(self.rules)

    def _score(self, basket: np.ndarray) -> np.ndarray:
        if self.n_rules == 0:
            return np.full(self.n_columns, -np.inf)

        covered = self.antecedents @ basket
        matched = np.flatnonzero(covered >= self.antecedent_sizes)
        if matched.size == 0:
            return np.full(self.n_columns, -np.inf)

        # Best metric of any matching rule, per consequent item
        weighted = self.consequents[matched].multiply(self.metric[matched][:, None])
        scores = csr_matrix(weighted).max(axis=0).toarray().ravel()
        return _positive_or_inf(scores)


class AssociationRuleRecommender(Recommender):
    """Association rule recommendations.

    Mines frequent itemsets with apriori and rules with at least the given
    confidence. A cart is matched against every rule whose antecedent it
    contains; consequents are ranked by ``rank_by``.
    """

    name = "ar"

    def __init__(
        self,
        support: float = DEFAULT_SUPPORT,
        confidence: float = DEFAULT_CONFIDENCE,
        max_len: Optional[int] = DEFAULT_MAX_RULE_LEN,
        rank_by: str = "confidence",
    ):
        if not 0.0 <= support <= 1.0:
            raise ConfigurationError("support", support, "must be in [0, 1]")
        if not 0.0 <= confidence <= 1.0:
            raise ConfigurationError("confidence", confidence, "must be in [0, 1]")
        if max_len is not None and max_len < 2:
            raise ConfigurationError("max_len", max_len, "rules need itemsets of at least 2 items")
        if rank_by not in RULE_RANKING_METRICS:
            raise ConfigurationError("rank_by", rank_by, f"must be one of {RULE_RANKING_METRICS}")
        self.support = support
        self.confidence = confidence
        self.max_len = max_len
        self.rank_by = rank_by

    def _fit(self, matrix: InteractionMatrix) -> TrainedModel:
        n_rows = matrix.n_rows
        # apriori needs a positive support; half a basket admits every observed itemset
        min_support = max(self.support, 0.5 / n_rows)

        baskets = pd.DataFrame(
            matrix.presence.toarray().astype(bool),
            columns=list(matrix.columns),
        )
        itemsets = apriori(
            baskets,
            min_support=min_support,
            use_colnames=True,
            max_len=self.max_len,
        )

        if itemsets.empty:
            logger.warning(
                f"No frequent itemsets at support {min_support:.4f}, model has no rules"
            )
            rules = pd.DataFrame(columns=["antecedents", "consequents", *RULE_RANKING_METRICS])
        else:
            with np.errstate(divide="ignore", invalid="ignore"):
                rules = association_rules(
                    itemsets,
                    num_itemsets=n_rows,
                    metric="confidence",
                    min_threshold=self.confidence,
                )
            rules = rules.reset_index(drop=True)

        logger.info(
            "Mined association rules",
            extra={
                "algorithm": self.name,
                "min_support": min_support,
                "min_confidence": self.confidence,
                "n_itemsets": len(itemsets),
                "n_rules": len(rules),
            },
        )

        return AssociationRuleModel(self.name, matrix.columns, rules, self.rank_by)
