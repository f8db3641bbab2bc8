"""Common recommender contract.

Every algorithm is trained on an InteractionMatrix and returns a trained
model bound to that matrix's frozen column vocabulary. Trained models score
a partial basket vector and rank the eligible columns.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Tuple

import numpy as np

from basketrec.data.matrix import InteractionMatrix
from basketrec.exceptions import AlgorithmTrainingError

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10


@dataclass(frozen=True)
class RankedRecommendation:
    """Top-N items with their scores, best first.

    Attributes:
        items: Recommended product names.
        scores: Scores aligned with ``items``, non-increasing.
    """

    items: Tuple[str, ...] = ()
    scores: Tuple[float, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Tuple[str, float]]:
        return iter(zip(self.items, self.scores))

    def top(self, n: int) -> "RankedRecommendation":
        """The first ``n`` recommendations."""
        return RankedRecommendation(items=self.items[:n], scores=self.scores[:n])

    def to_list(self) -> List[Tuple[str, float]]:
        return list(zip(self.items, self.scores))


class TrainedModel(ABC):
    """A recommender fitted on one interaction matrix.

    Subclasses implement ``_score`` and return -inf for every column they
    cannot recommend. Ranking, basket exclusion and truncation are shared.
    """

    def __init__(self, name: str, columns: Tuple[str, ...]):
        self.name = name
        self.columns = columns
        self._column_index = {item: idx for idx, item in enumerate(columns)}

    @property
    def n_columns(self) -> int:
        return len(self.columns)

    @abstractmethod
    def _score(self, basket: np.ndarray) -> np.ndarray:
        """Score every column for a 0/1 basket vector."""

    def encode(self, items: Iterable[str]) -> np.ndarray:
        """Encode product names over this model's columns, ignoring unknowns."""
        vector = np.zeros(self.n_columns, dtype=np.float32)
        unknown = []
        for item in items:
            idx = self._column_index.get(item)
            if idx is None:
                unknown.append(item)
            else:
                vector[idx] = 1.0
        if unknown:
            logger.warning(
                f"Ignoring {len(unknown)} items unknown to model '{self.name}'",
                extra={"unknown_items": sorted(map(str, unknown))},
            )
        return vector

    def recommend(self, basket: np.ndarray, n: int = DEFAULT_TOP_N) -> RankedRecommendation:
        """Rank the best ``n`` columns not already in the basket.

        Args:
            basket: Vector over this model's columns; non-zero entries are the
                items already in the cart.
            n: Maximum number of recommendations.

        Returns:
            RankedRecommendation with at most ``n`` items. Fewer are returned
            when fewer columns are eligible. Equal scores keep column order.

        Raises:
            ValueError: If the vector length does not match the columns or
                ``n`` is negative.
        """
        basket = np.asarray(basket).ravel()
        if basket.shape[0] != self.n_columns:
            raise ValueError(
                f"Basket vector has {basket.shape[0]} entries, "
                f"model '{self.name}' expects {self.n_columns}"
            )
        if n < 0:
            raise ValueError(f"n must be non-negative, got {n}")
        if n == 0:
            return RankedRecommendation()

        present = basket != 0
        scores = np.asarray(self._score(present.astype(np.float32)), dtype=np.float64)
        scores[present] = -np.inf

        eligible = np.flatnonzero(np.isfinite(scores))
        if eligible.size == 0:
            return RankedRecommendation()

        order = eligible[np.argsort(-scores[eligible], kind="stable")][:n]
        return RankedRecommendation(
            items=tuple(self.columns[i] for i in order),
            scores=tuple(float(scores[i]) for i in order),
        )

    def recommend_items(self, items: Iterable[str], n: int = DEFAULT_TOP_N) -> RankedRecommendation:
        """Recommend for a cart given as product names."""
        return self.recommend(self.encode(items), n)


class Recommender(ABC):
    """An untrained algorithm with its parameters."""

    name: str = "recommender"

    @abstractmethod
    def _fit(self, matrix: InteractionMatrix) -> TrainedModel:
        """Fit on a non-empty matrix."""

    def train(self, matrix: InteractionMatrix) -> TrainedModel:
        """Fit the algorithm on an interaction matrix.

        Raises:
            AlgorithmTrainingError: If the matrix is degenerate or fitting fails.
        """
        if matrix.n_rows == 0 or matrix.n_columns == 0:
            raise AlgorithmTrainingError(
                self.name, ValueError(f"cannot train on matrix of shape {matrix.shape}")
            )
        try:
            model = self._fit(matrix)
        except AlgorithmTrainingError:
            raise
        except Exception as e:
            logger.error(f"Training '{self.name}' failed: {e}", exc_info=True)
            raise AlgorithmTrainingError(self.name, e) from e

        logger.debug(
            "Trained model",
            extra={"algorithm": self.name, "n_rows": matrix.n_rows, "n_columns": matrix.n_columns},
        )
        return model
