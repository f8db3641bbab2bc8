"""Interaction matrix module.

Pivots sampled baskets into a sparse order x item matrix. The column
vocabulary is frozen when the matrix is built and every later vector
(training rows, test rows, new carts) is encoded against it.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from basketrec.data.loader import ORDER_COL, PRODUCT_NAME_COL
from basketrec.data.sampler import BasketSample
from basketrec.exceptions import ConfigurationError, InsufficientDataError

# Configure module logger
logger = logging.getLogger(__name__)

NORMALIZATION_METHODS = ("center", "zscore")


@dataclass(frozen=True, eq=False)
class InteractionMatrix:
    """Sparse order x item matrix with its frozen vocabularies.

    Attributes:
        matrix: CSR matrix of shape (n_orders, n_items). Binary matrices hold
            1.0 for every purchased item; weighted matrices hold weights
            (possibly normalized) on the same sparsity structure.
        order_ids: Row labels, unique.
        columns: Column labels (product names), unique and sorted.
        binary: Whether the matrix is the presence/absence representation.
        normalization: Normalization applied to a weighted matrix, if any.
    """

    matrix: csr_matrix
    order_ids: Tuple[Any, ...]
    columns: Tuple[str, ...]
    binary: bool = True
    normalization: Optional[str] = None
    _column_index: Dict[str, int] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.matrix.shape != (len(self.order_ids), len(self.columns)):
            raise ValueError(
                f"Matrix shape {self.matrix.shape} does not match "
                f"{len(self.order_ids)} rows x {len(self.columns)} columns"
            )
        object.__setattr__(
            self, "_column_index", {name: idx for idx, name in enumerate(self.columns)}
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.matrix.shape

    @property
    def n_rows(self) -> int:
        return self.matrix.shape[0]

    @property
    def n_columns(self) -> int:
        return self.matrix.shape[1]

    @property
    def density(self) -> float:
        n_cells = self.n_rows * self.n_columns
        return self.matrix.nnz / n_cells if n_cells else 0.0

    @property
    def presence(self) -> csr_matrix:
        """Binary view of the stored structure, whatever the cell values."""
        present = self.matrix.copy()
        present.data = np.ones_like(present.data, dtype=np.float32)
        return present

    def row_sums(self) -> np.ndarray:
        """Number of items in every row."""
        return np.asarray(self.presence.sum(axis=1)).ravel()

    def item_counts(self) -> np.ndarray:
        """Number of rows holding every column."""
        return np.asarray(self.presence.sum(axis=0)).ravel()

    def column_index(self, name: str) -> int:
        return self._column_index[name]

    def row_items(self, row: int) -> np.ndarray:
        """Column indices present in a row, ascending."""
        start, end = self.matrix.indptr[row], self.matrix.indptr[row + 1]
        return np.sort(self.matrix.indices[start:end])

    def take_rows(self, rows: Sequence[int]) -> "InteractionMatrix":
        """New matrix with the selected rows and the same column vocabulary."""
        rows = np.asarray(rows, dtype=np.int64)
        return replace(
            self,
            matrix=self.matrix[rows],
            order_ids=tuple(self.order_ids[i] for i in rows),
        )

    def encode(self, items: Iterable[str]) -> np.ndarray:
        """Encode product names as a 0/1 vector over the frozen columns.

        Unknown product names are ignored and reported with a warning.
        """
        vector = np.zeros(self.n_columns, dtype=np.float32)
        unknown: List[str] = []
        for item in items:
            idx = self._column_index.get(item)
            if idx is None:
                unknown.append(item)
            else:
                vector[idx] = 1.0
        if unknown:
            logger.warning(
                f"Ignoring {len(unknown)} items outside the column vocabulary",
                extra={"unknown_items": sorted(map(str, unknown))},
            )
        return vector

    def decode(self, vector: np.ndarray) -> Tuple[str, ...]:
        """Product names of the non-zero entries of a vector."""
        return tuple(self.columns[i] for i in np.flatnonzero(vector))

    @classmethod
    def from_baskets(cls, baskets: Mapping[Any, Iterable[str]]) -> "InteractionMatrix":
        """Binary matrix straight from an order_id -> items mapping."""
        order_ids, columns, rows, cols = _pivot({k: frozenset(v) for k, v in baskets.items()})
        matrix = csr_matrix(
            (np.ones(len(rows), dtype=np.float32), (rows, cols)),
            shape=(len(order_ids), len(columns)),
            dtype=np.float32,
        )
        return cls(matrix=matrix, order_ids=order_ids, columns=columns)

    def to_frame(self) -> pd.DataFrame:
        """Dense DataFrame view, for inspection of small matrices."""
        return pd.DataFrame(
            self.matrix.toarray(),
            index=pd.Index(self.order_ids, name=ORDER_COL),
            columns=list(self.columns),
        )


def _pivot(
    baskets: Mapping[Any, FrozenSet[str]],
) -> Tuple[Tuple[Any, ...], Tuple[str, ...], List[int], List[int]]:
    """Row labels, sorted columns and the (row, column) pairs of all baskets."""
    order_ids = tuple(baskets.keys())
    columns = tuple(sorted(set().union(*baskets.values()))) if order_ids else ()

    if not order_ids or not columns:
        raise InsufficientDataError(
            "matrix",
            "cannot build an interaction matrix without rows and columns",
            details={"n_rows": len(order_ids), "n_columns": len(columns)},
        )

    column_index = {name: idx for idx, name in enumerate(columns)}

    row_indices: List[int] = []
    col_indices: List[int] = []
    for row, order_id in enumerate(order_ids):
        items = sorted(baskets[order_id])
        row_indices.extend([row] * len(items))
        col_indices.extend(column_index[item] for item in items)

    return order_ids, columns, row_indices, col_indices


def build_interaction_matrix(
    sample: BasketSample,
    weighted: bool = False,
    weights: Optional[Mapping[Tuple[Any, str], float]] = None,
) -> InteractionMatrix:
    """Build the sparse interaction matrix from sampled baskets.

    Args:
        sample: Sampled baskets.
        weighted: If True, cells hold weights instead of 1.0. Weights come
            from ``weights`` when given, otherwise from the number of order
            lines per (order, item) in the sample's transactions.
        weights: Optional explicit (order_id, product_name) -> weight mapping
            for the weighted path. Missing pairs get weight 1.0.

    Returns:
        InteractionMatrix with sorted columns covering exactly the items of
        the sampled baskets.

    Raises:
        InsufficientDataError: If the sample has no baskets or no items.
    """
    order_ids, columns, row_indices, col_indices = _pivot(sample.baskets)

    if not weighted:
        data = np.ones(len(row_indices), dtype=np.float32)
    elif weights is not None:
        data = np.array(
            [
                weights.get((order_ids[r], columns[c]), 1.0)
                for r, c in zip(row_indices, col_indices)
            ],
            dtype=np.float32,
        )
    else:
        line_counts = (
            sample.transactions.records.groupby([ORDER_COL, PRODUCT_NAME_COL]).size()
        )
        data = np.array(
            [
                line_counts.get((order_ids[r], columns[c]), 1)
                for r, c in zip(row_indices, col_indices)
            ],
            dtype=np.float32,
        )

    matrix = csr_matrix(
        (data, (row_indices, col_indices)),
        shape=(len(order_ids), len(columns)),
        dtype=np.float32,
    )

    result = InteractionMatrix(
        matrix=matrix,
        order_ids=order_ids,
        columns=columns,
        binary=not weighted,
    )

    logger.info(f"Matrix shape: {result.shape}")
    logger.info(f"Matrix density: {result.density:.4%}")
    logger.info(f"Non-zero entries: {matrix.nnz}")

    return result


def normalize(matrix: InteractionMatrix, method: str = "center") -> InteractionMatrix:
    """Normalize the stored weights of every row.

    ``center`` subtracts the row mean of the stored weights, ``zscore`` also
    divides by their standard deviation (rows with zero spread are only
    centered). Only stored entries are touched; the sparsity structure, and
    therefore the item presence, is unchanged.

    Args:
        matrix: Weighted interaction matrix.
        method: ``"center"`` or ``"zscore"``.

    Returns:
        New normalized InteractionMatrix.

    Raises:
        ConfigurationError: If the method is unknown or the matrix is binary.
    """
    if method not in NORMALIZATION_METHODS:
        raise ConfigurationError("method", method, f"must be one of {NORMALIZATION_METHODS}")
    if matrix.binary:
        raise ConfigurationError(
            "method", method, "binary matrices carry no weights to normalize"
        )

    normalized = matrix.matrix.copy().astype(np.float64)
    for row in range(normalized.shape[0]):
        start, end = normalized.indptr[row], normalized.indptr[row + 1]
        values = normalized.data[start:end]
        if values.size == 0:
            continue
        centered = values - values.mean()
        if method == "zscore":
            spread = values.std()
            if spread > 0:
                centered = centered / spread
        normalized.data[start:end] = centered

    logger.debug(f"Applied '{method}' normalization to {normalized.shape[0]} rows")

    return replace(
        matrix,
        matrix=normalized.astype(np.float32),
        normalization=method,
    )
