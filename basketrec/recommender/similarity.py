"""Sparse similarity kernels.

Cosine and Jaccard similarity between the rows of two sparse matrices,
computed without densifying the inputs.
"""

from typing import Literal

import numpy as np
from scipy.sparse import csr_matrix, issparse
from sklearn.metrics.pairwise import cosine_similarity

SimilarityMethod = Literal["cosine", "jaccard"]
SIMILARITY_METHODS = ("cosine", "jaccard")


def _as_presence(matrix: csr_matrix) -> csr_matrix:
    present = csr_matrix(matrix, dtype=np.float64, copy=True)
    present.data = np.ones_like(present.data)
    return present


def jaccard_similarity(left: csr_matrix, right: csr_matrix) -> np.ndarray:
    """Jaccard similarity between the rows of ``left`` and ``right``.

    Only the sparsity structure matters: |A & B| / |A | B|. Pairs of empty
    rows get similarity 0.
    """
    left = _as_presence(left)
    right = _as_presence(right)

    intersection = (left @ right.T).toarray()
    left_sizes = np.asarray(left.sum(axis=1)).ravel()
    right_sizes = np.asarray(right.sum(axis=1)).ravel()
    union = left_sizes[:, None] + right_sizes[None, :] - intersection

    with np.errstate(divide="ignore", invalid="ignore"):
        similarity = np.where(union > 0, intersection / union, 0.0)
    return similarity


def pairwise_similarity(
    left: csr_matrix,
    right: csr_matrix,
    method: SimilarityMethod = "cosine",
) -> np.ndarray:
    """Dense (n_left, n_right) similarity matrix between two row sets.

    Args:
        left: Sparse matrix whose rows are compared.
        right: Sparse matrix with the same number of columns.
        method: ``"cosine"`` uses the stored values, ``"jaccard"`` only
            the item presence.

    Returns:
        Dense float array of similarities.

    Raises:
        ValueError: If the method is unknown.
    """
    if method == "cosine":
        if not issparse(left):
            left = csr_matrix(left)
        if not issparse(right):
            right = csr_matrix(right)
        return np.asarray(cosine_similarity(left, right, dense_output=True))
    if method == "jaccard":
        return jaccard_similarity(csr_matrix(left), csr_matrix(right))
    raise ValueError(f"Unknown similarity method: {method}")
