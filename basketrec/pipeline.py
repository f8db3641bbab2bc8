"""End-to-end data pipeline.

Chains the data stages (profiling, sampling, matrix construction) so a
comparison can start from raw transactions in one call.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional

from basketrec.config import PipelineConfig
from basketrec.data.loader import TransactionSet, read_transaction_csvs
from basketrec.data.matrix import InteractionMatrix, build_interaction_matrix, normalize
from basketrec.data.profiler import FrequencyProfile, profile_frequencies
from basketrec.data.sampler import BasketSample, sample_baskets

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Outputs of every data stage, kept for inspection and reporting."""

    transactions: TransactionSet
    profile: FrequencyProfile
    sample: BasketSample
    matrix: InteractionMatrix
    config: PipelineConfig


def build_pipeline(
    transactions: TransactionSet,
    config: Optional[PipelineConfig] = None,
) -> PipelineResult:
    """Run profiler, sampler and matrix builder on loaded transactions.

    Args:
        transactions: Joined transaction records.
        config: Pipeline parameters, defaults to PipelineConfig().

    Returns:
        PipelineResult with the interaction matrix and every intermediate.

    Raises:
        InsufficientDataError: If a stage leaves no usable data.
    """
    config = config or PipelineConfig()

    logger.info("=" * 60)
    logger.info("Building interaction matrix")
    logger.info("=" * 60)

    # Step 1: Frequency profile and popular vocabulary
    profile = profile_frequencies(transactions, config.popularity_cutoff)

    # Step 2: Sample baskets over the popular vocabulary
    sample = sample_baskets(
        transactions,
        profile.vocabulary,
        sample_size=config.sample_size,
        min_basket_items=config.min_basket_items,
        seed=config.seed,
    )

    # Step 3: Pivot into the sparse matrix
    matrix = build_interaction_matrix(sample, weighted=config.weighted)
    if config.normalization is not None:
        matrix = normalize(matrix, config.normalization)

    logger.info(
        "Pipeline completed",
        extra={
            "n_transactions": len(transactions),
            "n_popular_items": profile.n_popular,
            "n_baskets": len(sample),
            "shortfall": sample.shortfall,
            "matrix_shape": list(matrix.shape),
        },
    )

    return PipelineResult(
        transactions=transactions,
        profile=profile,
        sample=sample,
        matrix=matrix,
        config=config,
    )


def build_pipeline_from_csv(
    products_csv: str,
    order_lines_csv: str,
    config: Optional[PipelineConfig] = None,
    on_missing: Literal["raise", "drop"] = "raise",
) -> PipelineResult:
    """Load the catalog and order lines from CSV, then run build_pipeline.

    Raises:
        FileNotFoundError: If a CSV file does not exist.
        DataIntegrityError: If the order lines cannot be joined with the catalog.
        InsufficientDataError: If a stage leaves no usable data.
    """
    transactions = read_transaction_csvs(products_csv, order_lines_csv, on_missing=on_missing)
    return build_pipeline(transactions, config)
