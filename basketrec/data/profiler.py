"""Item frequency profiling module.

Counts how often each product is bought, orders products by purchase count
and selects the popular vocabulary: the smallest count-ordered set of items
covering a configured share of all purchases.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd

from basketrec.config import DEFAULT_POPULARITY_CUTOFF
from basketrec.data.loader import PRODUCT_NAME_COL, TransactionSet
from basketrec.exceptions import ConfigurationError, InsufficientDataError

# Configure module logger
logger = logging.getLogger(__name__)

# Tolerance for cumulative share comparisons
SHARE_EPSILON = 1e-9


@dataclass(frozen=True, eq=False)
class FrequencyProfile:
    """Per-item purchase counts and the derived popular vocabulary.

    Attributes:
        table: DataFrame with columns product_name, count, share,
            cumulative_share and is_popular, sorted by count descending and
            product_name ascending.
        popularity_cutoff: Cutoff the vocabulary was derived with.
    """

    table: pd.DataFrame
    popularity_cutoff: float

    @property
    def vocabulary(self) -> Tuple[str, ...]:
        """Popular product names in count-descending order."""
        return tuple(self.table.loc[self.table["is_popular"], PRODUCT_NAME_COL])

    @property
    def n_popular(self) -> int:
        return int(self.table["is_popular"].sum())

    @property
    def popular_share(self) -> float:
        """Share of all purchases covered by the popular vocabulary."""
        return float(self.table.loc[self.table["is_popular"], "share"].sum())

    def restrict(self, transactions: TransactionSet) -> TransactionSet:
        """Keep only transactions on popular items.

        Args:
            transactions: Records to filter.

        Returns:
            New TransactionSet whose ``dropped_lines`` includes the records
            removed here.
        """
        keep = transactions.records[PRODUCT_NAME_COL].isin(set(self.vocabulary))
        n_dropped = int((~keep).sum())
        logger.info(
            f"Restricted transactions to {self.n_popular} popular items, "
            f"dropped {n_dropped} records"
        )
        return TransactionSet(
            records=transactions.records.loc[keep].reset_index(drop=True),
            n_order_lines=transactions.n_order_lines,
            dropped_lines=transactions.dropped_lines + n_dropped,
            missing_product_ids=transactions.missing_product_ids,
        )


def profile_frequencies(
    transactions: TransactionSet,
    popularity_cutoff: float = DEFAULT_POPULARITY_CUTOFF,
) -> FrequencyProfile:
    """Count item purchases and mark the popular items.

    Items are ranked by purchase count (ties by name). An item is popular
    when the cumulative share of the items ranked before it is still below
    the cutoff, so the popular set is the shortest prefix of the ranking
    whose cumulative share reaches the cutoff.

    Args:
        transactions: Joined transaction records.
        popularity_cutoff: Target cumulative share, in (0, 1].

    Returns:
        FrequencyProfile with the frequency table.

    Raises:
        ConfigurationError: If the cutoff is outside (0, 1].
        InsufficientDataError: If there are no transactions.
    """
    if not 0.0 < popularity_cutoff <= 1.0:
        raise ConfigurationError(
            "popularity_cutoff", popularity_cutoff, "must be in (0, 1]"
        )

    if len(transactions) == 0:
        raise InsufficientDataError("profiler", "no transactions to profile")

    counts = (
        transactions.records.groupby(PRODUCT_NAME_COL)
        .size()
        .reset_index(name="count")
        .sort_values(["count", PRODUCT_NAME_COL], ascending=[False, True], kind="mergesort")
        .reset_index(drop=True)
    )

    total = counts["count"].sum()
    counts["share"] = counts["count"] / total
    counts["cumulative_share"] = counts["share"].cumsum()
    # The final cumulative share can drift just above 1.0
    counts["cumulative_share"] = np.minimum(counts["cumulative_share"], 1.0)

    share_before = counts["cumulative_share"] - counts["share"]
    # The top item is always popular, however small the cutoff
    counts["is_popular"] = (share_before < popularity_cutoff - SHARE_EPSILON) | (counts.index == 0)

    profile = FrequencyProfile(table=counts, popularity_cutoff=popularity_cutoff)

    logger.info(
        "Profiled item frequencies",
        extra={
            "n_items": len(counts),
            "n_popular": profile.n_popular,
            "popularity_cutoff": popularity_cutoff,
            "popular_share": round(profile.popular_share, 4),
        },
    )

    return profile
