"""Basket sampling module.

Draws a bounded, reproducible random sample of orders restricted to the
popular item vocabulary, so the interaction matrix stays tractable.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Tuple

import numpy as np

from basketrec.config import DEFAULT_MIN_BASKET_ITEMS, DEFAULT_SAMPLE_SIZE, DEFAULT_SEED
from basketrec.data.loader import ORDER_COL, PRODUCT_NAME_COL, TransactionSet
from basketrec.exceptions import ConfigurationError, InsufficientDataError

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class BasketSample:
    """Sampled baskets and what happened while drawing them.

    Attributes:
        baskets: Mapping of order_id to its set of distinct product names.
        transactions: The sampled transaction records (retained orders only),
            kept for the weighted matrix path.
        requested: Requested sample size.
        available_orders: Distinct orders left after vocabulary restriction.
        drawn: Orders actually drawn, ``min(requested, available_orders)``.
        dropped_small_baskets: Drawn orders dropped for having too few items.
        dropped_lines: Records removed by the vocabulary restriction.
        min_basket_items: Minimum basket size applied.
        seed: Seed used for the draw.
    """

    baskets: Dict[Any, FrozenSet[str]]
    transactions: TransactionSet
    requested: int
    available_orders: int
    drawn: int
    dropped_small_baskets: int
    dropped_lines: int
    min_basket_items: int
    seed: int

    def __len__(self) -> int:
        return len(self.baskets)

    @property
    def order_ids(self) -> Tuple[Any, ...]:
        return tuple(self.baskets.keys())

    @property
    def shortfall(self) -> int:
        """How many fewer baskets were retained than requested."""
        return self.requested - len(self.baskets)


def sample_baskets(
    transactions: TransactionSet,
    vocabulary: Iterable[str],
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    min_basket_items: int = DEFAULT_MIN_BASKET_ITEMS,
    seed: int = DEFAULT_SEED,
) -> BasketSample:
    """Draw a reproducible sample of baskets over the popular vocabulary.

    Args:
        transactions: Joined transaction records.
        vocabulary: Product names allowed in the baskets.
        sample_size: Maximum number of orders to draw.
        min_basket_items: Minimum number of distinct items per basket.
            Smaller baskets are dropped entirely, never truncated.
        seed: Random seed. The same seed and inputs always give the same
            sampled order ids.

    Returns:
        BasketSample with at most ``sample_size`` baskets.

    Raises:
        ConfigurationError: If sample_size or min_basket_items is not positive.
        InsufficientDataError: If no basket survives the filters.
    """
    if sample_size < 1:
        raise ConfigurationError("sample_size", sample_size, "must be positive")
    if min_basket_items < 1:
        raise ConfigurationError("min_basket_items", min_basket_items, "must be positive")

    records = transactions.records
    in_vocabulary = records[PRODUCT_NAME_COL].isin(set(vocabulary))
    restricted = records.loc[in_vocabulary]
    dropped_lines = int((~in_vocabulary).sum())

    # Sorted so that the draw depends only on the seed, not on input order
    order_ids = np.array(sorted(restricted[ORDER_COL].unique().tolist()), dtype=object)
    available = len(order_ids)
    n_draw = min(sample_size, available)

    rng = np.random.default_rng(seed)
    drawn_ids = order_ids[rng.choice(available, size=n_draw, replace=False)] if n_draw else order_ids
    drawn = restricted.loc[restricted[ORDER_COL].isin(set(drawn_ids.tolist()))]

    grouped = drawn.groupby(ORDER_COL, sort=True)[PRODUCT_NAME_COL].agg(frozenset)
    keep = grouped.map(len) >= min_basket_items
    baskets = dict(grouped.loc[keep].items())
    dropped_small = int((~keep).sum())

    sample = BasketSample(
        baskets=baskets,
        transactions=TransactionSet(
            records=drawn.loc[drawn[ORDER_COL].isin(set(baskets))].reset_index(drop=True),
            n_order_lines=transactions.n_order_lines,
            dropped_lines=transactions.dropped_lines + dropped_lines,
            missing_product_ids=transactions.missing_product_ids,
        ),
        requested=sample_size,
        available_orders=available,
        drawn=n_draw,
        dropped_small_baskets=dropped_small,
        dropped_lines=dropped_lines,
        min_basket_items=min_basket_items,
        seed=seed,
    )

    logger.info(
        "Sampled baskets",
        extra={
            "requested": sample_size,
            "available_orders": available,
            "drawn": n_draw,
            "retained": len(baskets),
            "dropped_small_baskets": dropped_small,
            "seed": seed,
        },
    )

    if not baskets:
        raise InsufficientDataError(
            "sampler",
            f"no basket has at least {min_basket_items} popular items",
            details={"available_orders": available, "drawn": n_draw},
        )

    if sample.shortfall > 0:
        logger.warning(
            f"Retained {len(baskets)} baskets, {sample.shortfall} fewer than "
            f"the requested {sample_size}"
        )

    return sample
