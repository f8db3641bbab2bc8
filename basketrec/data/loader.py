"""Transaction loading module.

Joins raw order lines (order_id, product_id) with the product catalog
(product_id, product_name) into the transaction records every later stage
works on.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Tuple

import pandas as pd

from basketrec.exceptions import DataIntegrityError

# Configure module logger
logger = logging.getLogger(__name__)

ORDER_COL = "order_id"
PRODUCT_ID_COL = "product_id"
PRODUCT_NAME_COL = "product_name"


@dataclass(frozen=True, eq=False)
class TransactionSet:
    """Joined (order_id, product_name) records plus load bookkeeping.

    Attributes:
        records: DataFrame with columns ``order_id`` and ``product_name``.
            One row per order line, so repeat purchases inside an order show
            up as repeated rows.
        n_order_lines: Number of order lines read from the source.
        dropped_lines: Order lines dropped during loading or restriction.
        missing_product_ids: Catalog misses that caused drops.
    """

    records: pd.DataFrame
    n_order_lines: int
    dropped_lines: int = 0
    missing_product_ids: Tuple[Any, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def n_orders(self) -> int:
        return int(self.records[ORDER_COL].nunique())

    @property
    def n_products(self) -> int:
        return int(self.records[PRODUCT_NAME_COL].nunique())

    @classmethod
    def from_pairs(cls, pairs) -> "TransactionSet":
        """Build a TransactionSet directly from (order_id, product_name) pairs."""
        records = pd.DataFrame(list(pairs), columns=[ORDER_COL, PRODUCT_NAME_COL])
        return cls(records=records, n_order_lines=len(records))


def _require_columns(df: pd.DataFrame, required: set, source: str) -> None:
    if not required.issubset(df.columns):
        missing = required - set(df.columns)
        raise DataIntegrityError(
            f"{source} missing required columns: {sorted(missing)}",
            details={"source": source},
        )


def load_transactions(
    products: pd.DataFrame,
    order_lines: pd.DataFrame,
    on_missing: Literal["raise", "drop"] = "raise",
) -> TransactionSet:
    """Join order lines with the product catalog.

    Args:
        products: Catalog with columns ``product_id`` and ``product_name``.
        order_lines: Order lines with columns ``order_id`` and ``product_id``.
        on_missing: What to do with order lines whose product_id has no
            catalog entry. ``"raise"`` fails the load, ``"drop"`` removes
            them and records the drop in the returned metadata.

    Returns:
        TransactionSet with one record per resolved order line. No ordering
        is guaranteed.

    Raises:
        DataIntegrityError: If required columns are missing, the catalog has
            duplicate ids, or (with ``on_missing="raise"``) a product id
            cannot be resolved.
        ValueError: If ``on_missing`` is not a known policy.
    """
    if on_missing not in ("raise", "drop"):
        raise ValueError(f"Unknown on_missing policy: {on_missing}")

    _require_columns(products, {PRODUCT_ID_COL, PRODUCT_NAME_COL}, "products")
    _require_columns(order_lines, {ORDER_COL, PRODUCT_ID_COL}, "order_lines")

    duplicated = products[PRODUCT_ID_COL][products[PRODUCT_ID_COL].duplicated()]
    if not duplicated.empty:
        raise DataIntegrityError(
            f"Product catalog has {duplicated.nunique()} duplicated product ids",
            details={"duplicated_product_ids": sorted(duplicated.unique().tolist())},
        )

    logger.info(
        "Joining order lines with catalog",
        extra={
            "n_order_lines": len(order_lines),
            "n_catalog_products": len(products),
        },
    )

    joined = order_lines[[ORDER_COL, PRODUCT_ID_COL]].merge(
        products[[PRODUCT_ID_COL, PRODUCT_NAME_COL]],
        on=PRODUCT_ID_COL,
        how="left",
        indicator=True,
    )
    unresolved = joined["_merge"] == "left_only"
    missing_ids = tuple(sorted(joined.loc[unresolved, PRODUCT_ID_COL].unique().tolist()))

    if missing_ids:
        n_unresolved = int(unresolved.sum())
        if on_missing == "raise":
            raise DataIntegrityError(
                f"{n_unresolved} order lines reference {len(missing_ids)} "
                "product ids missing from the catalog",
                missing_product_ids=missing_ids,
                details={"unresolved_lines": n_unresolved},
            )
        logger.warning(
            f"Dropping {n_unresolved} order lines with unknown product ids",
            extra={"missing_product_ids": list(missing_ids)},
        )

    records = (
        joined.loc[~unresolved, [ORDER_COL, PRODUCT_NAME_COL]]
        .reset_index(drop=True)
    )

    logger.info(f"Loaded {len(records)} transaction records")

    return TransactionSet(
        records=records,
        n_order_lines=len(order_lines),
        dropped_lines=int(unresolved.sum()),
        missing_product_ids=missing_ids,
    )


def read_transaction_csvs(
    products_csv: str,
    order_lines_csv: str,
    product_id_col: str = PRODUCT_ID_COL,
    product_name_col: str = PRODUCT_NAME_COL,
    order_col: str = ORDER_COL,
    on_missing: Literal["raise", "drop"] = "raise",
) -> TransactionSet:
    """Read the catalog and order lines from CSV files and join them.

    Args:
        products_csv: Path to the product catalog CSV.
        order_lines_csv: Path to the order lines CSV.
        product_id_col: Name of the product id column in both files.
        product_name_col: Name of the product name column in the catalog.
        order_col: Name of the order id column in the order lines.
        on_missing: Policy for unresolved product ids, see load_transactions.

    Returns:
        Joined TransactionSet.

    Raises:
        FileNotFoundError: If either CSV file does not exist.
        DataIntegrityError: If a file is empty, lacks columns, or fails the join.

    Example:
        >>> transactions = read_transaction_csvs(
        ...     "data/products.csv",
        ...     "data/order_products.csv",
        ... )
        >>> print(f"{transactions.n_orders} orders loaded")
    """
    frames = []
    for csv_path in (products_csv, order_lines_csv):
        if not Path(csv_path).exists():
            raise FileNotFoundError(f"CSV file not found: {csv_path}")
        logger.info(f"Loading CSV from {csv_path}")
        df = pd.read_csv(csv_path)
        if df.empty:
            raise DataIntegrityError(f"CSV file is empty: {csv_path}")
        frames.append(df)

    products, order_lines = frames
    products = products.rename(
        columns={product_id_col: PRODUCT_ID_COL, product_name_col: PRODUCT_NAME_COL}
    )
    order_lines = order_lines.rename(
        columns={order_col: ORDER_COL, product_id_col: PRODUCT_ID_COL}
    )

    return load_transactions(products, order_lines, on_missing=on_missing)
