"""Generate fake grocery order data for testing and development.

This module creates a synthetic product catalog and order lines shaped like
a grocery order log: a few products are bought far more often than the rest,
and products from the same aisle tend to be bought together.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_orders
        products, order_lines = generate_fake_orders(num_orders=500)
"""

import random
from pathlib import Path
from typing import Optional, Tuple

import pandas as pd

# Default configuration constants
DEFAULT_NUM_PRODUCTS = 120
DEFAULT_NUM_AISLES = 8
DEFAULT_NUM_ORDERS = 2000
DEFAULT_MIN_LINES = 2
DEFAULT_MAX_LINES = 12
DEFAULT_SAME_AISLE_SHARE = 0.7
DEFAULT_SEED = 42


def generate_fake_orders(
    num_products: int = DEFAULT_NUM_PRODUCTS,
    num_aisles: int = DEFAULT_NUM_AISLES,
    num_orders: int = DEFAULT_NUM_ORDERS,
    min_lines: int = DEFAULT_MIN_LINES,
    max_lines: int = DEFAULT_MAX_LINES,
    same_aisle_share: float = DEFAULT_SAME_AISLE_SHARE,
    seed: Optional[int] = DEFAULT_SEED,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Generate a synthetic catalog and order lines.

    Args:
        num_products: Number of products in the catalog. Must be positive.
        num_aisles: Number of aisles products are spread over. Must be
            between 1 and num_products.
        num_orders: Number of orders to generate. Must be positive.
        min_lines: Minimum order lines per order.
        max_lines: Maximum order lines per order.
        same_aisle_share: Probability that a line is drawn from the order's
            main aisle rather than the whole catalog.
        seed: Random seed, None for a non-reproducible run.

    Returns:
        A tuple of two DataFrames:
            - products: product_id, product_name, aisle
            - order_lines: order_id, product_id (an order can repeat a product)

    Raises:
        ValueError: If any parameter is out of range.
    """
    if num_products <= 0 or num_orders <= 0:
        raise ValueError("num_products and num_orders must be positive")
    if not 1 <= num_aisles <= num_products:
        raise ValueError("num_aisles must be between 1 and num_products")
    if not 1 <= min_lines <= max_lines:
        raise ValueError("min_lines must be positive and not above max_lines")
    if not 0.0 <= same_aisle_share <= 1.0:
        raise ValueError("same_aisle_share must be in [0, 1]")

    rng = random.Random(seed)

    product_ids = list(range(1, num_products + 1))
    aisles = {pid: (pid - 1) % num_aisles for pid in product_ids}
    # Zipf-like popularity: low ids are bought far more often
    weights = [1.0 / (pid ** 0.8) for pid in product_ids]

    products = pd.DataFrame({
        "product_id": product_ids,
        "product_name": [f"product_{pid:04d}" for pid in product_ids],
        "aisle": [f"aisle_{aisles[pid]:02d}" for pid in product_ids],
    })

    by_aisle = {}
    for pid in product_ids:
        by_aisle.setdefault(aisles[pid], []).append(pid)

    lines = []
    for order_id in range(1, num_orders + 1):
        main_aisle = rng.randrange(num_aisles)
        aisle_products = by_aisle[main_aisle]
        aisle_weights = [weights[pid - 1] for pid in aisle_products]

        for _ in range(rng.randint(min_lines, max_lines)):
            if rng.random() < same_aisle_share:
                product_id = rng.choices(aisle_products, weights=aisle_weights)[0]
            else:
                product_id = rng.choices(product_ids, weights=weights)[0]
            lines.append({"order_id": order_id, "product_id": product_id})

    order_lines = pd.DataFrame(lines)

    return products, order_lines


def main() -> None:
    """Main entry point for the data generation script.

    Generates fake orders with default parameters and saves them to
    data/products.csv and data/order_products.csv.
    """
    print(f"Generating {DEFAULT_NUM_ORDERS} fake orders...")
    print(f"Products: {DEFAULT_NUM_PRODUCTS}, Aisles: {DEFAULT_NUM_AISLES}")

    try:
        products, order_lines = generate_fake_orders()
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(__file__).parent.parent / 'data'
    data_dir.mkdir(exist_ok=True)

    products_path = data_dir / 'products.csv'
    order_lines_path = data_dir / 'order_products.csv'
    products.to_csv(products_path, index=False)
    order_lines.to_csv(order_lines_path, index=False)

    print(f"\nData generated successfully!")
    print(f"Saved to: {products_path} and {order_lines_path}")
    print(f"\nData summary:")
    print(f"  Order lines: {len(order_lines)}")
    print(f"  Orders: {order_lines['order_id'].nunique()}")
    print(f"  Products bought: {order_lines['product_id'].nunique()}")


if __name__ == '__main__':
    main()
