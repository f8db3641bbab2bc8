"""Command-line interface for comparing recommendation algorithms.

This script builds the interaction matrix from a product catalog and order
lines stored as CSV, evaluates every algorithm of the catalog, and writes the
comparison table to CSV. With ``--grid`` it tunes one algorithm instead.

Example:
    Compare all algorithms with default settings:
        $ python scripts/evaluate_algorithms.py data/products.csv data/order_products.csv

    Tune user-based CF over similarity method and neighbourhood size:
        $ python scripts/evaluate_algorithms.py data/products.csv data/order_products.csv \\
            --grid ubcf --grid-param method=cosine,jaccard --grid-param nn=50,500
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from basketrec.config import (
    DEFAULT_MIN_BASKET_ITEMS,
    DEFAULT_POPULARITY_CUTOFF,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_SEED,
    DEFAULT_TRAIN_FRACTION,
    EvaluationConfig,
    GivenPolicy,
    PipelineConfig,
    validate_config,
)
from basketrec.exceptions import BasketRecException
from basketrec.logging_config import setup_logging
from basketrec.pipeline import build_pipeline_from_csv
from basketrec.recommender.catalog import default_catalog
from basketrec.recommender.evaluate import evaluate
from basketrec.recommender.grid import run_grid


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Namespace object containing parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Compare top-N recommendation algorithms on order data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("products_csv", type=str, help="CSV with product_id, product_name")
    parser.add_argument("order_lines_csv", type=str, help="CSV with order_id, product_id")

    parser.add_argument(
        "--output",
        type=str,
        default="results/comparison.csv",
        help="Where to write the comparison table (default: results/comparison.csv)",
    )
    parser.add_argument(
        "--popularity-cutoff",
        type=float,
        default=DEFAULT_POPULARITY_CUTOFF,
        help=f"Cumulative share of the popular vocabulary (default: {DEFAULT_POPULARITY_CUTOFF})",
    )
    parser.add_argument(
        "--sample-size",
        type=int,
        default=DEFAULT_SAMPLE_SIZE,
        help=f"Maximum number of sampled orders (default: {DEFAULT_SAMPLE_SIZE})",
    )
    parser.add_argument(
        "--min-basket-items",
        type=int,
        default=DEFAULT_MIN_BASKET_ITEMS,
        help=f"Minimum distinct items per basket (default: {DEFAULT_MIN_BASKET_ITEMS})",
    )
    parser.add_argument(
        "--train-fraction",
        type=float,
        default=DEFAULT_TRAIN_FRACTION,
        help=f"Share of baskets used for training (default: {DEFAULT_TRAIN_FRACTION})",
    )
    parser.add_argument(
        "--given",
        type=str,
        default="all_but:1",
        help="Hide policy as kind:value, kind in all_but, fixed, fraction (default: all_but:1)",
    )
    parser.add_argument(
        "--max-n",
        type=int,
        default=10,
        help="Evaluate top-N lists for N = 1..max-n (default: 10)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=DEFAULT_SEED,
        help=f"Random seed for sampling and evaluation (default: {DEFAULT_SEED})",
    )
    parser.add_argument(
        "--on-missing",
        choices=["raise", "drop"],
        default="raise",
        help="What to do with order lines whose product is not in the catalog",
    )
    parser.add_argument("--grid", type=str, default=None, help="Algorithm to tune instead of comparing all")
    parser.add_argument(
        "--grid-param",
        action="append",
        default=[],
        help="Grid values as name=v1,v2 (repeatable)",
    )
    parser.add_argument("--n-jobs", type=int, default=1, help="Parallel grid workers (default: 1)")
    parser.add_argument("--text-logs", action="store_true", help="Plain text logs instead of JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging")

    return parser.parse_args()


def _parse_value(raw: str) -> Any:
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    if raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    return raw


def parse_grid_params(entries: List[str]) -> Dict[str, List[Any]]:
    """Turn ``["nn=50,500", "method=cosine"]`` into a parameter grid."""
    grid: Dict[str, List[Any]] = {}
    for entry in entries:
        name, sep, values = entry.partition("=")
        if not sep or not values:
            raise ValueError(f"Grid parameter must look like name=v1,v2: {entry}")
        grid[name.strip()] = [_parse_value(v.strip()) for v in values.split(",")]
    return grid


def parse_given(raw: str) -> GivenPolicy:
    kind, _, value = raw.partition(":")
    return validate_config(GivenPolicy, kind=kind, value=float(value or 1))


def main() -> int:
    """Main entry point for the evaluation script.

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    args = parse_arguments()
    setup_logging("DEBUG" if args.verbose else "INFO", json_format=not args.text_logs)
    logger = logging.getLogger(__name__)

    try:
        pipeline_config = validate_config(
            PipelineConfig,
            popularity_cutoff=args.popularity_cutoff,
            sample_size=args.sample_size,
            min_basket_items=args.min_basket_items,
            seed=args.seed,
        )
        evaluation_config = validate_config(
            EvaluationConfig,
            train_fraction=args.train_fraction,
            given=parse_given(args.given),
            cutoffs=tuple(range(1, args.max_n + 1)),
            seed=args.seed,
        )

        pipeline = build_pipeline_from_csv(
            args.products_csv,
            args.order_lines_csv,
            config=pipeline_config,
            on_missing=args.on_missing,
        )

        catalog = default_catalog()
        if args.grid:
            grid_result = run_grid(
                pipeline.matrix,
                args.grid,
                parse_grid_params(args.grid_param),
                config=evaluation_config,
                catalog=catalog,
                seed=args.seed,
                n_jobs=args.n_jobs,
            )
            table = grid_result.combined()
        else:
            result = evaluate(pipeline.matrix, catalog.defaults(), evaluation_config)
            for name, error in result.training_errors.items():
                logger.warning(f"{name} could not be evaluated: {error}")
            table = result.table

        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(output_path, index=False)

        logger.info(f"Wrote {len(table)} result rows to {output_path.absolute()}")
        return 0

    except FileNotFoundError as e:
        logger.error(f"File error: {e}")
        return 1
    except (BasketRecException, ValueError) as e:
        logger.error(f"Evaluation error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Evaluation interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
