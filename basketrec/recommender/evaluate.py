"""Evaluation harness.

Splits an interaction matrix into train and test rows, hides part of every
test basket, asks each algorithm to recommend the hidden items back and
accumulates confusion counts for every top-N cutoff.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from basketrec.config import EvaluationConfig, GivenPolicy
from basketrec.data.matrix import InteractionMatrix
from basketrec.exceptions import AlgorithmTrainingError, InsufficientDataError
from basketrec.recommender.base import Recommender

# Configure module logger
logger = logging.getLogger(__name__)

SeedLike = Union[int, np.random.SeedSequence]

RESULT_COLUMNS = [
    "algorithm",
    "n",
    "tp",
    "fp",
    "fn",
    "tn",
    "precision",
    "recall",
    "tpr",
    "fpr",
    "n_rows",
]


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


@dataclass(frozen=True)
class ConfusionCounts:
    """Confusion counts of top-N predictions against held-out items."""

    tp: int = 0
    fp: int = 0
    fn: int = 0
    tn: int = 0

    def __add__(self, other: "ConfusionCounts") -> "ConfusionCounts":
        return ConfusionCounts(
            tp=self.tp + other.tp,
            fp=self.fp + other.fp,
            fn=self.fn + other.fn,
            tn=self.tn + other.tn,
        )

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.fn + self.tn

    @property
    def precision(self) -> float:
        return _ratio(self.tp, self.tp + self.fp)

    @property
    def recall(self) -> float:
        return _ratio(self.tp, self.tp + self.fn)

    @property
    def tpr(self) -> float:
        return self.recall

    @property
    def fpr(self) -> float:
        return _ratio(self.fp, self.fp + self.tn)


def confusion_counts(recommended: Iterable[int], hidden: Iterable[int], n_columns: int) -> ConfusionCounts:
    """Score one top-N list against one row's held-out items.

    Every column that is neither recommended nor held out (visible cart
    items included) counts as a true negative, so the four counts always
    add up to ``n_columns``.
    """
    recommended = set(recommended)
    hidden = set(hidden)
    tp = len(recommended & hidden)
    fp = len(recommended) - tp
    fn = len(hidden) - tp
    return ConfusionCounts(tp=tp, fp=fp, fn=fn, tn=n_columns - tp - fp - fn)


@dataclass(frozen=True, eq=False)
class TrainTestSplit:
    train: InteractionMatrix
    test: InteractionMatrix


def split_train_test(
    matrix: InteractionMatrix,
    train_fraction: float = 0.9,
    seed: SeedLike = 42,
) -> TrainTestSplit:
    """Randomly assign rows to a train and a test matrix.

    The test matrix always gets at least one row; the train matrix may end
    up empty on tiny inputs, which the algorithms report when training.

    Raises:
        InsufficientDataError: If the matrix has no rows.
    """
    n_rows = matrix.n_rows
    if n_rows == 0:
        raise InsufficientDataError("split", "matrix has no rows to split")

    n_train = min(int(round(train_fraction * n_rows)), n_rows - 1)
    order = np.random.default_rng(seed).permutation(n_rows)

    return TrainTestSplit(
        train=matrix.take_rows(np.sort(order[:n_train])),
        test=matrix.take_rows(np.sort(order[n_train:])),
    )


@dataclass(frozen=True)
class GivenSplit:
    """Column indices shown to the algorithm and kept back for scoring."""

    visible: Tuple[int, ...]
    hidden: Tuple[int, ...]


def split_given(items: np.ndarray, policy: GivenPolicy, rng: np.random.Generator) -> Optional[GivenSplit]:
    """Hide part of one basket according to the policy.

    Returns:
        The visible/hidden split, or None when the basket is too small for
        the policy to hide at least one item.
    """
    n_hidden = policy.hidden_count(len(items))
    if n_hidden is None:
        return None
    shuffled = rng.permutation(np.asarray(items))
    return GivenSplit(
        visible=tuple(sorted(int(i) for i in shuffled[n_hidden:])),
        hidden=tuple(sorted(int(i) for i in shuffled[:n_hidden])),
    )


@dataclass(frozen=True, eq=False)
class EvaluationResult:
    """Comparison table and bookkeeping of one evaluation run.

    Attributes:
        table: One row per (algorithm, n) with summed confusion counts and
            the derived precision, recall, tpr and fpr.
        training_errors: Algorithms that could not be trained.
        prediction_errors: Number of failed test-row predictions per algorithm.
        skipped_rows: Test rows too small for the given policy.
        train_rows: Rows in the training matrix.
        test_rows: Rows in the test matrix.
        n_columns: Column count of the matrix.
        timings: Train and predict seconds per algorithm.
    """

    table: pd.DataFrame
    training_errors: Dict[str, AlgorithmTrainingError] = field(default_factory=dict)
    prediction_errors: Dict[str, int] = field(default_factory=dict)
    skipped_rows: int = 0
    train_rows: int = 0
    test_rows: int = 0
    n_columns: int = 0
    timings: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @property
    def algorithms(self) -> Tuple[str, ...]:
        return tuple(self.table["algorithm"].unique())

    def for_algorithm(self, name: str) -> pd.DataFrame:
        return self.table.loc[self.table["algorithm"] == name].reset_index(drop=True)


def _prepare_test_rows(
    test: InteractionMatrix,
    policy: GivenPolicy,
    seed: SeedLike,
) -> Tuple[List[GivenSplit], int]:
    rng = np.random.default_rng(seed)
    splits: List[GivenSplit] = []
    skipped = 0
    for row in range(test.n_rows):
        given = split_given(test.row_items(row), policy, rng)
        if given is None:
            skipped += 1
        else:
            splits.append(given)
    return splits, skipped


def evaluate(
    matrix: InteractionMatrix,
    algorithms: Mapping[str, Recommender],
    config: Optional[EvaluationConfig] = None,
) -> EvaluationResult:
    """Compare algorithms on one train/test split of a matrix.

    Every algorithm sees the same split and the same hidden items. An
    algorithm that fails to train is recorded in ``training_errors`` and the
    remaining algorithms are still evaluated; a failing prediction for a
    single test row is logged, counted and left out of the sums.

    Args:
        matrix: Interaction matrix to split.
        algorithms: Untrained algorithms keyed by the name used in the table.
        config: Evaluation parameters, defaults to EvaluationConfig().

    Returns:
        EvaluationResult with one table row per (algorithm, cutoff).

    Raises:
        InsufficientDataError: If no test row can be evaluated.

    Example:
        >>> result = evaluate(matrix, default_catalog().defaults())
        >>> print(result.table.query("n == 5"))
    """
    config = config or EvaluationConfig()
    split_seed, given_seed = np.random.SeedSequence(config.seed).spawn(2)

    split = split_train_test(matrix, config.train_fraction, split_seed)
    test_rows, skipped = _prepare_test_rows(split.test, config.given, given_seed)

    logger.info(
        "Starting evaluation",
        extra={
            "algorithms": list(algorithms),
            "train_rows": split.train.n_rows,
            "test_rows": split.test.n_rows,
            "evaluated_rows": len(test_rows),
            "skipped_rows": skipped,
            "cutoffs": list(config.cutoffs),
            "seed": config.seed,
        },
    )

    if skipped:
        logger.warning(f"Skipped {skipped} test rows too small for the given policy")
    if not test_rows:
        raise InsufficientDataError(
            "evaluation",
            "no test row is large enough for the given policy",
            details={"test_rows": split.test.n_rows, "skipped_rows": skipped},
        )

    n_columns = matrix.n_columns
    visible_vectors = np.zeros((len(test_rows), n_columns), dtype=np.float32)
    for i, given in enumerate(test_rows):
        visible_vectors[i, list(given.visible)] = 1.0

    records = []
    training_errors: Dict[str, AlgorithmTrainingError] = {}
    prediction_errors: Dict[str, int] = {}
    timings: Dict[str, Dict[str, float]] = {}

    for name, algorithm in algorithms.items():
        train_start = time.time()
        try:
            model = algorithm.train(split.train)
        except AlgorithmTrainingError as e:
            logger.error(
                "Algorithm training failed",
                extra={"algorithm": name, "error": str(e)},
            )
            training_errors[name] = e
            continue
        train_time = time.time() - train_start

        predict_start = time.time()
        totals = {n: ConfusionCounts() for n in config.cutoffs}
        n_scored = 0
        n_failed = 0

        for given, vector in zip(test_rows, visible_vectors):
            try:
                recommendation = model.recommend(vector, config.max_cutoff)
            except Exception as e:
                n_failed += 1
                logger.error(
                    "Prediction failed",
                    extra={"algorithm": name, "error": str(e), "error_type": type(e).__name__},
                )
                continue

            ranked = [split.train.column_index(item) for item in recommendation.items]
            for n in config.cutoffs:
                totals[n] = totals[n] + confusion_counts(ranked[:n], given.hidden, n_columns)
            n_scored += 1

        prediction_errors[name] = n_failed
        timings[name] = {
            "train_seconds": round(train_time, 4),
            "predict_seconds": round(time.time() - predict_start, 4),
        }

        for n, counts in totals.items():
            records.append(
                {
                    "algorithm": name,
                    "n": n,
                    "tp": counts.tp,
                    "fp": counts.fp,
                    "fn": counts.fn,
                    "tn": counts.tn,
                    "precision": counts.precision,
                    "recall": counts.recall,
                    "tpr": counts.tpr,
                    "fpr": counts.fpr,
                    "n_rows": n_scored,
                }
            )

        logger.info(
            "Evaluated algorithm",
            extra={"algorithm": name, "rows_scored": n_scored, "rows_failed": n_failed, **timings[name]},
        )

    return EvaluationResult(
        table=pd.DataFrame(records, columns=RESULT_COLUMNS),
        training_errors=training_errors,
        prediction_errors=prediction_errors,
        skipped_rows=skipped,
        train_rows=split.train.n_rows,
        test_rows=split.test.n_rows,
        n_columns=n_columns,
        timings=timings,
    )
