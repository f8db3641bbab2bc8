"""Hyperparameter grid runner.

Evaluates one algorithm over the cross product of a parameter grid. Every
combination gets its own evaluation run with an independently drawn seed,
so no single split decides the comparison.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import ParameterGrid

from basketrec.config import DEFAULT_SEED, EvaluationConfig
from basketrec.data.matrix import InteractionMatrix
from basketrec.exceptions import ConfigurationError
from basketrec.recommender.base import Recommender
from basketrec.recommender.catalog import AlgorithmCatalog, default_catalog
from basketrec.recommender.evaluate import EvaluationResult, evaluate

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class GridResult:
    """Evaluation results keyed by combination label.

    Attributes:
        results: EvaluationResult per combination, in grid order.
        params: Parameters of every combination.
        seeds: Evaluation seed used for every combination.
    """

    results: Dict[str, EvaluationResult]
    params: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    seeds: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def labels(self) -> List[str]:
        return list(self.results)

    @property
    def failed(self) -> List[str]:
        """Combinations where at least one algorithm failed to train."""
        return [label for label, result in self.results.items() if result.training_errors]

    def combined(self) -> pd.DataFrame:
        """All tables stacked, with a leading ``combination`` column."""
        frames = [
            result.table.assign(combination=label)
            for label, result in self.results.items()
        ]
        if not frames:
            return pd.DataFrame(columns=["combination"])
        table = pd.concat(frames, ignore_index=True)
        return table[["combination", *[c for c in table.columns if c != "combination"]]]


def _run_combination(
    matrix: InteractionMatrix,
    label: str,
    algorithm: Recommender,
    baselines: Mapping[str, Recommender],
    config: EvaluationConfig,
) -> EvaluationResult:
    algorithms = {label: algorithm, **baselines}
    return evaluate(matrix, algorithms, config)


def run_grid(
    matrix: InteractionMatrix,
    algorithm: str,
    param_grid: Mapping[str, Sequence[Any]],
    config: Optional[EvaluationConfig] = None,
    catalog: Optional[AlgorithmCatalog] = None,
    seed: int = DEFAULT_SEED,
    baselines: Optional[Mapping[str, Recommender]] = None,
    n_jobs: int = 1,
    backend: Optional[str] = None,
) -> GridResult:
    """Evaluate an algorithm for every combination of a parameter grid.

    Args:
        matrix: Interaction matrix shared by all runs.
        algorithm: Catalog name of the algorithm to tune.
        param_grid: Parameter name -> candidate values, as for sklearn's
            ParameterGrid, e.g. ``{"method": ["cosine", "jaccard"], "nn": [50, 500]}``.
        config: Evaluation parameters shared by every run; the seed is
            replaced by a per-combination seed.
        catalog: Algorithm catalog used to build the combinations.
        seed: Root seed the per-combination seeds are spawned from.
        baselines: Extra algorithms evaluated in every run next to the
            tuned one, e.g. ``{"popular": PopularityRecommender()}``.
        n_jobs: joblib worker count; combinations share no state.
        backend: Optional joblib backend name.

    Returns:
        GridResult with one EvaluationResult per combination.

    Raises:
        ConfigurationError: If the algorithm or a parameter value is invalid,
            or a baseline name collides with a combination label.
    """
    config = config or EvaluationConfig()
    catalog = catalog or default_catalog()
    baselines = dict(baselines or {})

    if algorithm not in catalog:
        raise ConfigurationError("algorithm", algorithm, f"must be one of {catalog.names}")

    combinations = list(ParameterGrid(dict(param_grid)))
    child_seeds = [
        int(child.generate_state(1)[0])
        for child in np.random.SeedSequence(seed).spawn(len(combinations))
    ]

    logger.info("=" * 60)
    logger.info(f"Grid search over {len(combinations)} combinations of '{algorithm}'")
    logger.info("=" * 60)

    jobs = []
    labels: List[str] = []
    params: Dict[str, Dict[str, Any]] = {}
    seeds: Dict[str, int] = {}
    for combination, child_seed in zip(combinations, child_seeds):
        spec = catalog.spec(algorithm, **combination)
        if "seed" in type(spec).model_fields and "seed" not in combination:
            spec = spec.model_copy(update={"seed": child_seed})

        label = spec.label()
        if label in params:
            raise ConfigurationError("param_grid", dict(param_grid), f"duplicate combination {label}")
        if label in baselines:
            raise ConfigurationError(
                "baselines", sorted(baselines), f"name collides with combination {label}"
            )

        labels.append(label)
        params[label] = dict(combination)
        seeds[label] = child_seed
        run_config = config.model_copy(update={"seed": child_seed})
        jobs.append(delayed(_run_combination)(matrix, label, spec.build(), baselines, run_config))

    outputs = Parallel(n_jobs=n_jobs, backend=backend)(jobs)
    results = dict(zip(labels, outputs))

    for label, result in results.items():
        if result.training_errors:
            logger.warning(
                f"Combination {label} had training failures",
                extra={"failed_algorithms": sorted(result.training_errors)},
            )

    logger.info(f"Grid search completed: {len(results)} result tables")

    return GridResult(results=results, params=params, seeds=seeds)
