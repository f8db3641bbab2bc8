"""BasketRec: market-basket recommender comparison toolkit.

This package turns retail order logs into a sparse order x item interaction
matrix and compares top-N recommendation algorithms on it.

Modules:
    data: transaction loading, frequency profiling, basket sampling and
        interaction matrix construction
    recommender: recommendation algorithms, evaluation harness and
        hyperparameter grid runner
    pipeline: end-to-end orchestration of the data stages
"""

__version__ = "0.1.0"
