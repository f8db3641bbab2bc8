"""Algorithm catalog.

Each algorithm variant has a pydantic spec holding its parameters; the
``AlgorithmSpec`` union is the closed set of variants. An AlgorithmCatalog is
passed explicitly to whatever needs to build algorithms by name.
"""

import logging
from abc import ABC, abstractmethod
from typing import Annotated, Any, Dict, Iterable, Literal, Optional, Type, Union

from pydantic import Field, TypeAdapter, ValidationError

from basketrec.config import DEFAULT_SEED, ConfigModel, configuration_error, validate_config
from basketrec.exceptions import ConfigurationError
from basketrec.recommender.algorithms import (
    DEFAULT_CONFIDENCE,
    DEFAULT_IBCF_K,
    DEFAULT_MAX_RULE_LEN,
    DEFAULT_SIMILARITY,
    DEFAULT_SUPPORT,
    DEFAULT_UBCF_NN,
    AssociationRuleRecommender,
    ItemBasedCF,
    PopularityRecommender,
    RandomRecommender,
    UserBasedCF,
)
from basketrec.recommender.base import Recommender

# Configure module logger
logger = logging.getLogger(__name__)


class _Spec(ConfigModel, ABC):
    @abstractmethod
    def build(self) -> Recommender:
        """Untrained algorithm configured with this spec's parameters."""

    def label(self) -> str:
        """Readable identifier such as ``ubcf(method=cosine, nn=50)``."""
        params = self.model_dump(exclude={"name"})
        if not params:
            return self.name
        rendered = ", ".join(f"{key}={value}" for key, value in sorted(params.items()))
        return f"{self.name}({rendered})"


class RandomSpec(_Spec):
    name: Literal["random"] = "random"
    seed: int = Field(default=DEFAULT_SEED, ge=0)

    def build(self) -> Recommender:
        return RandomRecommender(seed=self.seed)


class PopularitySpec(_Spec):
    name: Literal["popular"] = "popular"

    def build(self) -> Recommender:
        return PopularityRecommender()


class ItemBasedSpec(_Spec):
    name: Literal["ibcf"] = "ibcf"
    method: Literal["cosine", "jaccard"] = DEFAULT_SIMILARITY
    k: int = Field(default=DEFAULT_IBCF_K, ge=1)

    def build(self) -> Recommender:
        return ItemBasedCF(method=self.method, k=self.k)


class UserBasedSpec(_Spec):
    name: Literal["ubcf"] = "ubcf"
    method: Literal["cosine", "jaccard"] = DEFAULT_SIMILARITY
    nn: int = Field(default=DEFAULT_UBCF_NN, ge=1)
    weighted: bool = False

    def build(self) -> Recommender:
        return UserBasedCF(method=self.method, nn=self.nn, weighted=self.weighted)


class AssociationRulesSpec(_Spec):
    name: Literal["ar"] = "ar"
    support: float = Field(default=DEFAULT_SUPPORT, ge=0.0, le=1.0)
    confidence: float = Field(default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0)
    max_len: Optional[int] = Field(default=DEFAULT_MAX_RULE_LEN, ge=2)
    rank_by: Literal["confidence", "lift", "support"] = "confidence"

    def build(self) -> Recommender:
        return AssociationRuleRecommender(
            support=self.support,
            confidence=self.confidence,
            max_len=self.max_len,
            rank_by=self.rank_by,
        )


AlgorithmSpec = Annotated[
    Union[RandomSpec, PopularitySpec, ItemBasedSpec, UserBasedSpec, AssociationRulesSpec],
    Field(discriminator="name"),
]

_SPEC_ADAPTER = TypeAdapter(AlgorithmSpec)

ALL_SPECS = (RandomSpec, PopularitySpec, ItemBasedSpec, UserBasedSpec, AssociationRulesSpec)


def parse_spec(data: Dict[str, Any]) -> _Spec:
    """Parse a ``{"name": ..., **params}`` record into its spec.

    Raises:
        ConfigurationError: If the name is unknown or a parameter is invalid.
    """
    try:
        return _SPEC_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise configuration_error(e, "name") from e


class AlgorithmCatalog:
    """The algorithms available to an evaluation, keyed by name."""

    def __init__(self, specs: Iterable[Type[_Spec]] = ALL_SPECS):
        self._specs: Dict[str, Type[_Spec]] = {}
        for spec_cls in specs:
            name = spec_cls.model_fields["name"].default
            self._specs[name] = spec_cls

    @property
    def names(self):
        return tuple(self._specs)

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def spec(self, name: str, **params: Any) -> _Spec:
        """Validated spec for ``name`` with the given parameters.

        Raises:
            ConfigurationError: If the algorithm is not in the catalog or a
                parameter is invalid.
        """
        if name not in self._specs:
            raise ConfigurationError("algorithm", name, f"must be one of {self.names}")
        return validate_config(self._specs[name], **params)

    def build(self, name: str, **params: Any) -> Recommender:
        return self.spec(name, **params).build()

    def defaults(self) -> Dict[str, Recommender]:
        """One default-parameter instance of every algorithm."""
        return {name: self.build(name) for name in self.names}


def default_catalog() -> AlgorithmCatalog:
    """Catalog with every built-in algorithm."""
    return AlgorithmCatalog()
