"""Configuration models for BasketRec.

All tunable parameters of the data pipeline and the evaluation harness are
declared here as frozen pydantic models. Every field has a default, so an
empty constructor gives the standard analysis setup.
"""

import math
from typing import Any, Literal, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from basketrec.exceptions import ConfigurationError

# Pipeline defaults
DEFAULT_POPULARITY_CUTOFF = 0.5
DEFAULT_SAMPLE_SIZE = 20000
DEFAULT_MIN_BASKET_ITEMS = 3
DEFAULT_SEED = 42

# Evaluation defaults
DEFAULT_TRAIN_FRACTION = 0.9
DEFAULT_CUTOFFS = tuple(range(1, 11))
DEFAULT_MIN_VISIBLE = 1

ConfigT = TypeVar("ConfigT", bound=BaseModel)


def configuration_error(error: ValidationError, fallback: str) -> ConfigurationError:
    """Turn the first problem of a pydantic ValidationError into a ConfigurationError.

    Args:
        error: Validation failure raised by pydantic.
        fallback: Parameter name reported when the failure has no field
            location (model-level validators).
    """
    first = error.errors()[0]
    parameter = ".".join(str(part) for part in first["loc"]) or fallback
    return ConfigurationError(
        parameter=parameter,
        value=first.get("input"),
        reason=first["msg"],
    )


class ConfigModel(BaseModel):
    """Frozen configuration model reporting invalid values as ConfigurationError."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise configuration_error(e, type(self).__name__) from e


class PipelineConfig(ConfigModel):
    """Parameters of the Loader -> Profiler -> Sampler -> Matrix stages.

    Attributes:
        popularity_cutoff: Cumulative purchase share covered by the popular
            item vocabulary, in (0, 1].
        sample_size: Maximum number of orders drawn.
        min_basket_items: Baskets with fewer distinct popular items are dropped.
        seed: Seed of the order sampler.
        weighted: Build a weighted (line count) matrix instead of a binary one.
        normalization: Optional row normalization for the weighted matrix.
    """

    popularity_cutoff: float = Field(default=DEFAULT_POPULARITY_CUTOFF, gt=0.0, le=1.0)
    sample_size: int = Field(default=DEFAULT_SAMPLE_SIZE, ge=1)
    min_basket_items: int = Field(default=DEFAULT_MIN_BASKET_ITEMS, ge=1)
    seed: int = Field(default=DEFAULT_SEED, ge=0)
    weighted: bool = False
    normalization: Optional[Literal["center", "zscore"]] = None

    @model_validator(mode="after")
    def _normalization_needs_weights(self) -> "PipelineConfig":
        if self.normalization is not None and not self.weighted:
            raise ValueError("normalization is only defined for weighted matrices")
        return self


class GivenPolicy(ConfigModel):
    """Strategy deciding how many items of a test basket are hidden.

    ``kind`` selects the strategy:

    - ``all_but``: hide all but ``value`` items (``value`` items stay visible).
      ``all_but`` with ``value=1`` is the classic "given = -1" scheme.
    - ``fixed``: hide exactly ``value`` items.
    - ``fraction``: hide ``round(value * basket_size)`` items.

    Whatever the strategy, at least ``min_visible`` items stay visible and at
    least one item is hidden. Baskets too small for both are skipped.
    """

    kind: Literal["all_but", "fixed", "fraction"] = "all_but"
    value: float = 1
    min_visible: int = Field(default=DEFAULT_MIN_VISIBLE, ge=0)

    @model_validator(mode="after")
    def _check_value(self) -> "GivenPolicy":
        if self.kind == "fraction":
            if not 0.0 < self.value <= 1.0:
                raise ValueError("fraction must be in (0, 1]")
        else:
            if self.value != int(self.value) or self.value < 0:
                raise ValueError(f"{self.kind} needs a non-negative integer value")
            if self.kind == "fixed" and self.value < 1:
                raise ValueError("fixed must hide at least one item")
        return self

    @classmethod
    def all_but(cls, visible: int = 1, min_visible: int = DEFAULT_MIN_VISIBLE) -> "GivenPolicy":
        return cls(kind="all_but", value=visible, min_visible=min_visible)

    @classmethod
    def fixed(cls, hidden: int, min_visible: int = DEFAULT_MIN_VISIBLE) -> "GivenPolicy":
        return cls(kind="fixed", value=hidden, min_visible=min_visible)

    @classmethod
    def fraction(cls, share: float, min_visible: int = DEFAULT_MIN_VISIBLE) -> "GivenPolicy":
        return cls(kind="fraction", value=share, min_visible=min_visible)

    def hidden_count(self, basket_size: int) -> Optional[int]:
        """Number of items to hide from a basket, or None to skip it."""
        if self.kind == "all_but":
            hidden = basket_size - int(self.value)
        elif self.kind == "fixed":
            hidden = int(self.value)
        else:
            hidden = max(1, math.floor(self.value * basket_size + 0.5))

        hidden = min(hidden, basket_size - self.min_visible)
        if hidden < 1:
            return None
        return hidden


class EvaluationConfig(ConfigModel):
    """Parameters of the evaluation harness.

    Attributes:
        train_fraction: Share of rows used for training, in (0, 1).
        given: Hide strategy applied to every test row.
        cutoffs: Top-N list lengths to score, ascending and unique.
        seed: Seed of the train/test shuffle and of the hidden-item choice.
    """

    train_fraction: float = Field(default=DEFAULT_TRAIN_FRACTION, gt=0.0, lt=1.0)
    given: GivenPolicy = Field(default_factory=GivenPolicy)
    cutoffs: Tuple[int, ...] = DEFAULT_CUTOFFS
    seed: int = Field(default=DEFAULT_SEED, ge=0)

    @field_validator("cutoffs")
    @classmethod
    def _check_cutoffs(cls, value: Tuple[int, ...]) -> Tuple[int, ...]:
        if not value:
            raise ValueError("at least one cutoff is required")
        if any(n < 1 for n in value):
            raise ValueError("cutoffs must be positive")
        return tuple(sorted(set(value)))

    @property
    def max_cutoff(self) -> int:
        return self.cutoffs[-1]


def validate_config(model_cls: Type[ConfigT], **values: Any) -> ConfigT:
    """Build any pydantic model, reporting problems as ConfigurationError.

    ConfigModel subclasses already raise ConfigurationError themselves; this
    also covers plain BaseModel classes.

    Args:
        model_cls: Pydantic model class to instantiate.
        **values: Field values.

    Returns:
        The validated, frozen configuration.

    Raises:
        ConfigurationError: If any field is out of range.
    """
    try:
        return model_cls(**values)
    except ValidationError as e:
        raise configuration_error(e, model_cls.__name__) from e
