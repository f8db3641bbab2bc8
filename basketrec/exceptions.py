"""Custom exceptions for BasketRec.

Defines specific exception types for better error handling and reporting.
"""

from typing import Any, Dict, Iterable, Optional


class BasketRecException(Exception):
    """Base exception for BasketRec errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __reduce__(self):
        # Subclass constructors take different arguments; restore from state
        return (_restore, (self.__class__, self.args, self.__dict__))


class DataIntegrityError(BasketRecException):
    """Raised when order lines reference products missing from the catalog."""

    def __init__(
        self,
        message: str,
        missing_product_ids: Optional[Iterable[Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.missing_product_ids = sorted(missing_product_ids or [])
        merged = {"missing_product_ids": self.missing_product_ids}
        merged.update(details or {})
        super().__init__(message=message, details=merged)


class InsufficientDataError(BasketRecException):
    """Raised when a stage leaves no usable rows or columns."""

    def __init__(self, stage: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.stage = stage
        merged = {"stage": stage}
        merged.update(details or {})
        super().__init__(message=f"{stage}: {message}", details=merged)


class AlgorithmTrainingError(BasketRecException):
    """Raised when an algorithm cannot be fitted on the given matrix."""

    def __init__(self, algorithm: str, error: Any):
        self.algorithm = algorithm
        message = f"Failed to train algorithm '{algorithm}': {str(error)}"
        super().__init__(
            message=message,
            details={
                "algorithm": algorithm,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class ConfigurationError(BasketRecException):
    """Raised when a parameter is outside its allowed range."""

    def __init__(self, parameter: str, value: Any, reason: str):
        self.parameter = parameter
        self.value = value
        message = f"Invalid value for '{parameter}': {value!r} ({reason})"
        super().__init__(
            message=message,
            details={"parameter": parameter, "value": value, "reason": reason},
        )


def _restore(cls, args, state):
    error = cls.__new__(cls)
    Exception.__init__(error, *args)
    error.__dict__.update(state)
    return error
