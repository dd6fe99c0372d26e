"""Core types and vector helpers shared across the solvers.

Vectors are one-dimensional ``float64`` NumPy arrays. User callables may
return lists, tuples, arrays or lazily generated iterables; :func:`as_vector`
materializes them exactly once.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable, Union

import numpy as np

Array = np.ndarray
VectorLike = Union[np.ndarray, Iterable[float]]
ScalarFunction = Callable[[Array], float]
VectorFunction = Callable[[Array], VectorLike]
DomainPredicate = Callable[[Array], bool]

DEFAULT_GRADIENT_TOLERANCE = 1e-8
DEFAULT_RESIDUAL_TOLERANCE = 1e-10


class Status(Enum):
    """Exit status of a constrained solve."""

    OPTIMAL = "optimal"
    MAX_ITER = "max_iter"


class DimensionMismatchError(ValueError):
    """Raised when vectors or operators of incompatible sizes are combined."""


def as_vector(values: VectorLike, name: str = "vector") -> Array:
    """Return ``values`` as a new one-dimensional float array.

    Generators and other iterables are consumed once. Scalars and
    multi-dimensional arrays are rejected.
    """
    if isinstance(values, np.ndarray):
        out = np.array(values, dtype=float)
    elif isinstance(values, (list, tuple)):
        out = np.asarray(values, dtype=float)
    else:
        try:
            out = np.fromiter(values, dtype=float)
        except TypeError as exc:
            raise TypeError(f"{name} must be a sequence of real numbers") from exc
    if out.ndim != 1:
        raise DimensionMismatchError(f"{name} must be one-dimensional, got shape {out.shape}")
    return out


def vector_from_function(entry: Callable[[int], float], n: int) -> Array:
    """Materialize ``[entry(0), ..., entry(n - 1)]`` into a vector."""
    if n < 0:
        raise ValueError("n must be non-negative")
    return np.fromiter((entry(i) for i in range(n)), dtype=float, count=n)


def check_same_length(a: Array, b: Array, names: tuple[str, str] = ("a", "b")) -> None:
    """Fail fast when two vectors differ in length."""
    if a.shape != b.shape:
        raise DimensionMismatchError(
            f"{names[0]} has length {a.shape[0]} but {names[1]} has length {b.shape[0]}"
        )


def evaluate_gradient(df: VectorFunction, x: Array, name: str = "gradient") -> Array:
    """Evaluate a vector function and check the result against ``x``."""
    grad = as_vector(df(x), name)
    check_same_length(grad, x, (name, "x"))
    return grad


def never_out_of_domain(_: Array) -> bool:
    """Domain predicate for unconstrained problems."""
    return False


__all__ = [
    "Array",
    "VectorLike",
    "ScalarFunction",
    "VectorFunction",
    "DomainPredicate",
    "DEFAULT_GRADIENT_TOLERANCE",
    "DEFAULT_RESIDUAL_TOLERANCE",
    "Status",
    "DimensionMismatchError",
    "as_vector",
    "vector_from_function",
    "check_same_length",
    "evaluate_gradient",
    "never_out_of_domain",
]
