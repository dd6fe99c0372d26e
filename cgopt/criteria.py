"""Pluggable stopping criteria for the iterative minimizers.

A criterion is evaluated once per outer iteration with the current gradient
and the number of completed iterations and returns True to stop.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Callable, Union

import numpy as np

from .core import Array


class StoppingCriterion(ABC):
    """Decides whether an iterative minimizer should stop."""

    @abstractmethod
    def __call__(self, grad: Array, nit: int) -> bool:
        """Return True when iteration should stop."""

    def __or__(self, other: "StoppingCriterion") -> "StoppingCriterion":
        return AnyCriterion(self, as_criterion(other))


class GradientNormCriterion(StoppingCriterion):
    """Stop once the Euclidean gradient norm drops below ``tol``."""

    def __init__(self, tol: float):
        if tol < 0:
            raise ValueError("tol must be non-negative")
        self.tol = float(tol)

    def __call__(self, grad: Array, nit: int) -> bool:
        return float(np.linalg.norm(grad)) < self.tol

    def __repr__(self) -> str:
        return f"GradientNormCriterion(tol={self.tol!r})"


class MaxIterationCriterion(StoppingCriterion):
    """Stop after ``maxiter`` completed iterations."""

    def __init__(self, maxiter: int):
        if maxiter < 0:
            raise ValueError("maxiter must be non-negative")
        self.maxiter = int(maxiter)

    def __call__(self, grad: Array, nit: int) -> bool:
        return nit >= self.maxiter

    def __repr__(self) -> str:
        return f"MaxIterationCriterion(maxiter={self.maxiter!r})"


class PredicateCriterion(StoppingCriterion):
    """Adapts a ``grad -> bool`` or ``(grad, nit) -> bool`` callable."""

    def __init__(self, predicate: Callable[..., bool]):
        self.predicate = predicate
        self._takes_nit = _accepts_two_arguments(predicate)

    def __call__(self, grad: Array, nit: int) -> bool:
        if self._takes_nit:
            return bool(self.predicate(grad, nit))
        return bool(self.predicate(grad))


class AnyCriterion(StoppingCriterion):
    """Stops as soon as one of the wrapped criteria does."""

    def __init__(self, *criteria: StoppingCriterion):
        self.criteria = tuple(criteria)

    def __call__(self, grad: Array, nit: int) -> bool:
        return any(criterion(grad, nit) for criterion in self.criteria)


CriterionLike = Union[StoppingCriterion, float, Callable[..., bool]]


def _accepts_two_arguments(func: Callable) -> bool:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    params = [
        p
        for p in sig.parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
    ]
    if any(p.kind == p.VAR_POSITIONAL for p in params):
        return True
    return len(params) >= 2


def as_criterion(criterion: CriterionLike) -> StoppingCriterion:
    """Coerce a tolerance, predicate or criterion into a :class:`StoppingCriterion`.

    A bare number is read as a gradient-norm tolerance.
    """
    if isinstance(criterion, StoppingCriterion):
        return criterion
    if isinstance(criterion, (int, float)) and not isinstance(criterion, bool):
        return GradientNormCriterion(float(criterion))
    if callable(criterion):
        return PredicateCriterion(criterion)
    raise TypeError(f"cannot interpret {type(criterion).__name__} as a stopping criterion")


def gradient_norm_criterion(tol: float) -> GradientNormCriterion:
    return GradientNormCriterion(tol)


__all__ = [
    "StoppingCriterion",
    "GradientNormCriterion",
    "MaxIterationCriterion",
    "PredicateCriterion",
    "AnyCriterion",
    "CriterionLike",
    "as_criterion",
    "gradient_norm_criterion",
]
