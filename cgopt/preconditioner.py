"""Jacobi preconditioners for barrier-augmented objectives.

For the barrier problem ``t f(x) + phi(x)`` with
``phi(x) = -sum_i log(-fc_i(x))`` the Hessian diagonal is::

    t * diag(f'')  +  sum_i ( dfc_i^2 / fc_i^2  -  diag(fc_i'') / fc_i )

The preconditioner is the element-wise inverse of that diagonal. It depends
on both ``t`` and ``x`` so it is rebuilt for every barrier stage and iterate.
"""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from .core import Array, ScalarFunction, VectorFunction, as_vector, check_same_length
from .operators import DiagonalOperator, TensorLike

IndexedScalarFunction = Callable[[int], ScalarFunction]
IndexedVectorFunction = Callable[[int], VectorFunction]
ConstrainedPreconditioner = Callable[[float], TensorLike]


def barrier_hessian_diagonal(
    x: Array,
    constraints_count: int,
    values: IndexedScalarFunction,
    gradients: IndexedVectorFunction,
    hessian_diagonals: Optional[IndexedVectorFunction] = None,
) -> Array:
    """Diagonal of the log-barrier Hessian at ``x``."""
    diag = np.zeros_like(x)
    for i in range(constraints_count):
        fc = float(values(i)(x))
        dfc = as_vector(gradients(i)(x), "constraint gradient")
        check_same_length(dfc, x, ("constraint gradient", "x"))
        diag += dfc * dfc / (fc * fc)
        if hessian_diagonals is not None:
            d2fc = as_vector(hessian_diagonals(i)(x), "constraint Hessian diagonal")
            check_same_length(d2fc, x, ("constraint Hessian diagonal", "x"))
            diag -= d2fc / fc
    return diag


def inverse_diagonal(diag: Array) -> DiagonalOperator:
    """Invert a diagonal, replacing non-positive or non-finite entries by 1."""
    safe = np.isfinite(diag) & (diag > 0.0)
    inv = np.ones_like(diag)
    inv[safe] = 1.0 / diag[safe]
    return DiagonalOperator(inv)


def jacobi_preconditioner(
    hessian_diagonal: VectorFunction,
    constraints_count: int,
    values: IndexedScalarFunction,
    gradients: IndexedVectorFunction,
    hessian_diagonals: Optional[IndexedVectorFunction] = None,
) -> ConstrainedPreconditioner:
    """Build the ``t -> x -> M`` Jacobi preconditioner of a barrier problem.

    Parameters
    ----------
    hessian_diagonal:
        ``x -> diag(f''(x))`` for the objective.
    constraints_count:
        Number of inequality constraints ``fc_i(x) <= 0``.
    values, gradients:
        ``i -> fc_i`` and ``i -> dfc_i``.
    hessian_diagonals:
        ``i -> diag(fc_i'')``; omitted for linear constraints.
    """
    if constraints_count < 0:
        raise ValueError("constraints_count must be non-negative")

    def at_scale(t: float) -> Callable[[Array], DiagonalOperator]:
        def at_point(x: Array) -> DiagonalOperator:
            d2fd = as_vector(hessian_diagonal(x), "Hessian diagonal")
            check_same_length(d2fd, x, ("Hessian diagonal", "x"))
            diag = t * d2fd + barrier_hessian_diagonal(
                x, constraints_count, values, gradients, hessian_diagonals
            )
            return inverse_diagonal(diag)

        return at_point

    return at_scale


__all__ = [
    "ConstrainedPreconditioner",
    "barrier_hessian_diagonal",
    "inverse_diagonal",
    "jacobi_preconditioner",
]
