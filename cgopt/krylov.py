"""Conjugate-gradient solver for symmetric linear systems.

Solves ``A x = b`` for a symmetric, ideally positive-definite operator ``A``
given only through its action on vectors. An optional preconditioner ``M``
approximating ``A^{-1}`` turns the recurrence into preconditioned CG.

The solver never raises on indefinite operators: a non-positive curvature
``p^T A p <= 0`` along the current search direction ends the solve and the
current iterate is returned. Truncated Newton relies on this, and on the
optional iteration cap that stops the solve early.

References:
    - Nocedal & Wright, *Numerical Optimization* (2006), Algorithms 5.2 and 7.1
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .core import (
    DEFAULT_RESIDUAL_TOLERANCE,
    Array,
    VectorLike,
    as_vector,
    check_same_length,
)
from .logging import get_logger
from .operators import OperatorLike, as_operator

logger = get_logger(__name__)


@dataclass(frozen=True)
class LinearSolveOptions:
    """Options for :func:`linear_solve`.

    Attributes:
        tolerance: Absolute bound on the residual norm ``||A x - b||``.
        max_iterations: Iteration budget. ``None`` means twice the system
            dimension.
    """

    tolerance: float = DEFAULT_RESIDUAL_TOLERANCE
    max_iterations: Optional[int] = None


def linear_solve(
    A: OperatorLike,
    b: VectorLike,
    x0: Optional[VectorLike] = None,
    options: Optional[LinearSolveOptions] = None,
    max_iterations: Optional[int] = None,
    preconditioner: Optional[OperatorLike] = None,
) -> Array:
    """Solve ``A x = b`` by (preconditioned) conjugate gradients.

    Parameters
    ----------
    A:
        Symmetric linear operator, matrix or ``x -> A x`` callable.
    b:
        Right-hand side.
    x0:
        Initial guess, zero when omitted.
    options:
        Tolerance and default iteration budget.
    max_iterations:
        Early-exit cap overriding ``options.max_iterations``.
    preconditioner:
        Operator approximating ``A^{-1}``; identity when omitted.

    Returns
    -------
    ndarray
        The iterate meeting the tolerance, or the last iterate when the
        budget ran out or non-positive curvature was met.
    """
    options = options or LinearSolveOptions()
    if options.tolerance < 0:
        raise ValueError("tolerance must be non-negative")
    op = as_operator(A)
    M = None if preconditioner is None else as_operator(preconditioner)
    rhs = as_vector(b, "b")
    x = np.zeros_like(rhs) if x0 is None else as_vector(x0, "x0")
    check_same_length(rhs, x, ("b", "x0"))
    n = rhs.shape[0]

    if max_iterations is None:
        max_iterations = options.max_iterations
    if max_iterations is None:
        max_iterations = 2 * n
    if max_iterations < 0:
        raise ValueError("max_iterations must be non-negative")

    r = rhs - op.apply(x)
    r_norm = float(np.linalg.norm(r))
    if r_norm < options.tolerance or n == 0:
        return x
    z = r if M is None else M.apply(r)
    p = z.copy()
    rz = float(r @ z)

    nit = 0
    reason = "maximum iterations reached"
    while nit < max_iterations:
        Ap = op.apply(p)
        curvature = float(p @ Ap)
        if curvature <= 0.0 or not np.isfinite(curvature):
            reason = "non-positive curvature"
            break
        alpha = rz / curvature
        x = x + alpha * p
        r = r - alpha * Ap
        nit += 1
        r_norm = float(np.linalg.norm(r))
        if r_norm < options.tolerance:
            reason = "residual tolerance satisfied"
            break
        z = r if M is None else M.apply(r)
        rz_new = float(r @ z)
        if rz_new <= 0.0:
            # Preconditioner is not positive definite along r.
            reason = "non-positive preconditioned residual"
            break
        beta = rz_new / rz
        rz = rz_new
        p = z + beta * p

    logger.debug("CG stopped after %d iterations (%s), residual %.3e", nit, reason, r_norm)
    return x


__all__ = ["LinearSolveOptions", "linear_solve"]
