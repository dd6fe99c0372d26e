"""Nonlinear conjugate-gradient minimization with a derivative line search.

Uses the Polak-Ribiere-plus update with optional preconditioning::

    z = M g,   beta = max(0, g_new . (z_new - z) / (g . z)),   d = -z_new + beta d

The direction is reset to the (preconditioned) steepest-descent direction
when ``beta`` clips to zero, every ``restart_interval`` iterations and
whenever the conjugate direction fails to be a descent direction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .core import (
    DEFAULT_GRADIENT_TOLERANCE,
    Array,
    DomainPredicate,
    ScalarFunction,
    VectorFunction,
    VectorLike,
    as_vector,
    evaluate_gradient,
)
from .criteria import CriterionLike, GradientNormCriterion, as_criterion
from .line_search import derivative_line_search
from .logging import get_logger
from .operators import TensorLike, operator_at

logger = get_logger(__name__)


@dataclass(frozen=True)
class LineSearchMinimizeOptions:
    """Options for :func:`line_search_minimize`.

    Attributes:
        stop_criterion: Criterion over the gradient; a float is read as a
            gradient-norm tolerance.
        max_iterations: Budget of line searches.
        line_search_threshold: Relative accuracy of each line search on the
            directional derivative.
        restart_interval: Iterations between steepest-descent restarts,
            ``None`` for the problem dimension.
    """

    stop_criterion: CriterionLike = field(
        default_factory=lambda: GradientNormCriterion(DEFAULT_GRADIENT_TOLERANCE)
    )
    max_iterations: int = 1000
    line_search_threshold: float = 1e-6
    restart_interval: Optional[int] = None

    @staticmethod
    def gradient_norm_criterion(tol: float) -> GradientNormCriterion:
        return GradientNormCriterion(tol)


def _validate(options: LineSearchMinimizeOptions) -> None:
    if options.max_iterations < 0:
        raise ValueError("max_iterations must be non-negative")
    if options.line_search_threshold <= 0:
        raise ValueError("line_search_threshold must be positive")
    if options.restart_interval is not None and options.restart_interval < 1:
        raise ValueError("restart_interval must be at least 1")


def _initial_step(
    alpha_prev: Optional[float], slope_prev: float, slope: float, d: Array
) -> float:
    """Reuse the previous first-order change as in Nocedal & Wright (3.60).

    Without history the first trial moves at most a unit distance.
    """
    d_norm = float(np.linalg.norm(d))
    fallback = 1.0 if d_norm <= 1.0 else 1.0 / d_norm
    if alpha_prev is None or alpha_prev <= 0:
        return fallback
    alpha0 = alpha_prev * slope_prev / slope
    if not np.isfinite(alpha0) or alpha0 <= 0:
        return fallback
    return float(alpha0)


def line_search_minimize(
    f: Optional[ScalarFunction],
    df: VectorFunction,
    w0: VectorLike,
    options: Optional[LineSearchMinimizeOptions] = None,
    out_of_domain: Optional[DomainPredicate] = None,
    preconditioner: Optional[TensorLike] = None,
) -> Array:
    """Minimize a smooth function by nonlinear conjugate gradients.

    Parameters
    ----------
    f:
        Objective. Only evaluated for diagnostics; every decision is taken
        from ``df``.
    df:
        Gradient of the objective.
    w0:
        Starting point, inside the domain when ``out_of_domain`` is given.
    options:
        Stopping criterion, budgets and line-search accuracy.
    out_of_domain:
        Predicate flagging points where ``df`` must not be evaluated.
    preconditioner:
        Operator approximating the inverse Hessian, or an ``x -> operator``
        callable evaluated at every iterate.

    Returns
    -------
    ndarray
        The last iterate.
    """
    options = options or LineSearchMinimizeOptions()
    _validate(options)
    stop = as_criterion(options.stop_criterion)

    def precondition(grad: Array, point: Array) -> Array:
        if preconditioner is None:
            return grad
        return operator_at(preconditioner, point).apply(grad)

    x = as_vector(w0, "w0")
    restart_interval = options.restart_interval or max(x.shape[0], 1)
    grad = evaluate_gradient(df, x)
    z = precondition(grad, x)
    gz = float(grad @ z)
    d = -z

    nit = 0
    since_restart = 0
    alpha_prev: Optional[float] = None
    slope_prev = 0.0
    ngev = 1
    message = "maximum iterations reached"
    while True:
        if stop(grad, nit):
            message = "stopping criterion satisfied"
            break
        if nit >= options.max_iterations:
            break
        slope = float(grad @ d)
        if not slope < 0:
            d = -z
            slope = -gz
            since_restart = 0
            if not slope < 0:
                message = "preconditioned gradient is not a descent direction"
                break
        alpha, ls_evals = derivative_line_search(
            df,
            x,
            d,
            threshold=options.line_search_threshold,
            alpha0=_initial_step(alpha_prev, slope_prev, slope, d),
            out_of_domain=out_of_domain,
            grad_x=grad,
        )
        ngev += ls_evals
        x_new = x + alpha * d
        if alpha == 0.0 or np.array_equal(x_new, x):
            if since_restart == 0:
                message = "line search made no progress"
                break
            d = -z
            since_restart = 0
            alpha_prev = None
            continue
        x = x_new
        nit += 1
        since_restart += 1

        grad_new = evaluate_gradient(df, x)
        ngev += 1
        z_new = precondition(grad_new, x)
        gz_new = float(grad_new @ z_new)
        beta = max(0.0, float(grad_new @ (z_new - z)) / gz) if gz > 0 else 0.0
        if beta == 0.0 or since_restart >= restart_interval:
            d = -z_new
            since_restart = 0
        else:
            d = -z_new + beta * d
        alpha_prev, slope_prev = alpha, slope
        grad, z, gz = grad_new, z_new, gz_new

    if logger.isEnabledFor(logging.DEBUG):
        fun = float(f(x)) if f is not None else float("nan")
        logger.debug(
            "nonlinear CG: %s after %d iterations (%d gradient evaluations), f=%.6e, |g|=%.3e",
            message,
            nit,
            ngev,
            fun,
            float(np.linalg.norm(grad)),
        )
    return x


__all__ = ["LineSearchMinimizeOptions", "line_search_minimize"]
