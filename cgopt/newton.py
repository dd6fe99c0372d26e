"""Truncated-Newton (Newton-CG) minimization.

Each outer iteration solves the Newton system ``H(x) p = -g(x)`` only
approximately: conjugate gradients run on the Hessian-vector operator with
the forcing tolerance ``min(forcing, sqrt(|g|)) * |g|`` and an iteration cap.
The step is damped while the trial point is out of the caller's domain and
refined by the derivative line search when the damped step overshoots.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .core import (
    DEFAULT_GRADIENT_TOLERANCE,
    Array,
    DomainPredicate,
    VectorFunction,
    VectorLike,
    as_vector,
    evaluate_gradient,
)
from .criteria import CriterionLike, GradientNormCriterion, as_criterion
from .krylov import LinearSolveOptions, linear_solve
from .line_search import derivative_line_search
from .logging import get_logger
from .operators import TensorLike, operator_at

logger = get_logger(__name__)


@dataclass(frozen=True)
class TruncatedNewtonMinimizeOptions:
    """Options for :func:`truncated_newton_minimize`.

    Attributes:
        stop_criterion: Criterion over the gradient; a float is read as a
            gradient-norm tolerance.
        max_iterations: Budget of outer Newton iterations.
        inner_max_iterations: Cap on the inner CG iterations, ``None`` for
            the problem dimension.
        forcing: Upper bound on the relative inner residual.
        line_search_threshold: Relative directional-derivative reduction
            that accepts a (damped) step.
        damping_factor: Step shrink factor applied while out of domain.
    """

    stop_criterion: CriterionLike = field(
        default_factory=lambda: GradientNormCriterion(DEFAULT_GRADIENT_TOLERANCE)
    )
    max_iterations: int = 200
    inner_max_iterations: Optional[int] = None
    forcing: float = 0.5
    line_search_threshold: float = 0.5
    damping_factor: float = 0.5


def _validate(options: TruncatedNewtonMinimizeOptions) -> None:
    if options.max_iterations < 0:
        raise ValueError("max_iterations must be non-negative")
    if options.inner_max_iterations is not None and options.inner_max_iterations < 1:
        raise ValueError("inner_max_iterations must be at least 1")
    if not (0 < options.forcing < 1):
        raise ValueError("forcing must lie in (0, 1)")
    if not (0 < options.line_search_threshold < 1):
        raise ValueError("line_search_threshold must lie in (0, 1)")
    if not (0 < options.damping_factor < 1):
        raise ValueError("damping_factor must lie in (0, 1)")


def truncated_newton_minimize(
    df: VectorFunction,
    d2f: TensorLike,
    w0: VectorLike,
    out_of_domain: Optional[DomainPredicate] = None,
    options: Optional[TruncatedNewtonMinimizeOptions] = None,
    preconditioner: Optional[TensorLike] = None,
) -> Array:
    """Minimize a smooth function from its gradient and Hessian-vector products.

    Parameters
    ----------
    df:
        Gradient of the objective.
    d2f:
        ``x -> H(x)`` returning the Hessian at ``x`` as an operator, a matrix
        or an ``v -> H v`` callable. A fixed operator or matrix is also
        accepted.
    w0:
        Starting point, inside the domain.
    out_of_domain:
        Predicate returning True for points outside the objective's domain.
    options:
        Stopping criterion, budgets and damping.
    preconditioner:
        Operator approximating ``H^{-1}`` for the inner solves, or an
        ``x -> operator`` callable.
    """
    options = options or TruncatedNewtonMinimizeOptions()
    _validate(options)
    stop = as_criterion(options.stop_criterion)

    x = as_vector(w0, "w0")
    inner_cap = options.inner_max_iterations or max(x.shape[0], 1)
    grad = evaluate_gradient(df, x)
    ngev = 1
    nit = 0
    message = "maximum iterations reached"
    while True:
        if stop(grad, nit):
            message = "stopping criterion satisfied"
            break
        if nit >= options.max_iterations:
            break
        grad_norm = float(np.linalg.norm(grad))
        eta = min(options.forcing, np.sqrt(grad_norm))
        M = None if preconditioner is None else operator_at(preconditioner, x)
        step = linear_solve(
            operator_at(d2f, x),
            -grad,
            np.zeros_like(x),
            LinearSolveOptions(tolerance=eta * grad_norm),
            max_iterations=inner_cap,
            preconditioner=M,
        )
        newton_step = True
        if not float(grad @ step) < 0:
            # Negative curvature on the first CG direction leaves step at zero.
            step = -grad if M is None else -M.apply(grad)
            newton_step = False
        alpha, ls_evals = derivative_line_search(
            df,
            x,
            step,
            threshold=options.line_search_threshold,
            alpha0=1.0,
            out_of_domain=out_of_domain,
            shrink=options.damping_factor,
            grad_x=grad,
        )
        ngev += ls_evals
        x_new = x + alpha * step
        if alpha == 0.0 or np.array_equal(x_new, x):
            if newton_step:
                logger.debug("Newton step stalled, falling back to steepest descent")
                step = -grad if M is None else -M.apply(grad)
                alpha, ls_evals = derivative_line_search(
                    df,
                    x,
                    step,
                    threshold=options.line_search_threshold,
                    alpha0=1.0,
                    out_of_domain=out_of_domain,
                    shrink=options.damping_factor,
                    grad_x=grad,
                )
                ngev += ls_evals
                x_new = x + alpha * step
            if alpha == 0.0 or np.array_equal(x_new, x):
                message = "step made no progress"
                break
        x = x_new
        grad = evaluate_gradient(df, x)
        ngev += 1
        nit += 1

    logger.debug(
        "truncated Newton: %s after %d iterations (%d gradient evaluations), |g|=%.3e",
        message,
        nit,
        ngev,
        float(np.linalg.norm(grad)),
    )
    return x


__all__ = ["TruncatedNewtonMinimizeOptions", "truncated_newton_minimize"]
