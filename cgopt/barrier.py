"""
Logarithmic-barrier (interior-point) methods for inequality constraints.

Solves ``min f(x)`` subject to ``fc_i(x) <= 0`` by following the central
path: for ``t = t0, t0 mu, t0 mu^2, ...`` the barrier problem

    minimize  f(x) + phi(x) / t,   phi(x) = -sum_i log(-fc_i(x))

is solved by nonlinear conjugate gradients or truncated Newton, warm-started
from the previous stage. At the minimizer of stage ``t`` the multipliers
``lambda_i = -1 / (t fc_i(x))`` are dual feasible and the duality gap equals
``m / t``; the path is followed until that gap drops below the requested
tolerance.

The starting point must be strictly feasible (``fc_i(w0) < 0`` for every
``i``). This is not checked: the barrier is evaluated as given.

References:
    - Boyd & Vandenberghe, *Convex Optimization* (2004), Chapter 11
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .conjugate_gradient import LineSearchMinimizeOptions, line_search_minimize
from .core import (
    Array,
    DomainPredicate,
    ScalarFunction,
    Status,
    VectorFunction,
    VectorLike,
    as_vector,
    check_same_length,
    evaluate_gradient,
)
from .logging import get_logger
from .newton import TruncatedNewtonMinimizeOptions, truncated_newton_minimize
from .operators import FunctionOperator, LinearOperator, TensorLike, operator_at
from .preconditioner import (
    ConstrainedPreconditioner,
    IndexedScalarFunction,
    IndexedVectorFunction,
    barrier_hessian_diagonal,
    jacobi_preconditioner,
)

logger = get_logger(__name__)

IndexedTensorFunction = Callable[[int], TensorLike]
MultiplierFunction = Callable[[float], VectorFunction]


class Barrier(ABC):
    """Barrier term ``phi`` of an interior-point problem."""

    @abstractmethod
    def value(self, x: Array) -> float:
        """Return ``phi(x)``."""

    @abstractmethod
    def gradient(self, x: Array) -> Array:
        """Return the gradient of ``phi`` at ``x``."""

    def hessian(self, x: Array) -> LinearOperator:
        """Return the Hessian of ``phi`` at ``x`` as an operator."""
        raise NotImplementedError(f"{type(self).__name__} does not provide a Hessian")

    @property
    def has_hessian(self) -> bool:
        return True

    @abstractmethod
    def multipliers(self, t: float, x: Array) -> Array:
        """Lagrange multiplier estimates at barrier scale ``t``."""

    @abstractmethod
    def out_of_domain(self, x: Array) -> bool:
        """Return True when ``phi`` is undefined at ``x``."""


@dataclass(frozen=True)
class Constraint:
    """A single inequality ``value(x) <= 0`` with its derivatives."""

    value: ScalarFunction
    gradient: VectorFunction
    hessian: Optional[TensorLike] = None
    hessian_diagonal: Optional[VectorFunction] = None


class ConstraintFamily(Barrier):
    """Indexed family of inequality constraints ``fc(i)(x) <= 0``.

    Each argument after ``count`` maps an index in ``[0, count)`` to the
    callable for that constraint. Without ``hessians`` the constraints are
    taken to be linear. The family is its own log barrier.
    """

    def __init__(
        self,
        count: int,
        values: IndexedScalarFunction,
        gradients: IndexedVectorFunction,
        hessians: Optional[IndexedTensorFunction] = None,
        hessian_diagonals: Optional[IndexedVectorFunction] = None,
    ):
        if count < 0:
            raise ValueError("count must be non-negative")
        self.count = int(count)
        self.values = values
        self.gradients = gradients
        self.hessians = hessians
        self.hessian_diagonals = hessian_diagonals

    @classmethod
    def from_constraints(cls, constraints: Sequence[Constraint]) -> "ConstraintFamily":
        items = list(constraints)
        with_hessian = [c.hessian is not None for c in items]
        with_diagonal = [c.hessian_diagonal is not None for c in items]
        if any(with_hessian) and not all(with_hessian):
            raise ValueError("either all constraints or none must provide a Hessian")
        if any(with_diagonal) and not all(with_diagonal):
            raise ValueError("either all constraints or none must provide a Hessian diagonal")
        return cls(
            len(items),
            lambda i: items[i].value,
            lambda i: items[i].gradient,
            (lambda i: items[i].hessian) if items and all(with_hessian) else None,
            (lambda i: items[i].hessian_diagonal) if items and all(with_diagonal) else None,
        )

    def constraint_values(self, x: Array) -> Array:
        return np.array([float(self.values(i)(x)) for i in range(self.count)], dtype=float)

    def constraint_gradients(self, x: Array) -> Array:
        """Constraint gradients stacked as rows of a ``count x n`` matrix."""
        rows = np.zeros((self.count, x.shape[0]))
        for i in range(self.count):
            grad = as_vector(self.gradients(i)(x), "constraint gradient")
            check_same_length(grad, x, ("constraint gradient", "x"))
            rows[i] = grad
        return rows

    def value(self, x: Array) -> float:
        return float(-np.sum(np.log(-self.constraint_values(x))))

    def gradient(self, x: Array) -> Array:
        slack = -self.constraint_values(x)
        return self.constraint_gradients(x).T @ (1.0 / slack)

    def hessian(self, x: Array) -> LinearOperator:
        slack = -self.constraint_values(x)
        jac = self.constraint_gradients(x)
        curvature = [] if self.hessians is None else [
            operator_at(self.hessians(i), x) for i in range(self.count)
        ]

        def apply(v: Array) -> Array:
            out = jac.T @ ((jac @ v) / (slack * slack))
            for s_i, op in zip(slack, curvature):
                out = out + op.apply(v) / s_i
            return out

        return FunctionOperator(apply, size=x.shape[0])

    def hessian_diagonal(self, x: Array) -> Array:
        return barrier_hessian_diagonal(
            x, self.count, self.values, self.gradients, self.hessian_diagonals
        )

    def multipliers(self, t: float, x: Array) -> Array:
        return -1.0 / (t * self.constraint_values(x))

    def out_of_domain(self, x: Array) -> bool:
        return any(float(self.values(i)(x)) >= 0.0 for i in range(self.count))

    def jacobi_preconditioner(self, hessian_diagonal: VectorFunction) -> ConstrainedPreconditioner:
        return jacobi_preconditioner(
            hessian_diagonal, self.count, self.values, self.gradients, self.hessian_diagonals
        )


class CustomBarrier(Barrier):
    """Barrier given in closed form by the caller.

    Args:
        value: ``x -> phi(x)``.
        gradient: ``x -> dphi(x)``.
        multipliers: ``t -> x -> lambda``, one entry per constraint.
        out_of_domain: Predicate returning True where ``phi`` is undefined.
        hessian: ``x -> phi''(x)``, required only by truncated Newton.
    """

    def __init__(
        self,
        value: ScalarFunction,
        gradient: VectorFunction,
        multipliers: MultiplierFunction,
        out_of_domain: DomainPredicate,
        hessian: Optional[TensorLike] = None,
    ):
        self._value = value
        self._gradient = gradient
        self._multipliers = multipliers
        self._out_of_domain = out_of_domain
        self._hessian = hessian

    def value(self, x: Array) -> float:
        return float(self._value(x))

    def gradient(self, x: Array) -> Array:
        return evaluate_gradient(self._gradient, x, "barrier gradient")

    def hessian(self, x: Array) -> LinearOperator:
        if self._hessian is None:
            return super().hessian(x)
        return operator_at(self._hessian, x)

    @property
    def has_hessian(self) -> bool:
        return self._hessian is not None

    def multipliers(self, t: float, x: Array) -> Array:
        return as_vector(self._multipliers(t)(x), "multipliers")

    def out_of_domain(self, x: Array) -> bool:
        return bool(self._out_of_domain(x))


@dataclass(frozen=True)
class Certificate:
    """Result of a constrained solve.

    Attributes:
        optimum: Final iterate.
        multipliers: Lagrange multiplier estimates, in constraint order.
        t: Barrier scale of the last stage.
        duality_gap: Gap estimate ``m / t`` of the last stage.
        stages: Number of barrier stages run.
        status: ``OPTIMAL`` when the gap tolerance was met.
        gap_history: Gap estimate after every stage.
    """

    optimum: Array
    multipliers: Array
    t: float
    duality_gap: float
    stages: int
    status: Status
    gap_history: Tuple[float, ...] = ()

    @property
    def lam(self) -> Array:
        return self.multipliers


@dataclass(frozen=True)
class BarrierOptions:
    """Central-path schedule shared by the constrained minimizers.

    Attributes:
        duality_gap: Stop once the gap estimate falls below this value.
        barrier_initial_scale: First barrier scale ``t0``.
        barrier_scale_factor: Growth factor ``mu`` of ``t`` between stages.
        max_stages: Budget of barrier stages.
    """

    duality_gap: float = 1e-8
    barrier_initial_scale: float = 1.0
    barrier_scale_factor: float = 10.0
    max_stages: int = 100


@dataclass(frozen=True)
class LineSearchConstrainedMinimizeOptions(BarrierOptions, LineSearchMinimizeOptions):
    """Barrier schedule plus the options of each conjugate-gradient stage."""


@dataclass(frozen=True)
class TruncatedNewtonConstrainedMinimizeOptions(BarrierOptions, TruncatedNewtonMinimizeOptions):
    """Barrier schedule plus the options of each truncated-Newton stage."""


def _validate(options: BarrierOptions) -> None:
    if options.duality_gap <= 0:
        raise ValueError("duality_gap must be positive")
    if options.barrier_initial_scale <= 0:
        raise ValueError("barrier_initial_scale must be positive")
    if options.barrier_scale_factor <= 1:
        raise ValueError("barrier_scale_factor must be greater than 1")
    if options.max_stages < 1:
        raise ValueError("max_stages must be at least 1")


def _stage_preconditioner(
    preconditioner: Optional[ConstrainedPreconditioner], t: float
) -> Optional[Callable[[Array], LinearOperator]]:
    """Scale ``M(t)`` from the ``t f + phi`` Hessian to the ``f + phi / t`` one."""
    if preconditioner is None:
        return None
    at_scale = preconditioner(t)

    def at_point(x: Array) -> LinearOperator:
        return t * operator_at(at_scale, x)

    return at_point


def _follow_central_path(
    stage: Callable[[Array, float, Optional[Callable[[Array], LinearOperator]]], Array],
    barrier: Barrier,
    w0: VectorLike,
    options: BarrierOptions,
    preconditioner: Optional[ConstrainedPreconditioner],
) -> Certificate:
    x = as_vector(w0, "w0")
    t = float(options.barrier_initial_scale)
    gaps: List[float] = []
    status = Status.MAX_ITER
    nstage = 0
    while True:
        x = stage(x, t, _stage_preconditioner(preconditioner, t))
        nstage += 1
        lam = barrier.multipliers(t, x)
        gap = lam.shape[0] / t
        gaps.append(gap)
        logger.debug("barrier stage %d: t=%.3e, gap estimate %.3e", nstage, t, gap)
        if gap < options.duality_gap:
            status = Status.OPTIMAL
            break
        if nstage >= options.max_stages:
            logger.debug("barrier stage budget exhausted with gap estimate %.3e", gap)
            break
        t *= options.barrier_scale_factor
    return Certificate(
        optimum=x,
        multipliers=lam,
        t=t,
        duality_gap=gap,
        stages=nstage,
        status=status,
        gap_history=tuple(gaps),
    )


def line_search_constrained_minimize(
    f: ScalarFunction,
    df: VectorFunction,
    w0: VectorLike,
    constraints: Barrier,
    options: Optional[LineSearchConstrainedMinimizeOptions] = None,
    preconditioner: Optional[ConstrainedPreconditioner] = None,
) -> Certificate:
    """Constrained minimization with conjugate-gradient barrier stages.

    Parameters
    ----------
    f, df:
        Objective and its gradient.
    w0:
        Strictly feasible starting point.
    constraints:
        A :class:`ConstraintFamily` or a :class:`CustomBarrier`.
    options:
        Barrier schedule and per-stage minimizer options.
    preconditioner:
        ``t -> x -> M`` approximating the inverse Hessian of ``t f + phi``,
        for example from :func:`jacobi_preconditioner`.
    """
    options = options or LineSearchConstrainedMinimizeOptions()
    _validate(options)
    barrier = constraints

    def stage(x: Array, t: float, M: Optional[Callable[[Array], LinearOperator]]) -> Array:
        return line_search_minimize(
            lambda w: float(f(w)) + barrier.value(w) / t,
            lambda w: evaluate_gradient(df, w) + barrier.gradient(w) / t,
            x,
            options,
            out_of_domain=barrier.out_of_domain,
            preconditioner=M,
        )

    return _follow_central_path(stage, barrier, w0, options, preconditioner)


def truncated_newton_constrained_minimize(
    df: VectorFunction,
    d2f: TensorLike,
    w0: VectorLike,
    constraints: Barrier,
    options: Optional[TruncatedNewtonConstrainedMinimizeOptions] = None,
    preconditioner: Optional[ConstrainedPreconditioner] = None,
) -> Certificate:
    """Constrained minimization with truncated-Newton barrier stages.

    Parameters
    ----------
    df, d2f:
        Gradient of the objective and ``x -> H(x)`` Hessian operator.
    w0:
        Strictly feasible starting point.
    constraints:
        A :class:`ConstraintFamily` or a :class:`CustomBarrier` with a
        Hessian.
    options:
        Barrier schedule and per-stage minimizer options.
    preconditioner:
        ``t -> x -> M`` approximating the inverse Hessian of ``t f + phi``.
    """
    options = options or TruncatedNewtonConstrainedMinimizeOptions()
    _validate(options)
    barrier = constraints
    if not barrier.has_hessian:
        raise ValueError("truncated Newton needs a barrier with a Hessian")

    def stage(x: Array, t: float, M: Optional[Callable[[Array], LinearOperator]]) -> Array:
        return truncated_newton_minimize(
            lambda w: evaluate_gradient(df, w) + barrier.gradient(w) / t,
            lambda w: operator_at(d2f, w) + (1.0 / t) * barrier.hessian(w),
            x,
            out_of_domain=barrier.out_of_domain,
            options=options,
            preconditioner=M,
        )

    return _follow_central_path(stage, barrier, w0, options, preconditioner)


__all__ = [
    "Barrier",
    "Constraint",
    "ConstraintFamily",
    "CustomBarrier",
    "Certificate",
    "BarrierOptions",
    "LineSearchConstrainedMinimizeOptions",
    "TruncatedNewtonConstrainedMinimizeOptions",
    "line_search_constrained_minimize",
    "truncated_newton_constrained_minimize",
]
