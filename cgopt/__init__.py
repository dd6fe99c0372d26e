"""cgopt - conjugate-gradient based optimization.

Krylov linear solves, nonlinear conjugate gradients, truncated Newton and
log-barrier interior-point variants of both.

Example
-------
>>> import numpy as np
>>> from cgopt import line_search_minimize
>>> c = np.array([0.5, 0.8])
>>> x = line_search_minimize(
...     lambda x: 0.5 * (x - c) @ (x - c),
...     lambda x: x - c,
...     np.array([1.6, -0.2]),
... )
>>> bool(np.allclose(x, c))
True
"""

__version__ = "0.1.0"

from .barrier import (
    Barrier,
    BarrierOptions,
    Certificate,
    Constraint,
    ConstraintFamily,
    CustomBarrier,
    LineSearchConstrainedMinimizeOptions,
    TruncatedNewtonConstrainedMinimizeOptions,
    line_search_constrained_minimize,
    truncated_newton_constrained_minimize,
)
from .conjugate_gradient import LineSearchMinimizeOptions, line_search_minimize
from .core import (
    DimensionMismatchError,
    Status,
    as_vector,
    never_out_of_domain,
    vector_from_function,
)
from .criteria import (
    AnyCriterion,
    GradientNormCriterion,
    MaxIterationCriterion,
    PredicateCriterion,
    StoppingCriterion,
    as_criterion,
    gradient_norm_criterion,
)
from .krylov import LinearSolveOptions, linear_solve
from .line_search import derivative_line_search
from .newton import TruncatedNewtonMinimizeOptions, truncated_newton_minimize
from .operators import (
    DenseOperator,
    DiagonalOperator,
    EntryOperator,
    FunctionOperator,
    IdentityOperator,
    LinearOperator,
    ZeroOperator,
    as_operator,
    dense_operator,
    diagonal_operator,
    identity_operator,
    zero_operator,
)
from .preconditioner import jacobi_preconditioner

__all__ = [
    "__version__",
    # Vectors and operators
    "DimensionMismatchError",
    "as_vector",
    "vector_from_function",
    "LinearOperator",
    "ZeroOperator",
    "IdentityOperator",
    "DiagonalOperator",
    "DenseOperator",
    "EntryOperator",
    "FunctionOperator",
    "as_operator",
    "zero_operator",
    "identity_operator",
    "diagonal_operator",
    "dense_operator",
    # Stopping criteria
    "StoppingCriterion",
    "GradientNormCriterion",
    "MaxIterationCriterion",
    "PredicateCriterion",
    "AnyCriterion",
    "as_criterion",
    "gradient_norm_criterion",
    "never_out_of_domain",
    # Solvers
    "LinearSolveOptions",
    "linear_solve",
    "derivative_line_search",
    "LineSearchMinimizeOptions",
    "line_search_minimize",
    "TruncatedNewtonMinimizeOptions",
    "truncated_newton_minimize",
    # Constrained
    "Status",
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
    "jacobi_preconditioner",
]
