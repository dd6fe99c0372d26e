"""
Example: Conjugate-gradient optimization with cgopt

Walks through the solvers in order of increasing structure: a matrix-free
linear solve, unconstrained minimization by nonlinear conjugate gradients and
by truncated Newton, and a box-constrained quadratic program solved along the
log-barrier central path with a Jacobi preconditioner.
"""

import numpy as np

from cgopt import (
    ConstraintFamily,
    LineSearchConstrainedMinimizeOptions,
    Status,
    TruncatedNewtonConstrainedMinimizeOptions,
    dense_operator,
    jacobi_preconditioner,
    line_search_constrained_minimize,
    line_search_minimize,
    linear_solve,
    truncated_newton_constrained_minimize,
    truncated_newton_minimize,
)


def example_linear_solve():
    """Example: Symmetric system from an entry function."""
    print("=" * 60)
    print("Example 1: Krylov Linear Solve")
    print("=" * 60)

    A = dense_operator(lambda i, j: 4.0 if i == j else 2.0)
    b = np.array([14.0, 16.0, 18.0])
    x = linear_solve(A, b)
    print(f"Solution: x = {x}")
    print(f"Residual: {np.linalg.norm(A(x) - b):.2e}")
    print()


def rosen_grad(x: np.ndarray) -> np.ndarray:
    return np.array(
        [
            -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
            200 * (x[1] - x[0] ** 2),
        ]
    )


def rosen_hess(x: np.ndarray) -> np.ndarray:
    return np.array(
        [
            [1200 * x[0] ** 2 - 400 * x[1] + 2, -400 * x[0]],
            [-400 * x[0], 200.0],
        ]
    )


def example_unconstrained():
    """Example: Rosenbrock valley with both unconstrained minimizers."""
    print("=" * 60)
    print("Example 2: Unconstrained Minimization - Rosenbrock")
    print("=" * 60)

    def rosen(x: np.ndarray) -> float:
        return (1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2

    x0 = np.array([-1.2, 1.0])
    x_cg = line_search_minimize(rosen, rosen_grad, x0)
    x_tn = truncated_newton_minimize(rosen_grad, rosen_hess, x0)
    print(f"Nonlinear CG:     x = {x_cg}, f = {rosen(x_cg):.3e}")
    print(f"Truncated Newton: x = {x_tn}, f = {rosen(x_tn):.3e}")
    print()


def example_constrained_qp():
    """Example: Box-constrained QP on the central path."""
    print("=" * 60)
    print("Example 3: Log-Barrier QP with Jacobi Preconditioner")
    print("=" * 60)

    # Minimize 0.5 x^T Q x - sum(x) subject to 0 <= x <= 10
    Q = np.array(
        [
            [3.0, 1.0, 3.0, 0.0, 1.0],
            [1.0, 3.0, 3.0, 0.0, 1.0],
            [3.0, 3.0, 5.0, 1.0, 3.0],
            [0.0, 0.0, 1.0, 2.0, 3.0],
            [1.0, 1.0, 3.0, 3.0, 5.0],
        ]
    )
    n = Q.shape[0]
    eye = np.eye(n)

    def f(x: np.ndarray) -> float:
        return 0.5 * x @ (Q @ x) - x.sum()

    def df(x: np.ndarray) -> np.ndarray:
        return Q @ x - 1.0

    def values(i):
        return (lambda x: -x[i]) if i < n else (lambda x: x[i - n] - 10.0)

    def gradients(i):
        return (lambda x: -eye[i]) if i < n else (lambda x: eye[i - n])

    constraints = ConstraintFamily(2 * n, values, gradients)
    M = jacobi_preconditioner(lambda x: np.diag(Q), 2 * n, values, gradients)
    w0 = np.full(n, 0.5)

    cg_cert = line_search_constrained_minimize(
        f, df, w0, constraints, LineSearchConstrainedMinimizeOptions(duality_gap=1e-8), M
    )
    tn_cert = truncated_newton_constrained_minimize(
        df, Q, w0, constraints, TruncatedNewtonConstrainedMinimizeOptions(duality_gap=1e-8), M
    )
    for name, cert in (("Nonlinear CG", cg_cert), ("Truncated Newton", tn_cert)):
        print(f"{name}:")
        print(f"  Status: {cert.status}")
        if cert.status == Status.OPTIMAL:
            print(f"  Optimum: {np.round(cert.optimum, 6)}")
            print(f"  Active multipliers: {np.round(cert.lam[:n], 4)}")
            print(f"  Stages: {cert.stages}, gap estimate {cert.duality_gap:.1e}")
    print()


if __name__ == "__main__":
    print("\n" + "=" * 60)
    print("cgopt - Conjugate-Gradient Optimization Examples")
    print("=" * 60 + "\n")

    example_linear_solve()
    example_unconstrained()
    example_constrained_qp()

    print("=" * 60)
    print("All examples completed successfully!")
    print("=" * 60)
