import numpy as np
import pytest

from cgopt.barrier import (
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
from cgopt.core import Status
from cgopt.operators import diagonal_operator, identity_operator, zero_operator
from cgopt.preconditioner import jacobi_preconditioner

EPS = 1e-5
QP_OPTIMUM = np.array([0.25, 0.25, 0.0, 0.5, 0.0])


def _dense(op, n):
    return np.column_stack([op.apply(e) for e in np.eye(n)])


def _qp(gram_matrix):
    g = -np.ones(5)

    def f(x):
        return 0.5 * x @ (gram_matrix @ x) + g @ x

    def df(x):
        return gram_matrix @ x + g

    def d2f(x):
        return lambda y: gram_matrix @ y

    def d2fd(x):
        return np.diag(gram_matrix)

    return f, df, d2f, d2fd


def _simple_problem():
    def f(x):
        return 0.5 * ((x[0] - 0.5) ** 2 + (x[1] - 0.8) ** 2)

    def df(x):
        return [x[0] - 0.5, x[1] - 0.8]

    fc = lambda i: (lambda x: x[0])  # noqa: E731
    dfc = lambda i: (lambda x: [1.0, 0.0])  # noqa: E731
    return f, df, fc, dfc


def _lagrangian_gap(f, fc, certificate):
    # The dual function is attained at x = (0.5 - lambda, 0.8).
    lam = certificate.lam[0]
    x_dual = np.array([0.5 - lam, 0.8])
    dual = f(x_dual) + lam * fc(0)(x_dual)
    return f(certificate.optimum) - dual


def test_linear_family_value_gradient_hessian():
    family = ConstraintFamily(
        2,
        lambda i: (lambda x: x[0] + x[1] - 1.0) if i == 0 else (lambda x: -x[0]),
        lambda i: (lambda x: [1.0, 1.0]) if i == 0 else (lambda x: [-1.0, 0.0]),
    )
    x = np.array([0.2, 0.3])
    assert np.allclose(family.constraint_values(x), [-0.5, -0.2])
    assert family.value(x) == pytest.approx(-(np.log(0.5) + np.log(0.2)))
    assert np.allclose(family.gradient(x), [-3.0, 2.0])
    assert np.allclose(_dense(family.hessian(x), 2), [[29.0, 4.0], [4.0, 4.0]])
    assert np.allclose(family.hessian_diagonal(x), [29.0, 4.0])
    assert np.allclose(family.multipliers(2.0, x), [1.0, 2.5])
    assert not family.out_of_domain(x)
    assert family.out_of_domain(np.array([0.6, 0.6]))
    assert family.out_of_domain(np.array([0.0, 0.5]))


def test_nonlinear_family_hessian():
    family = ConstraintFamily.from_constraints(
        [
            Constraint(
                value=lambda x: x @ x - 1.0,
                gradient=lambda x: 2.0 * x,
                hessian=lambda x: 2.0 * np.eye(2),
                hessian_diagonal=lambda x: np.full(2, 2.0),
            )
        ]
    )
    x = np.array([0.3, -0.4])
    fc = x @ x - 1.0
    dfc = 2.0 * x
    expected = np.outer(dfc, dfc) / fc ** 2 - 2.0 * np.eye(2) / fc
    assert np.allclose(_dense(family.hessian(x), 2), expected)
    assert np.allclose(family.hessian_diagonal(x), np.diag(expected))


def test_from_constraints_requires_consistent_hessians():
    with_hessian = Constraint(lambda x: x[0], lambda x: [1.0], hessian=lambda x: zero_operator())
    without = Constraint(lambda x: -x[0], lambda x: [-1.0])
    with pytest.raises(ValueError):
        ConstraintFamily.from_constraints([with_hessian, without])


def test_certificate_lam_alias():
    cert = Certificate(
        optimum=np.zeros(1),
        multipliers=np.array([2.0]),
        t=1.0,
        duality_gap=1.0,
        stages=1,
        status=Status.MAX_ITER,
    )
    assert cert.lam is cert.multipliers
    assert cert.gap_history == ()


def test_line_search_simple_constrained():
    f, df, fc, dfc = _simple_problem()
    options = LineSearchConstrainedMinimizeOptions(
        duality_gap=1e-7,
        barrier_scale_factor=10.0,
        barrier_initial_scale=100.0,
    )
    cert = line_search_constrained_minimize(
        f, df, np.array([-5.0, 1.0]), ConstraintFamily(1, fc, dfc), options
    )
    assert cert.status is Status.OPTIMAL
    assert cert.stages == 7
    assert cert.t == pytest.approx(1e8)
    assert cert.duality_gap == pytest.approx(1e-8)
    assert len(cert.gap_history) == cert.stages
    assert all(a > b for a, b in zip(cert.gap_history, cert.gap_history[1:]))
    assert _lagrangian_gap(f, fc, cert) < options.duality_gap
    assert np.linalg.norm(cert.optimum - np.array([0.0, 0.8])) < EPS


def test_truncated_newton_simple_constrained():
    f, df, fc, dfc = _simple_problem()
    d2fc = lambda i: (lambda x: zero_operator())  # noqa: E731
    options = TruncatedNewtonConstrainedMinimizeOptions(duality_gap=1e-7)
    cert = truncated_newton_constrained_minimize(
        df,
        lambda x: identity_operator(),
        np.array([-5.0, 1.0]),
        ConstraintFamily(1, fc, dfc, hessians=d2fc),
        options,
    )
    assert cert.status is Status.OPTIMAL
    assert cert.stages == 9
    assert abs(_lagrangian_gap(f, fc, cert)) <= options.duality_gap
    assert np.linalg.norm(cert.optimum - np.array([0.0, 0.8])) < EPS


def test_line_search_constrained_quadratic_with_jacobi(gram_matrix, box_constraints):
    count, fc, dfc = box_constraints
    f, df, _, d2fd = _qp(gram_matrix)
    d2fcd = lambda i: (lambda x: np.zeros(5))  # noqa: E731
    M = jacobi_preconditioner(d2fd, count, fc, dfc, d2fcd)
    cert = line_search_constrained_minimize(
        f,
        df,
        np.full(5, 0.5),
        ConstraintFamily(count, fc, dfc, hessian_diagonals=d2fcd),
        LineSearchConstrainedMinimizeOptions(duality_gap=1e-8),
        M,
    )
    assert cert.status is Status.OPTIMAL
    assert np.linalg.norm(cert.optimum - QP_OPTIMUM) < EPS
    # Lower bounds on x[2] and x[4] are the active constraints.
    assert np.allclose(cert.multipliers[[2, 4]], 1.0, atol=1e-3)
    assert np.all(np.delete(cert.multipliers, [2, 4]) < 1e-3)


def test_line_search_constrained_quadratic_without_preconditioner(gram_matrix, box_constraints):
    count, fc, dfc = box_constraints
    f, df, _, _ = _qp(gram_matrix)
    cert = line_search_constrained_minimize(
        f,
        df,
        np.full(5, 0.5),
        ConstraintFamily(count, fc, dfc),
        LineSearchConstrainedMinimizeOptions(duality_gap=1e-6),
    )
    assert np.allclose(cert.optimum, QP_OPTIMUM, atol=1e-4)


def test_line_search_with_custom_barrier(gram_matrix):
    f, df, _, d2fd = _qp(gram_matrix)
    n = 5

    def phi(x):
        return -float(np.sum(np.log(x) + np.log(10.0 - x)))

    def dphi(x):
        return -(1.0 / x + 1.0 / (x - 10.0))

    def multipliers(t):
        return lambda x: np.concatenate([1.0 / (t * x), 1.0 / (t * (10.0 - x))])

    def d2phid(x):
        return 1.0 / x ** 2 + 1.0 / (x - 10.0) ** 2

    def M(t):
        return lambda x: diagonal_operator(1.0 / (t * d2fd(x) + d2phid(x)))

    barrier = CustomBarrier(
        phi,
        dphi,
        multipliers,
        lambda x: bool(np.any((x <= 0.0) | (x >= 10.0))),
    )
    cert = line_search_constrained_minimize(
        f,
        df,
        np.full(n, 0.5),
        barrier,
        LineSearchConstrainedMinimizeOptions(duality_gap=1e-8),
        M,
    )
    assert cert.status is Status.OPTIMAL
    assert cert.multipliers.shape == (2 * n,)
    assert np.linalg.norm(cert.optimum - QP_OPTIMUM) < EPS


def test_truncated_newton_constrained_quadratic_with_jacobi(gram_matrix):
    f, df, d2f, d2fd = _qp(gram_matrix)
    constraints = []
    for i in range(5):
        e = np.eye(5)[i]
        constraints.append(
            Constraint(
                value=lambda x, i=i: -x[i],
                gradient=lambda x, e=e: -e,
                hessian=lambda x: zero_operator(),
                hessian_diagonal=lambda x: np.zeros(5),
            )
        )
    for i in range(5):
        e = np.eye(5)[i]
        constraints.append(
            Constraint(
                value=lambda x, i=i: x[i] - 10.0,
                gradient=lambda x, e=e: e,
                hessian=lambda x: zero_operator(),
                hessian_diagonal=lambda x: np.zeros(5),
            )
        )
    family = ConstraintFamily.from_constraints(constraints)
    cert = truncated_newton_constrained_minimize(
        df,
        d2f,
        np.full(5, 0.5),
        family,
        TruncatedNewtonConstrainedMinimizeOptions(duality_gap=1e-10),
        family.jacobi_preconditioner(d2fd),
    )
    assert cert.status is Status.OPTIMAL
    assert np.linalg.norm(cert.optimum - QP_OPTIMUM) < EPS
    # Stationarity of the Lagrangian at the returned multipliers.
    residual = df(cert.optimum) + family.constraint_gradients(cert.optimum).T @ cert.multipliers
    assert np.linalg.norm(residual) < 1e-6


def test_truncated_newton_constrained_quadratic_linear_family(gram_matrix, box_constraints):
    count, fc, dfc = box_constraints
    _, df, d2f, _ = _qp(gram_matrix)
    cert = truncated_newton_constrained_minimize(
        df,
        d2f,
        np.full(5, 0.5),
        ConstraintFamily(count, fc, dfc),
        TruncatedNewtonConstrainedMinimizeOptions(duality_gap=1e-8),
    )
    assert np.linalg.norm(cert.optimum - QP_OPTIMUM) < EPS


def _disk_problem():
    c = np.array([2.0, 2.0])
    disk = Constraint(
        value=lambda x: x @ x - 1.0,
        gradient=lambda x: 2.0 * x,
        hessian=lambda x: 2.0 * np.eye(2),
        hessian_diagonal=lambda x: np.full(2, 2.0),
    )
    return (
        lambda x: float((x - c) @ (x - c)),
        lambda x: 2.0 * (x - c),
        ConstraintFamily.from_constraints([disk]),
    )


def test_truncated_newton_nonlinear_constraint():
    _, df, family = _disk_problem()
    cert = truncated_newton_constrained_minimize(
        df,
        lambda x: diagonal_operator([2.0, 2.0]),
        np.zeros(2),
        family,
        TruncatedNewtonConstrainedMinimizeOptions(duality_gap=1e-8),
        family.jacobi_preconditioner(lambda x: np.full(2, 2.0)),
    )
    expected = np.full(2, 1.0 / np.sqrt(2.0))
    assert np.linalg.norm(cert.optimum - expected) < EPS
    assert cert.multipliers[0] == pytest.approx(2.0 * np.sqrt(2.0) - 1.0, abs=1e-3)


def test_line_search_nonlinear_constraint():
    f, df, family = _disk_problem()
    cert = line_search_constrained_minimize(
        f,
        df,
        np.zeros(2),
        family,
        LineSearchConstrainedMinimizeOptions(duality_gap=1e-6),
    )
    expected = np.full(2, 1.0 / np.sqrt(2.0))
    assert np.linalg.norm(cert.optimum - expected) < 1e-4
    assert np.all(family.constraint_values(cert.optimum) < 0.0)


def test_stage_budget_reports_max_iter():
    f, df, fc, dfc = _simple_problem()
    cert = line_search_constrained_minimize(
        f,
        df,
        np.array([-5.0, 1.0]),
        ConstraintFamily(1, fc, dfc),
        LineSearchConstrainedMinimizeOptions(max_stages=2),
    )
    assert cert.status is Status.MAX_ITER
    assert cert.stages == 2
    assert cert.t == pytest.approx(10.0)
    assert cert.duality_gap == pytest.approx(0.1)
    assert cert.optimum[0] < 0.0


def test_truncated_newton_requires_barrier_hessian():
    barrier = CustomBarrier(
        lambda x: -float(np.log(-x[0])),
        lambda x: [-1.0 / x[0]],
        lambda t: (lambda x: [-1.0 / (t * x[0])]),
        lambda x: x[0] >= 0.0,
    )
    assert not barrier.has_hessian
    with pytest.raises(NotImplementedError):
        barrier.hessian(np.array([-1.0]))
    with pytest.raises(ValueError):
        truncated_newton_constrained_minimize(
            lambda x: x, np.eye(1), [-1.0], barrier
        )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"duality_gap": 0.0},
        {"barrier_initial_scale": 0.0},
        {"barrier_scale_factor": 1.0},
        {"max_stages": 0},
    ],
)
def test_invalid_barrier_options(kwargs):
    f, df, fc, dfc = _simple_problem()
    with pytest.raises(ValueError):
        line_search_constrained_minimize(
            f,
            df,
            [-1.0, 0.0],
            ConstraintFamily(1, fc, dfc),
            LineSearchConstrainedMinimizeOptions(**kwargs),
        )


def test_barrier_options_are_shared():
    assert issubclass(LineSearchConstrainedMinimizeOptions, BarrierOptions)
    assert issubclass(TruncatedNewtonConstrainedMinimizeOptions, BarrierOptions)
    options = TruncatedNewtonConstrainedMinimizeOptions()
    assert options.duality_gap == 1e-8
    assert options.barrier_scale_factor == 10.0
    assert options.damping_factor == 0.5
