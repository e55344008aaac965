import warnings

import numpy as np
import pytest
from scipy.optimize import nnls as scipy_nnls

import scanls.sca
from scanls.normal_equations import normal_equations, DimensionMismatchError
from scanls.sca import (
    sca,
    coordinate_sweep,
    solve_objective_gap,
    solve_kkt,
    solve_limit,
)
from scanls.stopping import SweepLimit, KKTTolerance

HEIGHTS = [1.47, 1.50, 1.52, 1.55, 1.57, 1.60, 1.63,
           1.65, 1.68, 1.70, 1.73, 1.75, 1.78, 1.80, 1.83]
WEIGHTS = [52.21, 53.12, 54.48, 55.84, 57.20, 58.57, 59.93,
           61.29, 63.11, 64.47, 66.28, 68.10, 69.92, 72.19, 74.46]


@pytest.fixture
def height_weight():
    """Quadratic fit of weight on height, as a list of rows [h^2, h, 1]."""
    A = [[h * h, h, 1.0] for h in HEIGHTS]
    return A, list(WEIGHTS)


@pytest.fixture
def random_A_b():
    """Fixture providing a well-conditioned random problem with active constraints."""
    rng = np.random.default_rng(0)
    A = rng.standard_normal((40, 6))
    b = rng.standard_normal(40)
    return A, b


def _solvers():
    return [
        lambda A, b, **kw: solve_objective_gap(A, b, 1e-10, **kw),
        lambda A, b, **kw: solve_kkt(A, b, 1e-10, **kw),
        lambda A, b, **kw: solve_limit(A, b, -1, **kw),
    ]


def test_height_weight(height_weight):
    """Known fit of the height/weight data with an unlimited sweep count."""
    A, b = height_weight
    x, n_iter = solve_limit(A, b, -1)
    np.testing.assert_allclose(x, [18.61, 0.0, 11.15], atol=0.01)
    assert n_iter == pytest.approx(7343, rel=0.1)

    residual = np.array(A) @ x - np.array(b)
    assert np.max(np.abs(residual)) < 1.1


def test_height_weight_matches_scipy(height_weight):
    A, b = height_weight
    x, _ = solve_limit(A, b)
    scipy_x, _ = scipy_nnls(np.array(A), np.array(b))
    np.testing.assert_allclose(x, scipy_x, atol=1e-6)


@pytest.mark.parametrize("solver", _solvers())
@pytest.mark.parametrize("seed", [0, 1, 2])
def test_feasibility(solver, seed):
    """Every coefficient is non-negative for every variant."""
    rng = np.random.default_rng(seed)
    A = rng.standard_normal((20, 5))
    b = rng.standard_normal(20)
    x, n_iter = solver(A, b)
    assert x.shape == (5,)
    assert np.all(x >= 0)
    assert n_iter >= 1


def test_cross_variant_consistency(random_A_b):
    """All stopping criteria reach the same objective."""
    A, b = random_A_b
    eqs = normal_equations(A, b)
    objectives = [eqs.objective(solver(A, b)[0]) for solver in _solvers()]
    assert max(objectives) - min(objectives) < 1e-6

    scipy_x, _ = scipy_nnls(A, b)
    assert objectives[2] == pytest.approx(eqs.objective(scipy_x), abs=1e-6)


def test_objective_monotone(height_weight):
    """The objective never increases from one sweep to the next."""
    A, b = height_weight
    eqs = normal_equations(A, b)
    values = []

    def record(sweep, x):
        values.append(eqs.objective(x))

    solve_limit(A, b, callback=record)
    assert len(values) > 1
    assert np.all(np.diff(values) <= 1e-8)


def test_converged_solution_is_fixed_point(random_A_b):
    """The final sweep of a converged solve changes nothing."""
    A, b = random_A_b
    iterates = []
    x, n_iter = solve_limit(A, b, callback=lambda sweep, x: iterates.append(x))
    assert len(iterates) == n_iter
    np.testing.assert_array_equal(iterates[-1], iterates[-2])
    np.testing.assert_array_equal(x, iterates[-1])


def test_gradient_invariant(random_A_b):
    """The incrementally updated gradient equals Hx + f."""
    A, b = random_A_b
    eqs = normal_equations(A, b)
    x = np.zeros(eqs.n)
    mu = eqs.f.copy()
    for _ in range(10):
        coordinate_sweep(eqs, x, mu)
        np.testing.assert_allclose(mu, eqs.H @ x + eqs.f, atol=1e-9)
        assert np.all(x >= 0)


def test_coordinate_sweep_reports_change():
    eqs = normal_equations(np.eye(2), np.array([1.0, -1.0]))
    x = np.zeros(2)
    mu = eqs.f.copy()
    assert coordinate_sweep(eqs, x, mu)
    np.testing.assert_array_equal(x, [1.0, 0.0])
    assert not coordinate_sweep(eqs, x, mu)


def test_single_coefficient():
    """A single coefficient converges in at most two sweeps."""
    A = [[1.0], [2.0], [3.0]]
    x, n_iter = solve_limit(A, [1.0, 2.0, 3.0])
    np.testing.assert_allclose(x, [1.0])
    assert n_iter <= 2

    x, n_iter = solve_limit(A, [-1.0, -2.0, -3.0])
    np.testing.assert_array_equal(x, [0.0])
    assert n_iter == 1


@pytest.mark.parametrize("solve, limit", [
    (lambda A, b, n: solve_objective_gap(A, b, 0.0, limit=n), 25),
    (lambda A, b, n: solve_kkt(A, b, 0.0, limit=n), 10),
    (lambda A, b, n: solve_limit(A, b, n), 50),
])
def test_limit_exhaustion(height_weight, solve, limit):
    """A tight tolerance with a small limit stops exactly at the limit."""
    A, b = height_weight
    x, n_iter = solve(A, b, limit)
    assert n_iter == limit
    assert np.all(x >= 0)


def test_zero_limit(height_weight):
    A, b = height_weight
    x, n_iter = solve_limit(A, b, 0)
    np.testing.assert_array_equal(x, np.zeros(3))
    assert n_iter == 0


def test_default_limit(height_weight, monkeypatch):
    """The default limit is read when a call does not set one."""
    monkeypatch.setattr(scanls.sca, "DEFAULT_LIMIT", 5)
    A, b = height_weight
    assert solve_limit(A, b)[1] == 5
    assert solve_limit(A, b, -3)[1] == 5
    assert solve_kkt(A, b, 0.0)[1] == 5
    assert solve_kkt(A, b, 0.0, limit=7)[1] == 7


def test_callback_stops(height_weight):
    A, b = height_weight
    x, n_iter = solve_limit(A, b, callback=lambda sweep, x: sweep == 3)
    assert n_iter == 3


def test_callback_receives_copy(height_weight):
    A, b = height_weight
    seen = []
    x, _ = solve_limit(A, b, 4, callback=lambda sweep, x: seen.append((sweep, x)))
    assert [sweep for sweep, _ in seen] == [1, 2, 3, 4]
    assert not np.array_equal(seen[0][1], x)


@pytest.mark.parametrize("solver", _solvers())
def test_dimension_mismatch(solver):
    A = np.ones((5, 3))
    b = np.ones(4)
    with pytest.raises(DimensionMismatchError, match="Incompatible shapes:"):
        solver(A, b)


def test_zero_column_propagates_nan():
    """A zero column divides by zero and poisons the iterate without warnings."""
    A = np.array([[1.0, 0.0], [2.0, 0.0]])
    b = np.array([1.0, 1.0])
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        x, n_iter = solve_limit(A, b, 5)
    assert n_iter == 5
    assert np.isnan(x[1])


def test_sca_with_policy(random_A_b):
    """The parameterized solver matches the KKT entry point."""
    A, b = random_A_b
    eqs = normal_equations(A, b)
    x, n_iter = sca(eqs, KKTTolerance(1e-10))
    x_kkt, n_kkt = solve_kkt(A, b, 1e-10)
    np.testing.assert_array_equal(x, x_kkt)
    assert n_iter == n_kkt

    x_limit, _ = sca(eqs, SweepLimit(), limit=3)
    assert np.all(x_limit >= 0)
