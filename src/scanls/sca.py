r"""Sequential Coordinate-wise Algorithm (SCA) for non-negative least squares.

Implements the algorithm of V. Franc, V. Hlaváč and M. Navara, "Sequential
Coordinate-wise Algorithm for the Non-negative Least Squares Problem", CAIP 2005.

The solver minimizes

.. math::
    F(\mathbf{x}) = \frac{1}{2} \mathbf{x}^T \mathbf{H} \mathbf{x} + \mathbf{x}^T \mathbf{f} \quad \text{subject to} \quad \mathbf{x} \geq 0

by sweeping over the coordinates in index order, moving each to the minimizer
of :math:`F` along that coordinate projected onto :math:`[0, \infty)`. The
gradient :math:`\boldsymbol{\mu} = \mathbf{H} \mathbf{x} + \mathbf{f}` is updated
in :math:`O(n)` after every coordinate change. The three entry points differ
only in the test that ends iteration.
"""

import logging
from typing import Callable, Optional, Tuple

import numpy as np

from .normal_equations import NormalEquations, normal_equations
from .stopping import KKTTolerance, ObjectiveGap, StoppingPolicy, SweepLimit

logger = logging.getLogger(__name__)

# Sweep limit used when a call does not set one.
DEFAULT_LIMIT = 10_000_000

SweepCallback = Callable[[int, np.ndarray], Optional[bool]]


def _resolve_limit(limit: Optional[int]) -> int:
    if limit is None or limit < 0:
        return DEFAULT_LIMIT
    return limit


def coordinate_sweep(eqs: NormalEquations, x: np.ndarray, mu: np.ndarray) -> bool:
    r"""Update every coordinate of ``x`` once, in index order, in place.

    Coordinate :math:`k` moves to :math:`\max(0, x_k - \mu_k / H_{kk})` and the
    gradient is corrected by :math:`\Delta \mathbf{H}_{k}` before coordinate
    :math:`k + 1` is visited. A zero :math:`H_{kk}` is not guarded against.

    Parameters
    ----------
    eqs : NormalEquations
        The problem being solved.
    x : np.ndarray
        The iterate, updated in place.
    mu : np.ndarray
        The gradient :math:`\mathbf{H} \mathbf{x} + \mathbf{f}`, updated in place.

    Returns
    -------
    bool
        True if any coordinate changed.
    """
    H = eqs.H
    Hd = eqs.Hd
    changed = False
    for k in range(eqs.n):
        xk = x[k]
        new = xk - mu[k] / Hd[k]
        if new < 0:
            new = 0.0
        if new == xk:
            continue
        x[k] = new
        changed = True
        mu += (new - xk) * H[k]
    return changed


def sca(
    eqs: NormalEquations,
    policy: StoppingPolicy,
    limit: Optional[int] = None,
    callback: Optional[SweepCallback] = None,
) -> Tuple[np.ndarray, int]:
    r"""Run the sequential coordinate-wise solver on prepared normal equations.

    Parameters
    ----------
    eqs : NormalEquations
        The normal equations of the problem.
    policy : StoppingPolicy
        Test evaluated after each sweep that changed the iterate.
    limit : int, optional
        Maximum number of sweeps. None or a negative value means
        :data:`DEFAULT_LIMIT`.
    callback : callable, optional
        Called as ``callback(sweep, x)`` after every sweep with a copy of the
        iterate. Returning True stops iteration after that sweep.

    Returns
    -------
    x : ndarray of shape (n_features,)
        The non-negative solution.
    n_iter : int
        Number of sweeps performed. Equal to ``limit`` when the limit ended
        iteration.
    """
    limit = _resolve_limit(limit)

    x = np.zeros(eqs.n)
    mu = eqs.f.copy()

    n_iter = 0
    with np.errstate(divide="ignore", invalid="ignore"):
        while n_iter < limit:
            n_iter += 1
            changed = coordinate_sweep(eqs, x, mu)

            if callback is not None and callback(n_iter, x.copy()):
                logger.debug("Stopped by callback after %d sweeps.", n_iter)
                return x, n_iter
            if not changed:
                logger.debug("Converged after %d sweeps: no coordinate changed.", n_iter)
                return x, n_iter
            if policy.converged(eqs, x, mu):
                logger.debug(
                    "Converged after %d sweeps: %s met.", n_iter, policy.name
                )
                return x, n_iter

    level = logging.DEBUG if isinstance(policy, SweepLimit) else logging.INFO
    logger.log(level, "Stopped at the sweep limit of %d (%s).", limit, policy.name)
    return x, n_iter


def solve_objective_gap(
    A,
    b,
    delta: float,
    limit: Optional[int] = None,
    callback: Optional[SweepCallback] = None,
) -> Tuple[np.ndarray, int]:
    r"""Solve NNLS, stopping when the objective is within ``delta`` of optimal.

    Solves

    .. math::
        \min_{\mathbf{x}} \| \mathbf{A} \mathbf{x} - \mathbf{b} \|_2^2 \quad \text{subject to} \quad \mathbf{x} \geq 0

    Iteration stops when the gap between the objective and the lower bound of
    Franc et al. is at most ``delta``, when a sweep changes nothing, or at the
    sweep limit.

    Parameters
    ----------
    A : array-like of shape (n_samples, n_features)
        The design matrix, as an array or a list of equally long rows.
    b : array-like of shape (n_samples,)
        The observations.
    delta : float
        Tolerance on the objective.
    limit : int, optional
        Maximum number of sweeps, :data:`DEFAULT_LIMIT` if None.
    callback : callable, optional
        Called as ``callback(sweep, x)`` after every sweep.

    Returns
    -------
    x : ndarray of shape (n_features,)
        The fitted non-negative coefficients.
    n_iter : int
        Number of sweeps performed.

    Raises
    ------
    DimensionMismatchError
        If ``A`` and ``b`` do not have the same number of rows.
    """
    return sca(normal_equations(A, b), ObjectiveGap(delta), limit, callback)


def solve_kkt(
    A,
    b,
    epsilon: float,
    limit: Optional[int] = None,
    callback: Optional[SweepCallback] = None,
) -> Tuple[np.ndarray, int]:
    r"""Solve NNLS, stopping when the KKT conditions hold within ``epsilon``.

    Each stopping check is :math:`O(n)`, so sweeps are cheaper than with
    :func:`solve_objective_gap`, but ``epsilon`` bounds the gradient and is less
    directly related to the accuracy of the objective.

    Parameters
    ----------
    A : array-like of shape (n_samples, n_features)
        The design matrix.
    b : array-like of shape (n_samples,)
        The observations.
    epsilon : float
        Tolerance on the gradient.
    limit : int, optional
        Maximum number of sweeps, :data:`DEFAULT_LIMIT` if None.
    callback : callable, optional
        Called as ``callback(sweep, x)`` after every sweep.

    Returns
    -------
    x : ndarray of shape (n_features,)
    n_iter : int

    Raises
    ------
    DimensionMismatchError
        If ``A`` and ``b`` do not have the same number of rows.
    """
    return sca(normal_equations(A, b), KKTTolerance(epsilon), limit, callback)


def solve_limit(
    A,
    b,
    max_iterations: int = -1,
    callback: Optional[SweepCallback] = None,
) -> Tuple[np.ndarray, int]:
    r"""Solve NNLS with a fixed sweep budget.

    Iteration stops after ``max_iterations`` sweeps or when a sweep changes
    nothing. No objective or gradient test is evaluated.

    Parameters
    ----------
    A : array-like of shape (n_samples, n_features)
        The design matrix.
    b : array-like of shape (n_samples,)
        The observations.
    max_iterations : int, default=-1
        Maximum number of sweeps. Negative means :data:`DEFAULT_LIMIT`.
    callback : callable, optional
        Called as ``callback(sweep, x)`` after every sweep.

    Returns
    -------
    x : ndarray of shape (n_features,)
    n_iter : int

    Raises
    ------
    DimensionMismatchError
        If ``A`` and ``b`` do not have the same number of rows.
    """
    return sca(normal_equations(A, b), SweepLimit(), max_iterations, callback)
