"""Solve Non-Negative Least Squares (NNLS) problems with the SCA solver."""

import numpy as np
from typing import Union, Optional
from functools import partial
from multiprocessing import cpu_count
from joblib import Parallel, delayed
import logging

from .normal_equations import NormalEquations, check_inputs, normal_equations
from .sca import sca
from .stopping import KKTTolerance, ObjectiveGap, SweepLimit

logger = logging.getLogger(__name__)


def _make_policy(alg: str, tol: Optional[float]):
    tol = 1e-8 if tol is None else tol
    if alg == "sca":
        return ObjectiveGap(tol)
    elif alg == "sca_kkt":
        return KKTTolerance(tol)
    elif alg == "sca_limit":
        return SweepLimit()
    else:
        raise ValueError(f"Specified algorithm '{alg}' not recognized.")


def _solve_column(
    AtA: np.ndarray, Atb: np.ndarray, alg: str, tol: Optional[float], max_iter: Optional[int]
):
    eqs = NormalEquations.from_gram(AtA, Atb)
    return sca(eqs, _make_policy(alg, tol), max_iter)


def nonneg_lsq(
    A,
    B,
    alg: str = "sca",
    gram: bool = False,
    use_parallel: bool = False,
    tol: Optional[float] = None,
    max_iter: Optional[int] = None,
    return_n_iter: bool = False,
) -> Union[np.ndarray, tuple]:
    r"""Solve the non-negative least squares (NNLS) problem.

    Solves the optimization problem:

    .. math::
        \min_{\mathbf{X}} \| \mathbf{A} \mathbf{X} - \mathbf{B} \|_2^2 \quad \text{subject to} \quad \mathbf{X} \geq 0

    one column of :math:`\mathbf{B}` at a time, with the sequential
    coordinate-wise algorithm.

    Parameters
    ----------
    A : array-like of shape (n_samples, n_features)
        The input matrix :math:`\mathbf{A}`.
    B : array-like of shape (n_samples,) or (n_samples, n_targets)
        The target matrix :math:`\mathbf{B}`.
    alg : {'sca', 'sca_kkt', 'sca_limit'}, default='sca'
        The stopping criterion: objective gap, KKT tolerance, or sweep limit only.
    gram : bool, default=False
        If True, :math:`\mathbf{A}` and :math:`\mathbf{B}` are treated as Gram matrices (:math:`\mathbf{A}^T \mathbf{A}` and :math:`\mathbf{A}^T \mathbf{B}`).
    use_parallel : bool, default=False
        If True and multiple CPUs are available, columns of :math:`\mathbf{B}` are solved in parallel.
    tol : float, optional
        Tolerance of the stopping criterion, :math:`\delta` for 'sca' and
        :math:`\epsilon` for 'sca_kkt'. Defaults to 1e-8. Ignored by 'sca_limit'.
    max_iter : int, optional
        Maximum number of sweeps per column. If None, the solver default is used.
    return_n_iter : bool, default=False
        If True, also return the number of sweeps performed for each column.

    Returns
    -------
    X : ndarray of shape (n_features,) or (n_features, n_targets)
        Solution :math:`\mathbf{X}` that minimizes :math:`\| \mathbf{A} \mathbf{X} - \mathbf{B} \|_2` subject to :math:`\mathbf{X} \geq 0`.
    n_iter : int or ndarray of shape (n_targets,)
        Only returned if `return_n_iter` is True.

    Raises
    ------
    InvalidInputError
        If the input matrices are invalid.
    DimensionMismatchError
        If the input matrices are incompatible.
    ValueError
        If the specified algorithm is not recognized.
    """
    # Fail on an unknown algorithm before any work is done
    _make_policy(alg, tol)

    A, B = check_inputs(A, B, allow_matrix=True)
    vector = B.ndim == 1
    if vector:
        B = B[:, np.newaxis]

    if gram:
        # Validates the shapes of the Gram input
        NormalEquations.from_gram(A, B[:, 0])
        AtA = A
        AtB = B
    else:
        AtA = normal_equations(A, B[:, 0]).H
        AtB = A.T @ B

    k = AtB.shape[1]
    solve_fn = partial(_solve_column, AtA, alg=alg, tol=tol, max_iter=max_iter)
    if use_parallel and cpu_count() > 1 and k > 1:
        results = Parallel(n_jobs=-1)(delayed(solve_fn)(AtB[:, i]) for i in range(k))
    else:
        results = [solve_fn(AtB[:, i]) for i in range(k)]

    X = np.column_stack([x for x, _ in results])
    n_iter = np.array([n for _, n in results], dtype=int)
    logger.debug("Solved %d right-hand sides with '%s'.", k, alg)

    if vector:
        X = X.ravel()
        n_iter = int(n_iter[0])
    if return_n_iter:
        return X, n_iter
    return X
