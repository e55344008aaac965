"""Build the normal equations of a non-negative least squares problem."""

from functools import cached_property
import logging

import numpy as np

logger = logging.getLogger(__name__)


class NNLSError(Exception):
    """Base exception class for NNLS-related errors."""

    pass


class InvalidInputError(NNLSError):
    """Exception raised for invalid input to NNLS functions."""

    pass


class DimensionMismatchError(InvalidInputError):
    """Exception raised when the rows of the design matrix do not match the observations."""

    pass


def _as_matrix(A) -> np.ndarray:
    try:
        A = np.asarray(A, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(
            f"A must be a numeric matrix with rows of equal length: {e}"
        ) from e
    if A.ndim != 2:
        raise InvalidInputError(f"A must be a 2D array, got {A.ndim} dimensions.")
    if A.size == 0:
        raise InvalidInputError("Input matrices A and b must not be empty.")
    return A


def _as_vector(b, allow_matrix: bool = False) -> np.ndarray:
    try:
        b = np.asarray(b, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"b must be a numeric vector: {e}") from e
    if b.ndim != 1 and not (allow_matrix and b.ndim == 2):
        raise InvalidInputError(f"b must be a 1D array, got {b.ndim} dimensions.")
    if b.size == 0:
        raise InvalidInputError("Input matrices A and b must not be empty.")
    return b


def check_inputs(A, b, allow_matrix: bool = False):
    r"""Validate and convert a design matrix and observations.

    Parameters
    ----------
    A : array-like of shape (n_samples, n_features)
        The design matrix :math:`\mathbf{A}`, as an array or a list of rows.
    b : array-like of shape (n_samples,) or (n_samples, n_targets)
        The observations :math:`\mathbf{b}`. A 2D ``b`` is only accepted when
        ``allow_matrix`` is True.
    allow_matrix : bool, default=False
        Accept a matrix of right-hand sides.

    Returns
    -------
    A : ndarray of shape (n_samples, n_features)
    b : ndarray of shape (n_samples,) or (n_samples, n_targets)

    Raises
    ------
    InvalidInputError
        If either input is empty, ragged, non-numeric or has the wrong number
        of dimensions.
    DimensionMismatchError
        If ``A`` and ``b`` do not have the same number of rows.
    """
    A = _as_matrix(A)
    b = _as_vector(b, allow_matrix=allow_matrix)

    if A.shape[0] != b.shape[0]:
        raise DimensionMismatchError(
            f"Incompatible shapes: A has {A.shape[0]} rows, b has {b.shape[0]} rows."
        )
    return A, b


class NormalEquations:
    r"""The quadratic form minimized by the coordinate-wise solver.

    Least squares on :math:`\mathbf{A}` and :math:`\mathbf{b}` is equivalent to
    minimizing

    .. math::
        F(\mathbf{x}) = \frac{1}{2} \mathbf{x}^T \mathbf{H} \mathbf{x} + \mathbf{x}^T \mathbf{f}

    with :math:`\mathbf{H} = \mathbf{A}^T \mathbf{A}` and
    :math:`\mathbf{f} = -\mathbf{A}^T \mathbf{b}`.

    Parameters
    ----------
    H : ndarray of shape (n_features, n_features)
        The Gram matrix :math:`\mathbf{A}^T \mathbf{A}`.
    f : ndarray of shape (n_features,)
        The linear term :math:`-\mathbf{A}^T \mathbf{b}`.

    Attributes
    ----------
    H : ndarray of shape (n_features, n_features)
    Hd : ndarray of shape (n_features,)
        Copy of the diagonal of ``H``.
    f : ndarray of shape (n_features,)
    n : int
        Number of coefficients.
    """

    def __init__(self, H: np.ndarray, f: np.ndarray):
        self.H = H
        self.f = f
        self.Hd = np.diag(H).copy()
        self.n = H.shape[0]

    @classmethod
    def from_gram(cls, AtA, Atb):
        r"""Create the normal equations from a precomputed Gram matrix.

        Parameters
        ----------
        AtA : array-like of shape (n_features, n_features)
            The Gram matrix :math:`\mathbf{A}^T \mathbf{A}`.
        Atb : array-like of shape (n_features,)
            The product :math:`\mathbf{A}^T \mathbf{b}`.

        Returns
        -------
        NormalEquations

        Raises
        ------
        InvalidInputError
            If ``AtA`` is not a numeric matrix or ``Atb`` not a numeric vector.
        DimensionMismatchError
            If ``AtA`` is not square or does not match the length of ``Atb``.
        """
        AtA = _as_matrix(AtA)
        Atb = _as_vector(Atb)
        if AtA.shape[0] != AtA.shape[1]:
            raise DimensionMismatchError("When gram=True, A must be a square matrix.")
        if AtA.shape[0] != Atb.shape[0]:
            raise DimensionMismatchError(
                f"Incompatible shapes for gram matrices: A has {AtA.shape[0]} rows, b"
                f" has {Atb.shape[0]} rows."
            )
        return cls(AtA, -Atb)

    @cached_property
    def upper_bound(self) -> float:
        r"""Upper bound on the sum of the optimal coefficients.

        Sum of the unconstrained single-coordinate least squares optima
        :math:`(\mathbf{A}^T \mathbf{b})_i / (\mathbf{A}^T \mathbf{A})_{ii}`, clipped at zero.
        Coordinates with an undefined ratio do not contribute.
        """
        with np.errstate(divide="ignore", invalid="ignore"):
            u = -self.f / self.Hd
        return float(np.sum(u[u > 0]))

    def gradient(self, x: np.ndarray) -> np.ndarray:
        r"""Return :math:`\mathbf{H} \mathbf{x} + \mathbf{f}`, recomputed densely."""
        return self.H @ x + self.f

    def objective(self, x: np.ndarray) -> float:
        r"""Return :math:`F(\mathbf{x}) = \frac{1}{2} \mathbf{x}^T \mathbf{H} \mathbf{x} + \mathbf{x}^T \mathbf{f}`."""
        x = np.asarray(x, dtype=float)
        return float(0.5 * x @ (self.H @ x) + x @ self.f)


def normal_equations(A, b) -> NormalEquations:
    r"""Build the normal equations for :math:`\min \| \mathbf{A} \mathbf{x} - \mathbf{b} \|_2^2`.

    Only the upper triangle of the Gram matrix is kept from the product and
    mirrored into the lower triangle, so ``H`` is exactly symmetric.

    Parameters
    ----------
    A : array-like of shape (n_samples, n_features)
        The design matrix, as an array or a list of equally long rows.
    b : array-like of shape (n_samples,)
        The observations.

    Returns
    -------
    NormalEquations

    Raises
    ------
    DimensionMismatchError
        If ``A`` and ``b`` do not have the same number of rows.
    InvalidInputError
        If the inputs are empty, ragged or not numeric.
    """
    A, b = check_inputs(A, b)

    f = -(A.T @ b)
    upper = np.triu(A.T @ A)
    H = upper + np.triu(upper, 1).T

    logger.debug("Built normal equations: %d samples, %d features", *A.shape)
    return NormalEquations(H, f)
