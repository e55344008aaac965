"""Stopping policies for the sequential coordinate-wise NNLS solver."""

from abc import ABC, abstractmethod

import numpy as np

from .normal_equations import NormalEquations


class StoppingPolicy(ABC):
    r"""Abstract base class for the test evaluated after each sweep.

    The solver always stops when a sweep leaves :math:`\mathbf{x}` unchanged or
    when the sweep limit is reached. A policy adds its own test on top of these,
    evaluated after every sweep that changed at least one coordinate.

    Policies hold only their tolerance, so one instance can be shared between
    concurrent solves.
    """

    name = "policy"

    @abstractmethod
    def converged(
        self, eqs: NormalEquations, x: np.ndarray, mu: np.ndarray
    ) -> bool:
        r"""Decide whether the current iterate is accurate enough.

        Parameters
        ----------
        eqs : NormalEquations
            The problem being solved.
        x : np.ndarray
            The current iterate, :math:`\mathbf{x} \geq 0`.
        mu : np.ndarray
            The gradient :math:`\boldsymbol{\mu} = \mathbf{H} \mathbf{x} + \mathbf{f}`.

        Returns
        -------
        bool
            True to stop iterating.
        """
        pass


class ObjectiveGap(StoppingPolicy):
    r"""Stop when the objective is within :math:`\delta` of its lower bound.

    With :math:`u` the upper bound on :math:`\sum_i x_i` at the optimum, the
    objective satisfies

    .. math::
        F(\mathbf{x}^*) \geq u \min_i (\mathbf{H} \mathbf{x} + \mathbf{f})_i - \frac{1}{2} \mathbf{x}^T \mathbf{H} \mathbf{x}

    so iteration stops once

    .. math::
        \mathbf{x}^T \mathbf{H} \mathbf{x} + \mathbf{x}^T \mathbf{f} - u \min_i \mu_i \leq \delta

    Each check recomputes :math:`\mathbf{H} \mathbf{x}`, costing :math:`O(n^2)`.

    Parameters
    ----------
    delta : float
        Tolerance on the gap between the objective and its lower bound.
    """

    name = "objective gap"

    def __init__(self, delta: float):
        self.delta = delta

    def converged(self, eqs, x, mu):
        Hx = eqs.H @ x
        xHx = x @ Hx
        xf = x @ eqs.f
        return xHx + xf - eqs.upper_bound * np.min(mu) <= self.delta


class KKTTolerance(StoppingPolicy):
    r"""Stop when the Karush-Kuhn-Tucker conditions hold within :math:`\epsilon`.

    A point :math:`\mathbf{x} \geq 0` is optimal when :math:`\mu_k \geq 0` for
    :math:`x_k = 0` and :math:`\mu_k = 0` for :math:`x_k > 0`. The relaxed test
    accepts :math:`\mu_k \geq -\epsilon` everywhere and :math:`\mu_k \leq \epsilon`
    wherever :math:`x_k > 0`.

    The check costs :math:`O(n)`, cheaper than :class:`ObjectiveGap`, but
    :math:`\epsilon` bounds the gradient rather than the objective.

    Parameters
    ----------
    epsilon : float
        Tolerance on the gradient.
    """

    name = "KKT tolerance"

    def __init__(self, epsilon: float):
        self.epsilon = epsilon

    def converged(self, eqs, x, mu):
        if np.any(mu < -self.epsilon):
            return False
        return not np.any((x > 0) & (mu > self.epsilon))


class SweepLimit(StoppingPolicy):
    """Never stop early; only the sweep limit or a sweep without change ends iteration."""

    name = "sweep limit"

    def converged(self, eqs, x, mu):
        return False
