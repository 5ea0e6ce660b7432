# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the adaptive stochastic optimizer and the convergence
# monitor for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
from collections import deque
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .errors import OptimizationFailure


class Status(str, Enum):
    """Life cycle of an ADVI run."""

    INITIALIZING = "initializing"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (Status.INITIALIZING, Status.ITERATING)


@dataclass
class OptimizerState:
    """
    Per-coordinate running average of squared gradients and the iteration
    counter. Reset only when a fresh run (or step-size candidate) starts.
    """

    iteration: int = 0
    sq_grad: np.ndarray = None

    def reset(self):
        self.iteration = 0
        self.sq_grad = None


class StochasticOptimizer:
    """
    Gradient ascent with an adaptive per-coordinate step size.

    At iteration t with gradient g the running statistic is

        s_1 = g^2,   s_t = alpha * g^2 + (1 - alpha) * s_{t-1},

    and each coordinate moves by

        rho_t = eta * t^{-(1/2 + epsilon)} / (tau + sqrt(s_t)),   phi <- phi + rho_t * g.

    The root-mean-square scaling keeps coordinates with very different
    curvature on comparable footing, and the decaying factor satisfies the
    Robbins-Monro conditions.

    Parameters
    ----------
    step_size : float
        eta.
    memory_weight : float, default=0.1
        alpha.
    tau : float, default=1.0
    decay_epsilon : float, default=1e-16
    """

    def __init__(self, step_size: float, memory_weight: float = 0.1,
                 tau: float = 1.0, decay_epsilon: float = 1e-16):
        if not step_size > 0:
            raise ValueError("'step_size' must be positive")
        if not (0.0 < memory_weight <= 1.0):
            raise ValueError("'memory_weight' must lie in (0, 1]")
        self.step_size = float(step_size)
        self.memory_weight = float(memory_weight)
        self.tau = float(tau)
        self.decay_epsilon = float(decay_epsilon)

    def learning_rate(self, state: OptimizerState) -> np.ndarray:
        """Per-coordinate step rho_t for the statistics held in ``state``."""
        decay = state.iteration ** -(0.5 + self.decay_epsilon)
        return self.step_size * decay / (self.tau + np.sqrt(state.sq_grad))

    def step(self, family, gradient, state: OptimizerState) -> np.ndarray:
        """
        Applies one ascent step to ``family``'s parameters.

        Parameters
        ----------
        family : VariationalFamily
            Updated in place.
        gradient : np.ndarray
            ELBO gradient estimate with respect to phi.
        state : OptimizerState
            Updated in place.

        Returns
        -------
        np.ndarray
            The updated phi.

        Raises
        ------
        OptimizationFailure
            If the step produces non-finite parameters; ``family`` keeps its
            previous parameters in that case.
        """
        gradient = np.asarray(gradient, dtype=float)
        sq = gradient ** 2
        state.iteration += 1
        if state.sq_grad is None:
            state.sq_grad = sq
        else:
            state.sq_grad = self.memory_weight * sq + (1.0 - self.memory_weight) * state.sq_grad

        with np.errstate(over="ignore", invalid="ignore"):
            phi = family.parameters() + self.learning_rate(state) * gradient
        if not np.all(np.isfinite(phi)):
            raise OptimizationFailure("step produced non-finite variational parameters",
                                      iteration=state.iteration)
        family.set_parameters(phi)
        return phi


class ConvergenceWindow:
    """
    Ring buffer of the most recent ELBO estimates.

    Convergence is declared when the buffer is full and the relative change
    between the mean of its older half and the mean of its newer half drops
    below a tolerance. For odd sizes the middle value belongs to neither half.

    Parameters
    ----------
    size : int
        Capacity W (>= 2).
    """

    def __init__(self, size: int):
        if isinstance(size, bool) or not isinstance(size, int) or size < 2:
            raise ValueError("window size must be an integer >= 2")
        self.size = size
        self._values = deque(maxlen=size)

    def push(self, value: float):
        self._values.append(float(value))

    def reset(self):
        self._values.clear()

    def __len__(self):
        return len(self._values)

    @property
    def is_full(self) -> bool:
        return len(self._values) == self.size

    def values(self) -> np.ndarray:
        return np.array(self._values)

    def relative_change(self) -> float:
        """
        |mean(newer half) - mean(older half)| / |mean(newer half)|, or NaN
        while the window is not full or holds non-finite values.
        """
        if not self.is_full:
            return float("nan")
        values = self.values()
        if not np.all(np.isfinite(values)):
            return float("nan")
        half = self.size // 2
        older, newer = values[:half].mean(), values[-half:].mean()
        diff = abs(newer - older)
        if newer == 0.0:
            return 0.0 if diff == 0.0 else float("inf")
        return float(diff / abs(newer))

    def converged(self, tol: float) -> bool:
        return bool(self.relative_change() < tol)

    def all_non_finite(self) -> bool:
        """True when the window is full and none of its values is finite."""
        return self.is_full and not np.any(np.isfinite(self.values()))


class ParameterDrift:
    """
    Tracks the variational parameters over the last ``size`` steps and
    measures how consistently each coordinate moves in one direction.

    For each coordinate the drift ratio is

        |phi_end - phi_start| / sum_t |phi_t - phi_{t-1}|,

    which is 1 for a coordinate moving monotonically and of order
    1/sqrt(size) for one fluctuating around a fixed point. A diverging run
    (e.g. an unbounded log-density, whose optimum sits at infinity) keeps
    some ratio close to 1, while its ELBO estimates can become too noisy for
    the convergence window to see their trend.

    Parameters
    ----------
    size : int
        Number of steps covered (>= 1); ``size + 1`` parameter vectors are kept.
    """

    def __init__(self, size: int):
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise ValueError("drift size must be a positive integer")
        self.size = size
        self._phis = deque(maxlen=size + 1)

    def push(self, phi):
        self._phis.append(np.array(phi, dtype=float))

    def reset(self):
        self._phis.clear()

    @property
    def is_full(self) -> bool:
        return len(self._phis) == self.size + 1

    def ratios(self) -> np.ndarray:
        """Per-coordinate drift ratios; NaN while fewer than ``size`` steps are held."""
        if not self.is_full:
            return np.full(len(self._phis[0]) if self._phis else 0, np.nan)
        path = np.array(self._phis)
        travelled = np.abs(np.diff(path, axis=0)).sum(axis=0)
        net = np.abs(path[-1] - path[0])
        with np.errstate(invalid="ignore", divide="ignore"):
            return np.where(travelled > 0.0, net / travelled, 0.0)

    def max_ratio(self) -> float:
        ratios = self.ratios()
        if ratios.size == 0 or np.any(np.isnan(ratios)):
            return float("nan")
        return float(ratios.max())

    def drifting(self, threshold: float) -> bool:
        """True unless every coordinate's drift ratio is at most ``threshold``."""
        return not bool(self.max_ratio() <= threshold)
