# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the model-evaluator interface for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
from abc import ABC, abstractmethod

import numpy as np
import torch
from scipy.optimize import approx_fprime

from .errors import DomainError


class ModelEvaluator(ABC):
    """
    Joint log-density of a probabilistic model and its gradient.

    The engine treats the model as opaque: however the log-density terms are
    accumulated internally, only the total and its gradient at a point are
    consumed.

    Attributes
    ----------
    unconstrained : bool
        If True the evaluator is called with the unconstrained vector zeta
        (length K) and returns log p(y, T^{-1}(zeta)) with its gradient with
        respect to zeta (length K). If False (default) it is called with the
        constrained vector theta (length D) and returns the gradient with
        respect to theta; the engine applies the chain rule through the
        inverse transform. In both cases the log-Jacobian of the inverse
        transform is added by the engine, not by the evaluator.
    """

    unconstrained = False

    @abstractmethod
    def log_joint_density_and_gradient(self, x: np.ndarray):
        """
        Evaluates log p(y, theta) and its gradient.

        Parameters
        ----------
        x : np.ndarray
            zeta of shape (K,) if ``unconstrained``, else the flat constrained
            theta of shape (D,), parameters concatenated in declaration order.

        Returns
        -------
        tuple of (float, np.ndarray of the same shape as ``x``)

        Raises
        ------
        DomainError
            If ``x`` maps outside the support of the model.
        """


class FunctionModel(ModelEvaluator):
    """
    Wraps plain NumPy callables.

    Parameters
    ----------
    log_density : callable
        ``log_density(x) -> float``.
    gradient : callable, optional
        ``gradient(x) -> np.ndarray``. If omitted, the gradient is estimated
        by forward finite differences (``scipy.optimize.approx_fprime``) with
        step ``h``; prefer ``TorchModel`` for exact gradients.
    h : float, default=sqrt(machine epsilon)
        Finite-difference step.
    unconstrained : bool, default=False
        Whether the callables take zeta instead of theta
        (see ``ModelEvaluator``).
    """

    def __init__(self, log_density, gradient=None, h: float = np.sqrt(np.finfo(float).eps),
                 unconstrained: bool = False):
        if not callable(log_density):
            raise ValueError("`log_density` must be a callable function")
        if gradient is not None and not callable(gradient):
            raise ValueError("`gradient` must be a callable function")
        self.log_density = log_density
        self.gradient = gradient
        self.h = h
        self.unconstrained = bool(unconstrained)

    def log_joint_density_and_gradient(self, x):
        x = np.asarray(x, dtype=float)
        value = float(self.log_density(x))
        if self.gradient is None:
            grad = np.asarray(approx_fprime(x, self.log_density, self.h), dtype=float).reshape(-1)
        else:
            grad = np.asarray(self.gradient(x), dtype=float).reshape(-1)
        return value, grad


class TorchModel(ModelEvaluator):
    """
    Log-density written with torch operations; the gradient is obtained by
    reverse-mode automatic differentiation.

    Parameters
    ----------
    log_density : callable
        ``log_density(x: torch.Tensor) -> torch.Tensor`` (scalar).
    dtype : torch.dtype, default=torch.float64
    unconstrained : bool, default=False
        Whether ``log_density`` takes zeta instead of theta
        (see ``ModelEvaluator``).

    Notes
    -----
    ``ValueError`` raised inside ``log_density`` (e.g. by
    ``torch.distributions`` with ``validate_args=True`` on an out-of-support
    value) is reported as a ``DomainError``.
    """

    def __init__(self, log_density, dtype=torch.float64, unconstrained: bool = False):
        if not callable(log_density):
            raise ValueError("`log_density` must be a callable function")
        self.log_density = log_density
        self.dtype = dtype
        self.unconstrained = bool(unconstrained)

    def log_joint_density_and_gradient(self, x):
        x_t = torch.tensor(np.asarray(x, dtype=float), dtype=self.dtype, requires_grad=True)
        try:
            lp = self.log_density(x_t)
        except ValueError as err:
            raise DomainError(str(err)) from err
        lp = torch.as_tensor(lp, dtype=self.dtype)
        if lp.dim() != 0:
            lp = lp.sum()
        grad = None
        if lp.requires_grad:
            (grad,) = torch.autograd.grad(lp, x_t, allow_unused=True)
        if grad is None:
            grad = torch.zeros_like(x_t)
        return float(lp.detach().item()), grad.detach().cpu().numpy().astype(float)
