# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the Gaussian variational families for the ADVI algorithm as developed in:
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

from .utils import GAUSSIAN_ENTROPY_CONST


class VariationalFamily(ABC):
    """
    Gaussian approximation q(zeta; phi) over the K unconstrained coordinates.

    Draws follow the reparameterization trick: a parameter-free
    eps ~ N(0, I_K) is pushed through a deterministic map zeta = T_phi(eps),
    so gradients with respect to phi never pass through the generator.
    """

    def __init__(self, dim: int):
        if isinstance(dim, bool) or not isinstance(dim, int) or dim < 1:
            raise ValueError("dimension must be a positive integer")
        self.dim = dim

    @property
    def n_params(self) -> int:
        return self.parameters().size

    @abstractmethod
    def parameters(self) -> np.ndarray:
        """Flat copy of phi."""

    @abstractmethod
    def set_parameters(self, phi) -> None:
        """Replaces phi with a copy of ``phi``."""

    @abstractmethod
    def transform_draw(self, eps: np.ndarray) -> np.ndarray:
        """Deterministic map from a standard-normal draw to zeta."""

    @abstractmethod
    def calc_grad(self, grad_zeta: np.ndarray, eps: np.ndarray) -> np.ndarray:
        """Gradient with respect to phi of f(T_phi(eps)), given grad_zeta = f'(zeta)."""

    @abstractmethod
    def entropy(self) -> float:
        """Closed-form entropy of q, constant included."""

    @abstractmethod
    def grad_entropy(self) -> np.ndarray:
        """Gradient of ``entropy`` with respect to phi."""

    @abstractmethod
    def mean(self) -> np.ndarray:
        pass

    @abstractmethod
    def covariance(self) -> np.ndarray:
        pass

    def std(self) -> np.ndarray:
        return np.sqrt(np.diag(self.covariance()))

    def sample_with_noise(self, rng: np.random.Generator):
        """Returns ``(zeta, eps)`` for one draw from q."""
        eps = rng.standard_normal(self.dim)
        return self.transform_draw(eps), eps

    def sample(self, rng: np.random.Generator) -> np.ndarray:
        return self.sample_with_noise(rng)[0]

    def copy(self):
        other = self.__class__(self.dim)
        other.set_parameters(self.parameters())
        return other

    def _checked(self, phi):
        phi = np.asarray(phi, dtype=float).reshape(-1)
        if phi.size != self.n_params:
            raise ValueError(f"expected {self.n_params} variational parameters, got {phi.size}")
        if not np.all(np.isfinite(phi)):
            raise ValueError("variational parameters must be finite")
        return phi


# =============================================================================
# Mean-field (diagonal) Gaussian
# =============================================================================
class MeanFieldGaussian(VariationalFamily):
    """
    Fully factorized Gaussian, phi = (mu_1..mu_K, omega_1..omega_K) with
    sigma_k = exp(omega_k). Linear memory in K; no correlations captured.

    Parameters
    ----------
    dim : int
        Number of unconstrained coordinates K.
    mu : np.ndarray of shape (K,), optional
        Initial mean. Defaults to zeros.
    omega : np.ndarray of shape (K,), optional
        Initial log standard deviations. Defaults to zeros (sigma = 1).
    """

    def __init__(self, dim: int, mu=None, omega=None):
        super().__init__(dim)
        self.mu = np.zeros(dim) if mu is None else np.asarray(mu, dtype=float).reshape(dim).copy()
        self.omega = np.zeros(dim) if omega is None else np.asarray(omega, dtype=float).reshape(dim).copy()

    @property
    def n_params(self) -> int:
        return 2 * self.dim

    def parameters(self):
        return np.concatenate((self.mu, self.omega))

    def set_parameters(self, phi):
        phi = self._checked(phi)
        self.mu = phi[:self.dim].copy()
        self.omega = phi[self.dim:].copy()

    def transform_draw(self, eps):
        return self.mu + np.exp(self.omega) * eps

    def calc_grad(self, grad_zeta, eps):
        # zeta = mu + exp(omega) * eps
        return np.concatenate((grad_zeta, grad_zeta * eps * np.exp(self.omega)))

    def entropy(self):
        return float(np.sum(self.omega) + self.dim * GAUSSIAN_ENTROPY_CONST)

    def grad_entropy(self):
        return np.concatenate((np.zeros(self.dim), np.ones(self.dim)))

    def mean(self):
        return self.mu.copy()

    def std(self):
        return np.exp(self.omega)

    def covariance(self):
        return np.diag(np.exp(2.0 * self.omega))

    def __repr__(self):
        return f"MeanFieldGaussian(dim={self.dim})"


# =============================================================================
# Full-rank Gaussian
# =============================================================================
class FullRankGaussian(VariationalFamily):
    """
    Gaussian with dense covariance Sigma = L L^T, phi = (mu, vech(L)) where
    vech stacks the lower triangle of L row by row. O(K^2) state.

    The Cholesky factor is unconstrained: the sign of a diagonal entry does
    not change Sigma, and the entropy uses |L_kk|.

    Parameters
    ----------
    dim : int
        Number of unconstrained coordinates K.
    mu : np.ndarray of shape (K,), optional
        Initial mean. Defaults to zeros.
    L : np.ndarray of shape (K, K), optional
        Initial lower-triangular factor. Defaults to the identity.
    """

    def __init__(self, dim: int, mu=None, L=None):
        super().__init__(dim)
        self._rows, self._cols = np.tril_indices(dim)
        self._diag = np.flatnonzero(self._rows == self._cols)
        self.mu = np.zeros(dim) if mu is None else np.asarray(mu, dtype=float).reshape(dim).copy()
        self.L = np.eye(dim) if L is None else np.tril(np.asarray(L, dtype=float).reshape(dim, dim))

    @property
    def n_params(self) -> int:
        return self.dim + self._rows.size

    def parameters(self):
        return np.concatenate((self.mu, self.L[self._rows, self._cols]))

    def set_parameters(self, phi):
        phi = self._checked(phi)
        self.mu = phi[:self.dim].copy()
        L = np.zeros((self.dim, self.dim))
        L[self._rows, self._cols] = phi[self.dim:]
        self.L = L

    def transform_draw(self, eps):
        return self.mu + self.L @ eps

    def calc_grad(self, grad_zeta, eps):
        # d zeta_i / d L_ij = eps_j for j <= i
        return np.concatenate((grad_zeta, grad_zeta[self._rows] * eps[self._cols]))

    def entropy(self):
        with np.errstate(divide="ignore"):
            logdiag = np.log(np.abs(np.diag(self.L)))
        return float(np.sum(logdiag) + self.dim * GAUSSIAN_ENTROPY_CONST)

    def grad_entropy(self):
        grad = np.zeros(self.n_params)
        with np.errstate(divide="ignore"):
            grad[self.dim + self._diag] = 1.0 / np.diag(self.L)
        return grad

    def mean(self):
        return self.mu.copy()

    def covariance(self):
        return self.L @ self.L.T

    def __repr__(self):
        return f"FullRankGaussian(dim={self.dim})"


def make_family(kind: str, dim: int) -> VariationalFamily:
    """
    Builds the variational family named by the configuration.

    Parameters
    ----------
    kind : {'meanfield', 'fullrank'}
    dim : int
        Number of unconstrained coordinates.
    """
    if kind == "meanfield":
        return MeanFieldGaussian(dim)
    if kind == "fullrank":
        return FullRankGaussian(dim)
    raise ValueError(f"unknown variational family {kind!r}")
