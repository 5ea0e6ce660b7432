# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the constrained-to-unconstrained parameter transforms
# for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.special import expit, logit, log_expit

from .errors import DomainError

CONSTRAINTS = ("real", "positive", "lower", "upper", "interval", "ordered", "simplex")


@dataclass(frozen=True)
class ParameterSpec:
    """
    Declaration of one model parameter.

    Parameters
    ----------
    name : str
        Identifier, unique within a model.
    constraint : str, default='real'
        One of 'real', 'positive', 'lower', 'upper', 'interval', 'ordered'
        or 'simplex'.
    size : int, default=1
        Number of constrained coordinates (a simplex needs at least 2).
    lower, upper : float, optional
        Bounds, required by 'lower' (lower), 'upper' (upper) and
        'interval' (both). Must be absent for the other kinds.
    """

    name: str
    constraint: str = "real"
    size: int = 1
    lower: Optional[float] = None
    upper: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("parameter name must be a non-empty string")
        if self.constraint not in CONSTRAINTS:
            raise ValueError(f"{self.name}: unknown constraint {self.constraint!r}, "
                             f"expected one of {CONSTRAINTS}")
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size < 1:
            raise ValueError(f"{self.name}: size must be an integer >= 1")
        if self.constraint == "simplex" and self.size < 2:
            raise ValueError(f"{self.name}: a simplex needs size >= 2")

        needs_lower = self.constraint in ("lower", "interval")
        needs_upper = self.constraint in ("upper", "interval")
        if needs_lower != (self.lower is not None):
            raise ValueError(f"{self.name}: 'lower' is {'required' if needs_lower else 'not allowed'} "
                             f"for constraint {self.constraint!r}")
        if needs_upper != (self.upper is not None):
            raise ValueError(f"{self.name}: 'upper' is {'required' if needs_upper else 'not allowed'} "
                             f"for constraint {self.constraint!r}")
        for bound in (self.lower, self.upper):
            if bound is not None and not np.isfinite(bound):
                raise ValueError(f"{self.name}: bounds must be finite")
        if self.constraint == "interval" and not self.lower < self.upper:
            raise ValueError(f"{self.name}: 'lower' must be smaller than 'upper'")

    @property
    def unconstrained_size(self) -> int:
        """Number of real coordinates the parameter occupies after transformation."""
        return self.size - 1 if self.constraint == "simplex" else self.size


# =============================================================================
# Per-constraint bijections
# =============================================================================
# Each map works on the block of one parameter. `inverse` goes from real
# coordinates z to constrained values; `log_det` is log|det J| of `inverse`;
# `vjp` pulls a gradient w.r.t. the constrained values back to z.

class _Identity:
    def __init__(self, spec):
        self.spec = spec

    def check(self, theta):
        if not np.all(np.isfinite(theta)):
            raise DomainError(f"{self.spec.name}: value must be finite",
                              {"parameter": self.spec.name})

    def forward(self, theta):
        self.check(theta)
        return theta.copy()

    def inverse(self, z):
        return z.copy()

    def log_det(self, z):
        return 0.0

    def vjp(self, z, g):
        return g.copy()

    def grad_log_det(self, z):
        return np.zeros_like(z)


class _LowerBound(_Identity):
    def __init__(self, spec, lower):
        super().__init__(spec)
        self.lower = lower

    def forward(self, theta):
        self.check(theta)
        if np.any(theta <= self.lower):
            raise DomainError(f"{self.spec.name}: value must be greater than {self.lower}",
                              {"parameter": self.spec.name})
        return np.log(theta - self.lower)

    def inverse(self, z):
        return self.lower + np.exp(z)

    def log_det(self, z):
        return float(np.sum(z))

    def vjp(self, z, g):
        return g * np.exp(z)

    def grad_log_det(self, z):
        return np.ones_like(z)


class _UpperBound(_LowerBound):
    def __init__(self, spec, upper):
        super().__init__(spec, lower=None)
        self.upper = upper

    def forward(self, theta):
        self.check(theta)
        if np.any(theta >= self.upper):
            raise DomainError(f"{self.spec.name}: value must be smaller than {self.upper}",
                              {"parameter": self.spec.name})
        return np.log(self.upper - theta)

    def inverse(self, z):
        return self.upper - np.exp(z)

    def vjp(self, z, g):
        return -g * np.exp(z)


class _Interval(_Identity):
    def __init__(self, spec):
        super().__init__(spec)
        self.lower, self.upper = spec.lower, spec.upper
        self.width = spec.upper - spec.lower

    def forward(self, theta):
        self.check(theta)
        if np.any(theta <= self.lower) or np.any(theta >= self.upper):
            raise DomainError(f"{self.spec.name}: value must lie in ({self.lower}, {self.upper})",
                              {"parameter": self.spec.name})
        return logit((theta - self.lower) / self.width)

    def inverse(self, z):
        return self.lower + self.width * expit(z)

    def log_det(self, z):
        return float(np.sum(np.log(self.width) + log_expit(z) + log_expit(-z)))

    def vjp(self, z, g):
        s = expit(z)
        return g * self.width * s * (1.0 - s)

    def grad_log_det(self, z):
        return 1.0 - 2.0 * expit(z)


class _Ordered(_Identity):
    # theta_0 = z_0, theta_k = theta_{k-1} + exp(z_k)

    def forward(self, theta):
        self.check(theta)
        steps = np.diff(theta)
        if np.any(steps <= 0):
            raise DomainError(f"{self.spec.name}: values must be strictly increasing",
                              {"parameter": self.spec.name})
        return np.concatenate((theta[:1], np.log(steps)))

    def inverse(self, z):
        return np.cumsum(np.concatenate((z[:1], np.exp(z[1:]))))

    def log_det(self, z):
        return float(np.sum(z[1:]))

    def vjp(self, z, g):
        tail = np.cumsum(g[::-1])[::-1]
        out = tail.copy()
        out[1:] *= np.exp(z[1:])
        return out

    def grad_log_det(self, z):
        out = np.ones_like(z)
        out[0] = 0.0
        return out


class _Simplex(_Identity):
    """
    Stick-breaking map from K-1 reals onto the K-simplex. The offsets
    log(K-1-k) send z = 0 to the uniform simplex.
    """

    def __init__(self, spec, tol=1e-8):
        super().__init__(spec)
        K = spec.size
        self.offsets = np.log(np.arange(K - 1, 0, -1, dtype=float))
        self.tol = tol

    def forward(self, theta):
        self.check(theta)
        if np.any(theta <= 0) or abs(np.sum(theta) - 1.0) > self.tol:
            raise DomainError(f"{self.spec.name}: value must be a strictly positive vector summing to 1",
                              {"parameter": self.spec.name})
        stick = 1.0 - np.concatenate(([0.0], np.cumsum(theta[:-2])))
        return logit(theta[:-1] / stick) + self.offsets

    def _breaks(self, z):
        fractions = expit(z - self.offsets)
        sticks = np.empty_like(fractions)
        stick = 1.0
        for k, frac in enumerate(fractions):
            sticks[k] = stick
            stick = stick * (1.0 - frac)
        return fractions, sticks, stick

    def inverse(self, z):
        fractions, sticks, last = self._breaks(z)
        return np.append(sticks * fractions, last)

    def log_det(self, z):
        shifted = z - self.offsets
        _, sticks, _ = self._breaks(z)
        return float(np.sum(log_expit(shifted) + log_expit(-shifted) + np.log(sticks)))

    def _backward(self, z, g, log_det_weight):
        # reverse sweep over the breaks; `adj` is the adjoint of the stick left
        # after break k
        fractions, sticks, _ = self._breaks(z)
        out = np.empty_like(z)
        adj = g[-1]
        for k in range(z.size - 1, -1, -1):
            frac, stick = fractions[k], sticks[k]
            out[k] = ((g[k] - adj) * stick * frac * (1.0 - frac)
                      + log_det_weight * (1.0 - 2.0 * frac))
            adj = g[k] * frac + adj * (1.0 - frac) + log_det_weight / stick
        return out

    def vjp(self, z, g):
        return self._backward(z, g, 0.0)

    def grad_log_det(self, z):
        return self._backward(z, np.zeros(z.size + 1), 1.0)


def _make_bijection(spec: ParameterSpec):
    if spec.constraint == "real":
        return _Identity(spec)
    if spec.constraint == "positive":
        return _LowerBound(spec, 0.0)
    if spec.constraint == "lower":
        return _LowerBound(spec, float(spec.lower))
    if spec.constraint == "upper":
        return _UpperBound(spec, float(spec.upper))
    if spec.constraint == "interval":
        return _Interval(spec)
    if spec.constraint == "ordered":
        return _Ordered(spec)
    return _Simplex(spec)


# =============================================================================
# The Transform over a full parameter list
# =============================================================================
class Transform:
    """
    Bijection between the constrained parameter vector theta (length D, the
    parameters' values concatenated in declaration order) and the
    unconstrained vector zeta in R^K.

    K equals D except for simplex parameters, each of which loses one
    coordinate. The object is immutable and holds no state besides the
    parameter declarations.

    Parameters
    ----------
    params : sequence of ParameterSpec
        Ordered parameter declarations; names must be unique.
    """

    def __init__(self, params):
        params = tuple(params)
        if len(params) == 0:
            raise ValueError("at least one parameter is required")
        for p in params:
            if not isinstance(p, ParameterSpec):
                raise ValueError("params must be ParameterSpec instances")
        names = [p.name for p in params]
        if len(set(names)) != len(names):
            raise ValueError("parameter names must be unique")

        self._params = params
        self._maps = tuple(_make_bijection(p) for p in params)

        theta_slices, zeta_slices = [], []
        i = j = 0
        for p in params:
            theta_slices.append(slice(i, i + p.size))
            zeta_slices.append(slice(j, j + p.unconstrained_size))
            i += p.size
            j += p.unconstrained_size
        self._theta_slices = tuple(theta_slices)
        self._zeta_slices = tuple(zeta_slices)
        self._theta_dim = i
        self._dim = j

    @property
    def params(self):
        return self._params

    @property
    def names(self):
        return tuple(p.name for p in self._params)

    @property
    def dim(self) -> int:
        """K, the number of unconstrained coordinates."""
        return self._dim

    @property
    def theta_dim(self) -> int:
        """D, the number of constrained coordinates."""
        return self._theta_dim

    def _blocks(self):
        return zip(self._maps, self._theta_slices, self._zeta_slices)

    def _as_vector(self, x, expected, label):
        x = np.asarray(x, dtype=float).reshape(-1)
        if x.size != expected:
            raise DomainError(f"{label} must have length {expected}, got {x.size}")
        return x

    def forward(self, theta) -> np.ndarray:
        """
        Maps constrained values to unconstrained coordinates.

        Raises
        ------
        DomainError
            If any value lies outside its parameter's support.
        """
        theta = self._as_vector(theta, self._theta_dim, "theta")
        zeta = np.empty(self._dim)
        for bij, ts, zs in self._blocks():
            zeta[zs] = bij.forward(theta[ts])
        return zeta

    def inverse(self, zeta) -> np.ndarray:
        """Maps unconstrained coordinates to constrained values."""
        zeta = self._as_vector(zeta, self._dim, "zeta")
        theta = np.empty(self._theta_dim)
        for bij, ts, zs in self._blocks():
            theta[ts] = bij.inverse(zeta[zs])
        return theta

    def log_det_jacobian_inverse(self, zeta) -> float:
        """log |det J| of ``inverse`` at ``zeta``, summed over parameters."""
        zeta = self._as_vector(zeta, self._dim, "zeta")
        return float(sum(bij.log_det(zeta[zs]) for bij, _, zs in self._blocks()))

    def grad_log_det_jacobian_inverse(self, zeta) -> np.ndarray:
        """Gradient of ``log_det_jacobian_inverse`` with respect to ``zeta``."""
        zeta = self._as_vector(zeta, self._dim, "zeta")
        out = np.empty(self._dim)
        for bij, _, zs in self._blocks():
            out[zs] = bij.grad_log_det(zeta[zs])
        return out

    def inverse_vjp(self, zeta, grad_theta) -> np.ndarray:
        """
        Pulls a gradient with respect to theta back to zeta, i.e. returns
        J^T grad_theta where J is the Jacobian of ``inverse`` at ``zeta``.
        """
        zeta = self._as_vector(zeta, self._dim, "zeta")
        grad_theta = self._as_vector(grad_theta, self._theta_dim, "gradient")
        out = np.empty(self._dim)
        for bij, ts, zs in self._blocks():
            out[zs] = bij.vjp(zeta[zs], grad_theta[ts])
        return out

    def unpack(self, theta) -> dict:
        """Splits a flat theta into ``{name: value}``; size-1 parameters become floats."""
        theta = self._as_vector(theta, self._theta_dim, "theta")
        out = {}
        for p, ts in zip(self._params, self._theta_slices):
            block = theta[ts]
            out[p.name] = float(block[0]) if p.size == 1 else block.copy()
        return out

    def pack(self, values) -> np.ndarray:
        """Concatenates ``{name: value}`` into a flat theta in declaration order."""
        theta = np.empty(self._theta_dim)
        for p, ts in zip(self._params, self._theta_slices):
            if p.name not in values:
                raise ValueError(f"missing value for parameter '{p.name}'")
            block = np.asarray(values[p.name], dtype=float).reshape(-1)
            if block.size != p.size:
                raise ValueError(f"parameter '{p.name}' expects {p.size} value(s), got {block.size}")
            theta[ts] = block
        return theta

    def labels(self) -> list:
        """Column labels of the constrained coordinates: ``name`` or ``name[i]``."""
        out = []
        for p in self._params:
            if p.size == 1:
                out.append(p.name)
            else:
                out.extend(f"{p.name}[{i}]" for i in range(p.size))
        return out

    def zeta_slice(self, name) -> slice:
        """Unconstrained coordinates occupied by parameter ``name``."""
        for p, zs in zip(self._params, self._zeta_slices):
            if p.name == name:
                return zs
        raise KeyError(name)

    def __repr__(self):
        decl = ", ".join(f"{p.name}:{p.constraint}[{p.size}]" for p in self._params)
        return f"Transform({decl})"
