# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the estimator class for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
import numpy as np

from .advi import ADVI_fit
from .config import ADVIConfig
from .models import ModelEvaluator
from .transforms import ParameterSpec, Transform


def validate_params(params):
    """
    Validate and normalize parameter declarations.

    Accepts ``ParameterSpec`` instances, or dicts / tuples with the
    ``ParameterSpec`` fields, e.g. ``{'name': 'sigma', 'constraint': 'positive'}``
    or ``('p', 'simplex', 3)``.

    Returns
    -------
    Transform

    Raises
    ------
    ValueError
        If the input is malformed.
    """
    if isinstance(params, Transform):
        return params
    if not isinstance(params, (list, tuple)) or len(params) == 0:
        raise ValueError("params must be a non-empty list of parameter declarations")

    specs = []
    for p in params:
        if isinstance(p, ParameterSpec):
            specs.append(p)
        elif isinstance(p, dict):
            specs.append(ParameterSpec(**p))
        elif isinstance(p, (list, tuple)):
            specs.append(ParameterSpec(*p))
        else:
            raise ValueError(f"cannot interpret parameter declaration {p!r}")
    return Transform(specs)


# =============================================================================
# The ADVI class
# =============================================================================
class ADVI:
    """
    Automatic Differentiation Variational Inference.

    High-level interface that fits a Gaussian approximation (mean-field or
    full-rank) on the unconstrained coordinates of a model's parameters and
    draws approximate-posterior samples in the original parameter space.

    Parameters
    ----------
    params : list
        Parameter declarations (see ``validate_params``).
    family : {'meanfield', 'fullrank'}, default='meanfield'
        Variational family.
    **config : dict
        Any other ``ADVIConfig`` field, e.g. ``n_samples=20``,
        ``random_seed=1``.

    Attributes
    ----------
    is_fitted : bool
        Indicates whether the model has been fitted.
    result : ADVIResult
        Outcome of the last fit.
    """

    def __init__(self, params, family: str = "meanfield", **config):
        self.transform = validate_params(params)
        self.config = ADVIConfig.from_kwargs(family=family, **config)
        self.is_fitted = False

    def fit(self, model, verbose=True, cancel=None):
        """
        Fit the variational approximation.

        Parameters
        ----------
        model : ModelEvaluator
            Joint log-density and gradient on the constrained parameters.
        verbose : bool, default=True
            Whether to print the start/end panels and a progress bar.
        cancel : object with ``is_set()``, optional
            External cancellation signal checked between iterations.

        Returns
        -------
        ADVI
            The fitted estimator.
        """
        if not isinstance(model, ModelEvaluator):
            raise ValueError("`model` must implement ModelEvaluator")
        self.result = ADVI_fit(model, self.transform, self.config, cancel=cancel, verbose=verbose)
        self.is_fitted = True
        return self

    def _check_fitted(self):
        if self.is_fitted == False:
            raise Exception("ADVI model is not trained yet. Call fit() first.")

    def get_result(self):
        self._check_fitted()
        return self.result

    def get_variational_estimates(self):
        """
        Returns the variational estimates on the unconstrained coordinates.

        Returns
        -------
        dict
            Dictionary containing:
            - 'mu': mean vector.
            - 'sigma': standard deviations (mean-field), or
            - 'L': Cholesky factor of the covariance (full-rank).
        """
        self._check_fitted()
        family = self.result.family
        if self.config.family == "fullrank":
            return {'mu': family.mean(), 'L': family.L.copy()}
        return {'mu': family.mean(), 'sigma': family.std()}

    def get_elbo(self):
        """
        Returns the ELBO estimates recorded during training.

        Returns
        -------
        np.ndarray
        """
        self._check_fitted()
        return np.array(self.result.elbo_history)

    def get_status(self):
        self._check_fitted()
        return self.result.status

    def draw_posterior_sample(self, rng=None):
        """One approximate-posterior draw as ``{name: value}``."""
        self._check_fitted()
        return self.transform.unpack(self.result.draw_posterior_sample(rng))

    def draw(self, n: int, seed=None):
        """``n`` approximate-posterior draws as ``{name: array}``."""
        self._check_fitted()
        return self.result.draw(n, seed)

    def get_posterior_means(self, n: int = 1000, seed=None):
        """
        Monte Carlo posterior means in the constrained space.

        Returns
        -------
        dict
            ``{name: mean}``.
        """
        draws = self.draw(n, seed)
        return {name: values.mean(axis=0) for name, values in draws.items()}
