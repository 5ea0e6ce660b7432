# tests/test_classes.py
"""Tests for the high-level ADVI estimator."""

import numpy as np
import pytest

from ADVI import ADVI, FunctionModel, ParameterSpec, Status, Transform
from ADVI.ADVI_classes import validate_params


def shifted_normal():
    """Independent N(1, 1) on x and LogNormal(0, 1) on s."""
    def log_density(theta):
        x, s = theta
        return -0.5 * (x - 1.0) ** 2 - np.log(s) - 0.5 * np.log(s) ** 2

    def gradient(theta):
        x, s = theta
        return np.array([-(x - 1.0), -(1.0 + np.log(s)) / s])

    return FunctionModel(log_density, gradient)


class TestValidateParams:

    def test_accepts_mixed_declarations(self):
        transform = validate_params([ParameterSpec("a"), {"name": "s", "constraint": "positive"},
                                     ("w", "simplex", 3)])
        assert transform.names == ("a", "s", "w")
        assert transform.theta_dim == 5
        assert transform.dim == 4

    def test_transform_passes_through(self):
        transform = Transform([ParameterSpec("a")])
        assert validate_params(transform) is transform

    @pytest.mark.parametrize("params", [[], "x", [42]])
    def test_rejects_malformed(self, params):
        with pytest.raises(ValueError):
            validate_params(params)


@pytest.fixture(scope="module")
def fitted():
    advi = ADVI([("x",), ("s", "positive")], n_samples=20, random_seed=0, max_iterations=3000)
    return advi.fit(shifted_normal(), verbose=False)


class TestADVI:

    def test_not_fitted(self):
        advi = ADVI([ParameterSpec("x")])
        assert not advi.is_fitted
        with pytest.raises(Exception, match="not trained yet"):
            advi.get_variational_estimates()

    def test_fit_returns_self(self, fitted):
        assert isinstance(fitted, ADVI)
        assert fitted.is_fitted
        assert fitted.get_status() in (Status.CONVERGED, Status.MAX_ITERATIONS_REACHED)

    def test_variational_estimates(self, fitted):
        estimates = fitted.get_variational_estimates()
        assert set(estimates) == {"mu", "sigma"}
        np.testing.assert_allclose(estimates["mu"], [1.0, 0.0], atol=0.3)
        np.testing.assert_allclose(estimates["sigma"], [1.0, 1.0], atol=0.3)

    def test_elbo_trace(self, fitted):
        elbo = fitted.get_elbo()
        assert isinstance(elbo, np.ndarray)
        assert elbo.shape == (fitted.get_result().iterations,)

    def test_single_draw_by_name(self, fitted):
        draw = fitted.draw_posterior_sample(np.random.default_rng(0))
        assert set(draw) == {"x", "s"}
        assert isinstance(draw["s"], float)
        assert draw["s"] > 0

    def test_posterior_means(self, fitted):
        means = fitted.get_posterior_means(n=4000, seed=1)
        assert means["x"] == pytest.approx(1.0, abs=0.3)
        # E[s] for LogNormal(0, 1) is exp(0.5)
        assert means["s"] == pytest.approx(np.exp(0.5), abs=0.6)

    def test_fullrank_estimates(self):
        advi = ADVI([ParameterSpec("x", size=2)], family="fullrank", n_samples=5, max_iterations=20,
                    random_seed=0)
        model = FunctionModel(lambda x: -0.5 * np.sum(x ** 2), lambda x: -x)
        estimates = advi.fit(model, verbose=False).get_variational_estimates()
        assert set(estimates) == {"mu", "L"}
        assert estimates["L"].shape == (2, 2)
        assert estimates["L"][0, 1] == 0.0

    def test_verbose_run(self, capsys):
        advi = ADVI([ParameterSpec("x")], n_samples=3, max_iterations=10, random_seed=0)
        advi.fit(FunctionModel(lambda x: -0.5 * x[0] ** 2, lambda x: -x), verbose=True)
        assert "ADVI" in capsys.readouterr().out

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="unknown configuration option"):
            ADVI([ParameterSpec("x")], step=0.1)

    def test_model_must_be_an_evaluator(self):
        with pytest.raises(ValueError, match="ModelEvaluator"):
            ADVI([ParameterSpec("x")]).fit(lambda x: 0.0)
