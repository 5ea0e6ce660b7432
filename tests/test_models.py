# tests/test_models.py
"""Tests for the model evaluators."""

import numpy as np
import pytest
import torch

from ADVI import ADVI_fit, ADVIConfig, DomainError, FunctionModel, ParameterSpec, TorchModel


class TestFunctionModel:

    def test_uses_supplied_gradient(self):
        model = FunctionModel(lambda x: -np.sum(x ** 2), lambda x: -2.0 * x)
        value, grad = model.log_joint_density_and_gradient(np.array([1.0, -2.0]))
        assert value == pytest.approx(-5.0)
        np.testing.assert_allclose(grad, [-2.0, 4.0])

    def test_finite_difference_gradient(self):
        model = FunctionModel(lambda x: np.sin(x[0]) * x[1])
        value, grad = model.log_joint_density_and_gradient(np.array([0.4, 2.0]))
        assert value == pytest.approx(np.sin(0.4) * 2.0)
        np.testing.assert_allclose(grad, [np.cos(0.4) * 2.0, np.sin(0.4)], rtol=1e-6)

    def test_finite_difference_gradient_is_vector_valued(self):
        model = FunctionModel(lambda x: -0.5 * np.sum(x ** 2), unconstrained=True)
        _, grad = model.log_joint_density_and_gradient(np.array([1.0, 0.5, -3.0]))
        assert grad.shape == (3,)
        np.testing.assert_allclose(grad, [-1.0, -0.5, 3.0], rtol=1e-6, atol=1e-7)

    def test_constrained_by_default(self):
        assert not FunctionModel(lambda x: 0.0).unconstrained

    def test_domain_error_propagates(self):
        def log_density(x):
            raise DomainError("outside support")

        with pytest.raises(DomainError):
            FunctionModel(log_density).log_joint_density_and_gradient(np.zeros(1))

    @pytest.mark.parametrize("args", [(1.0,), (lambda x: 0.0, "grad")])
    def test_rejects_non_callables(self, args):
        with pytest.raises(ValueError, match="callable"):
            FunctionModel(*args)


class TestTorchModel:
    """Gradients by reverse-mode automatic differentiation."""

    def test_gradient_matches_analytic(self):
        def log_density(theta):
            return -0.5 * torch.sum((theta - 1.0) ** 2) + torch.log(theta[1])

        value, grad = TorchModel(log_density).log_joint_density_and_gradient(np.array([0.5, 2.0]))
        assert value == pytest.approx(-0.5 * (0.25 + 1.0) + np.log(2.0))
        np.testing.assert_allclose(grad, [0.5, -1.0 + 0.5])
        assert grad.dtype == np.float64

    def test_distribution_log_prob(self):
        def log_density(theta):
            return torch.distributions.Normal(2.0, 3.0).log_prob(theta).sum()

        value, grad = TorchModel(log_density).log_joint_density_and_gradient(np.array([5.0]))
        assert value == pytest.approx(-0.5 - np.log(3.0) - 0.5 * np.log(2.0 * np.pi))
        np.testing.assert_allclose(grad, [-1.0 / 3.0], rtol=1e-6)

    def test_out_of_support_is_domain_error(self):
        def log_density(theta):
            return torch.distributions.Exponential(1.0, validate_args=True).log_prob(theta[0])

        model = TorchModel(log_density)
        with pytest.raises(DomainError):
            model.log_joint_density_and_gradient(np.array([-1.0]))

    def test_unused_coordinates_get_zero_gradient(self):
        model = TorchModel(lambda theta: torch.tensor(1.5, dtype=torch.float64))
        value, grad = model.log_joint_density_and_gradient(np.zeros(3))
        assert value == pytest.approx(1.5)
        np.testing.assert_array_equal(grad, np.zeros(3))

    def test_unconstrained_flag(self):
        model = TorchModel(lambda zeta: -0.5 * torch.sum(zeta ** 2), unconstrained=True)
        assert model.unconstrained
        assert not TorchModel(lambda x: x.sum()).unconstrained
        _, grad = model.log_joint_density_and_gradient(np.array([1.0, -2.0]))
        np.testing.assert_allclose(grad, [-1.0, 2.0])

    def test_rejects_non_callable(self):
        with pytest.raises(ValueError):
            TorchModel(None)


class TestBetaBinomial:
    """6 successes in 9 trials with a uniform prior: posterior Beta(7, 4)."""

    def test_posterior_mean(self):
        def log_density(theta):
            p = theta[0]
            return 6.0 * torch.log(p) + 3.0 * torch.log1p(-p)

        config = ADVIConfig(n_samples=20, random_seed=4, max_iterations=3000)
        result = ADVI_fit(TorchModel(log_density), [ParameterSpec("p", "interval", lower=0.0, upper=1.0)],
                          config)
        draws = result.draw(4000, seed=0)["p"]
        assert np.all((draws > 0.0) & (draws < 1.0))
        assert draws.mean() == pytest.approx(7.0 / 11.0, abs=0.08)
