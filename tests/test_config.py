# tests/test_config.py
"""Tests for ADVIConfig."""

import pytest

from ADVI import ADVIConfig


class TestADVIConfig:
    """Tests for defaults and validation of the run configuration."""

    def test_defaults(self):
        config = ADVIConfig()
        assert config.family == "meanfield"
        assert config.n_samples == 10
        assert config.max_iterations == 10000
        assert config.convergence_tolerance == pytest.approx(0.01)
        assert config.convergence_window_size == 100
        assert config.drift_threshold == pytest.approx(0.5)
        assert config.initial_step_size == pytest.approx(1.0)
        assert config.random_seed is None
        assert config.jacobian is True
        assert config.adapt_engaged is False

    def test_frozen(self):
        config = ADVIConfig()
        with pytest.raises(AttributeError):
            config.n_samples = 3

    def test_updated_returns_validated_copy(self):
        config = ADVIConfig()
        other = config.updated(n_samples=50, family="fullrank")
        assert other.n_samples == 50
        assert other.family == "fullrank"
        assert config.n_samples == 10
        with pytest.raises(ValueError, match="n_samples"):
            config.updated(n_samples=0)

    def test_from_kwargs_rejects_unknown(self):
        with pytest.raises(ValueError, match="unknown configuration option"):
            ADVIConfig.from_kwargs(n_sample=3)

    @pytest.mark.parametrize("field,value", [
        ("family", "lowrank"),
        ("n_samples", 0),
        ("n_samples", 2.5),
        ("n_samples", True),
        ("max_iterations", 0),
        ("convergence_window_size", 1),
        ("convergence_tolerance", 0.0),
        ("convergence_tolerance", -1.0),
        ("drift_threshold", 0.0),
        ("drift_threshold", 1.5),
        ("initial_step_size", 0.0),
        ("memory_weight", 0.0),
        ("memory_weight", 1.5),
        ("tau", -1.0),
        ("decay_epsilon", 0.5),
        ("max_sample_retries", -1),
        ("iteration_retries", -1),
        ("n_workers", 0),
        ("adapt_iterations", 1),
        ("step_size_candidates", ()),
        ("step_size_candidates", (1.0, -1.0)),
        ("random_seed", 1.5),
        ("init", [1.0]),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError, match=field):
            ADVIConfig(**{field: value})

    def test_zero_retries_allowed(self):
        config = ADVIConfig(max_sample_retries=0, iteration_retries=0)
        assert config.max_sample_retries == 0
