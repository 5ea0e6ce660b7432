# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the run configuration for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
from dataclasses import dataclass, field, fields, replace
from typing import Mapping, Optional, Tuple

FAMILIES = ("meanfield", "fullrank")


@dataclass(frozen=True)
class ADVIConfig:
    """
    Configuration of one ADVI run.

    Every default used by the engine lives here; nothing is read from
    process-wide state.

    Parameters
    ----------
    family : {'meanfield', 'fullrank'}, default='meanfield'
        Gaussian variational family over the unconstrained coordinates.
    n_samples : int, default=10
        Monte Carlo draws per ELBO/gradient estimate.
    max_iterations : int, default=10000
        Iteration budget of the main loop.
    convergence_tolerance : float, default=0.01
        Threshold on the relative change between the two halves of the
        convergence window.
    convergence_window_size : int, default=100
        Number of most recent ELBO estimates kept in the window (>= 2).
    drift_threshold : float, default=0.5
        Convergence is not accepted while some variational parameter has
        moved in one direction over the window: its net displacement divided
        by the total distance it travelled must stay at or below this value.
        1 switches the check off.
    initial_step_size : float, default=1.0
        Step size eta (used as is unless ``adapt_engaged``).
    random_seed : int, optional
        Seed of the run's generator.
    jacobian : bool, default=True
        Include the log-Jacobian of the inverse transform in the objective.
        Switching it off targets the wrong density and only serves diagnostics.
    memory_weight : float, default=0.1
        Weight of the newest squared gradient in the running average.
    tau : float, default=1.0
        Offset in the denominator of the per-coordinate step size.
    decay_epsilon : float, default=1e-16
        Step size decays as iteration ** -(0.5 + decay_epsilon).
    max_sample_retries : int, default=10
        Resampling attempts for a failed Monte Carlo draw before dropping it.
    iteration_retries : int, default=1
        Retries of an iteration whose draws all failed before giving up.
    n_workers : int, default=1
        Threads evaluating the draws of one estimate.
    adapt_engaged : bool, default=False
        Pick the step size among ``step_size_candidates`` before the main loop.
    adapt_iterations : int, default=50
        Iterations spent on each candidate step size.
    step_size_candidates : tuple of float
        Candidate step sizes tried, in order, when adapting.
    init : mapping, optional
        Initial constrained values keyed by parameter name; the variational
        mean starts at their unconstrained image. Missing names start at 0.
    """

    family: str = "meanfield"
    n_samples: int = 10
    max_iterations: int = 10000
    convergence_tolerance: float = 0.01
    convergence_window_size: int = 100
    drift_threshold: float = 0.5
    initial_step_size: float = 1.0
    random_seed: Optional[int] = None
    jacobian: bool = True
    memory_weight: float = 0.1
    tau: float = 1.0
    decay_epsilon: float = 1e-16
    max_sample_retries: int = 10
    iteration_retries: int = 1
    n_workers: int = 1
    adapt_engaged: bool = False
    adapt_iterations: int = 50
    step_size_candidates: Tuple[float, ...] = (100.0, 10.0, 1.0, 0.1, 0.01)
    init: Optional[Mapping] = field(default=None, compare=False)

    def __post_init__(self):
        validate_config(self)

    def updated(self, **changes) -> "ADVIConfig":
        """Returns a validated copy with ``changes`` applied."""
        return replace(self, **changes)

    @classmethod
    def from_kwargs(cls, **kwargs) -> "ADVIConfig":
        """
        Builds a configuration from keyword arguments, rejecting unknown
        names instead of silently ignoring them.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ValueError(f"unknown configuration option(s): {', '.join(unknown)}")
        return cls(**kwargs)


def _positive_int(name, value, minimum=1):
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValueError(f"'{name}' must be an integer >= {minimum}")


def _positive_float(name, value):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        raise ValueError(f"'{name}' must be a positive scalar")


def validate_config(config: ADVIConfig) -> ADVIConfig:
    """
    Validates every field of ``config``.

    Raises
    ------
    ValueError
        Naming the first offending field.
    """
    if config.family not in FAMILIES:
        raise ValueError(f"'family' must be one of {FAMILIES}, got {config.family!r}")

    _positive_int("n_samples", config.n_samples)
    _positive_int("max_iterations", config.max_iterations)
    _positive_int("convergence_window_size", config.convergence_window_size, minimum=2)
    _positive_int("max_sample_retries", config.max_sample_retries, minimum=0)
    _positive_int("iteration_retries", config.iteration_retries, minimum=0)
    _positive_int("n_workers", config.n_workers)
    _positive_int("adapt_iterations", config.adapt_iterations, minimum=2)

    _positive_float("convergence_tolerance", config.convergence_tolerance)
    _positive_float("initial_step_size", config.initial_step_size)
    _positive_float("tau", config.tau)
    if isinstance(config.drift_threshold, bool) or not (0.0 < config.drift_threshold <= 1.0):
        raise ValueError("'drift_threshold' must lie in (0, 1]")
    if not (0.0 < config.memory_weight <= 1.0):
        raise ValueError("'memory_weight' must lie in (0, 1]")
    if not (0.0 <= config.decay_epsilon < 0.5):
        raise ValueError("'decay_epsilon' must lie in [0, 0.5)")

    if config.random_seed is not None and (
            isinstance(config.random_seed, bool) or not isinstance(config.random_seed, int)):
        raise ValueError("'random_seed' must be an integer or None")

    if len(config.step_size_candidates) == 0:
        raise ValueError("'step_size_candidates' must not be empty")
    for eta in config.step_size_candidates:
        _positive_float("step_size_candidates", eta)

    if config.init is not None and not isinstance(config.init, Mapping):
        raise ValueError("'init' must be a mapping of parameter name to value")

    return config
