# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from rich.console import Console
from rich.panel import Panel
from tqdm import tqdm

from .config import ADVIConfig
from .elbo import ELBOEstimate, estimate_elbo
from .errors import OptimizationFailure, RecoverableEvaluationError
from .families import VariationalFamily, make_family
from .optimizer import ConvergenceWindow, OptimizerState, ParameterDrift, Status, StochasticOptimizer
from .transforms import Transform
from .utils import as_rng

logger = logging.getLogger(__name__)


# =============================================================================
# Result of a run
# =============================================================================
@dataclass
class ADVIResult:
    """
    Outcome of an ADVI run.

    Attributes
    ----------
    status : Status
        CONVERGED, MAX_ITERATIONS_REACHED or CANCELLED.
    iterations : int
        Number of optimizer steps taken in the main loop.
    elbo : float or None
        Last finite ELBO estimate.
    best_elbo : float or None
        Highest ELBO estimate seen.
    elbo_history : np.ndarray
        Every ELBO estimate of the main loop, in order.
    step_size : float
        Step size eta used by the main loop.
    family : VariationalFamily
        Approximation at the reported parameters: the final ones for a
        converged run, the best-ELBO ones otherwise.
    transform : Transform
    n_failed_draws : int
        Monte Carlo draws dropped over the whole run.
    """

    status: Status
    iterations: int
    elbo: float
    best_elbo: float
    elbo_history: np.ndarray
    step_size: float
    family: VariationalFamily
    transform: Transform
    n_failed_draws: int = 0
    adapted: bool = field(default=False)

    @property
    def converged(self) -> bool:
        return self.status == Status.CONVERGED

    @property
    def parameters(self) -> np.ndarray:
        """The variational parameters phi."""
        return self.family.parameters()

    def mean_unconstrained(self) -> np.ndarray:
        return self.family.mean()

    def std_unconstrained(self) -> np.ndarray:
        return self.family.std()

    def draw_posterior_sample(self, rng=None) -> np.ndarray:
        """
        Draws one approximate-posterior sample in the constrained space.

        Parameters
        ----------
        rng : np.random.Generator or seed, optional

        Returns
        -------
        np.ndarray of shape (D,)
            Flat constrained vector; see ``Transform.unpack``.
        """
        return self.transform.inverse(self.family.sample(as_rng(rng)))

    def _draw_matrix(self, n, seed):
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            raise ValueError("'n' must be a positive integer")
        rng = as_rng(seed)
        return np.vstack([self.draw_posterior_sample(rng) for _ in range(n)])

    def draw(self, n: int, seed=None) -> dict:
        """
        Draws ``n`` i.i.d. approximate-posterior samples.

        Returns
        -------
        dict
            ``{name: array}`` with shape (n,) for scalar parameters and
            (n, size) for vector parameters.
        """
        draws = self._draw_matrix(n, seed)
        out = {}
        start = 0
        for p in self.transform.params:
            block = draws[:, start:start + p.size]
            out[p.name] = block[:, 0].copy() if p.size == 1 else block.copy()
            start += p.size
        return out

    def draws_frame(self, n: int, seed=None) -> pd.DataFrame:
        """Draws ``n`` samples as a DataFrame with one column per constrained coordinate."""
        return pd.DataFrame(self._draw_matrix(n, seed), columns=self.transform.labels())

    def report(self) -> str:
        if self.status == Status.CONVERGED:
            head = f"converged after {self.iterations} iterations"
        elif self.status == Status.MAX_ITERATIONS_REACHED:
            head = f"maximum iterations reached ({self.iterations}) without convergence"
        else:
            head = f"cancelled after {self.iterations} iterations"
        elbo = "n/a" if self.elbo is None else f"{self.elbo:.4f}"
        return f"{head}; final ELBO estimate {elbo}; step size {self.step_size:g}"


# =============================================================================
# Building blocks of the loop
# =============================================================================
def _resolve_transform(params) -> Transform:
    return params if isinstance(params, Transform) else Transform(params)


def initial_family(transform: Transform, config: ADVIConfig) -> VariationalFamily:
    """
    Builds the configured family with sigma = 1 (L = I) and mean zero, or
    the unconstrained image of ``config.init`` for the parameters it names.

    Raises
    ------
    ValueError
        If ``config.init`` names an unknown parameter.
    DomainError
        If an initial value lies outside its parameter's support.
    """
    family = make_family(config.family, transform.dim)
    if not config.init:
        return family

    unknown = sorted(set(config.init) - set(transform.names))
    if unknown:
        raise ValueError(f"'init' names unknown parameter(s): {', '.join(unknown)}")
    mu = family.mean()
    for spec in transform.params:
        if spec.name in config.init:
            block = Transform([spec]).forward(config.init[spec.name])
            mu[transform.zeta_slice(spec.name)] = block
    phi = family.parameters()
    phi[:transform.dim] = mu
    family.set_parameters(phi)
    return family


def _advance(family, transform, model, optimizer, state, config, rng, executor,
             last_elbo) -> ELBOEstimate:
    """
    One iteration: estimate the ELBO gradient at the current parameters and
    take one optimizer step. An iteration whose draws all fail is retried
    ``config.iteration_retries`` times before it becomes fatal.
    """
    attempts = config.iteration_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            estimate = estimate_elbo(family, transform, model, config.n_samples, rng,
                                     jacobian=config.jacobian,
                                     max_sample_retries=config.max_sample_retries,
                                     executor=executor)
            break
        except RecoverableEvaluationError as err:
            if attempt < attempts:
                logger.warning("iteration %d: %s; retrying", state.iteration + 1, err)
                continue
            raise OptimizationFailure(
                f"every Monte Carlo draw failed in {attempts} consecutive attempt(s)",
                iteration=state.iteration, last_elbo=last_elbo) from err

    try:
        optimizer.step(family, estimate.gradient, state)
    except OptimizationFailure as err:
        raise OptimizationFailure(str(err.args[0]), iteration=state.iteration,
                                  last_elbo=last_elbo) from err
    return estimate


def _make_optimizer(config, step_size):
    return StochasticOptimizer(step_size, memory_weight=config.memory_weight,
                               tau=config.tau, decay_epsilon=config.decay_epsilon)


def adapt_step_size(family, transform, model, config: ADVIConfig, rng, executor=None) -> float:
    """
    Picks the step size for the main loop.

    Each candidate of ``config.step_size_candidates`` runs
    ``config.adapt_iterations`` iterations from the parameters of ``family``
    (left untouched) with fresh optimizer state. The candidate whose ELBO
    estimates average highest over the final half of its run wins; failing
    candidates are skipped.

    Raises
    ------
    OptimizationFailure
        If no candidate completes its run with a finite ELBO.
    """
    best_eta, best_score = None, -np.inf
    for eta in config.step_size_candidates:
        trial = family.copy()
        optimizer = _make_optimizer(config, eta)
        state = OptimizerState()
        values = []
        try:
            for _ in range(config.adapt_iterations):
                values.append(_advance(trial, transform, model, optimizer, state, config,
                                       rng, executor, last_elbo=None).value)
        except OptimizationFailure as err:
            logger.info("step size %g failed during adaptation: %s", eta, err)
            continue

        score = float(np.mean(values[len(values) // 2:]))
        logger.debug("step size %g: mean ELBO %.4f over its final %d iterations",
                     eta, score, len(values) - len(values) // 2)
        if np.isfinite(score) and score > best_score:
            best_eta, best_score = eta, score

    if best_eta is None:
        raise OptimizationFailure("step-size adaptation failed for every candidate",
                                  iteration=0,
                                  error_context={"candidates": tuple(config.step_size_candidates)})
    logger.info("adapted step size: %g", best_eta)
    return best_eta


# =============================================================================
# The driver
# =============================================================================
def ADVI_fit(model, params, config: ADVIConfig = None, cancel=None, verbose: bool = False) -> ADVIResult:
    """
    Fits a Gaussian approximation to the posterior of ``model`` by
    automatic differentiation variational inference.

    Parameters
    ----------
    model : ModelEvaluator
        Joint log-density and gradient on the constrained parameters.
    params : sequence of ParameterSpec or Transform
        Parameter declarations, fixed for the whole run.
    config : ADVIConfig, optional
        Run configuration. Defaults to ``ADVIConfig()``.
    cancel : object with ``is_set()``, optional
        External cancellation signal (e.g. ``threading.Event``), checked
        between iterations.
    verbose : bool, default=False
        Print start/end panels and a progress bar.

    Returns
    -------
    ADVIResult

    Raises
    ------
    OptimizationFailure
        On repeated iteration failures, non-finite parameters, or an ELBO
        that stays non-finite for a full convergence window. Carries the
        iteration count and the last finite ELBO estimate.

    Notes
    -----
    Each iteration estimates the ELBO gradient from ``n_samples`` draws,
    takes one adaptive ascent step and pushes the ELBO estimate into the
    convergence window. A run stops when the window's relative change drops
    below ``convergence_tolerance`` (CONVERGED), when ``max_iterations`` is
    exhausted (MAX_ITERATIONS_REACHED, best-ELBO parameters reported) or
    when ``cancel`` is set (CANCELLED, best-ELBO parameters so far).
    """
    config = ADVIConfig() if config is None else config
    transform = _resolve_transform(params)
    rng = np.random.default_rng(config.random_seed)
    family = initial_family(transform, config)
    status = Status.INITIALIZING

    console = Console() if verbose else None
    if verbose:
        console.print(
            Panel(
                f"[bold green] Starting ADVI fit![/] {transform.dim} unconstrained coordinate(s), "
                f"{config.family} family, {config.n_samples} draw(s) per iteration",
                title="[bold blue]ADVI[/]",
                border_style="magenta",
                expand=False
            )
        )

    pool = ThreadPoolExecutor(max_workers=config.n_workers) if config.n_workers > 1 else nullcontext()
    with pool as executor:
        step_size = config.initial_step_size
        if config.adapt_engaged:
            step_size = adapt_step_size(family, transform, model, config, rng, executor)

        optimizer = _make_optimizer(config, step_size)
        state = OptimizerState()
        window = ConvergenceWindow(config.convergence_window_size)
        drift = ParameterDrift(config.convergence_window_size)
        drift.push(family.parameters())
        history = []
        n_failed = 0
        last_elbo = None
        best_elbo, best_phi = None, family.parameters()

        status = Status.ITERATING
        for _ in tqdm(range(config.max_iterations), desc="ADVI", disable=not verbose):
            if cancel is not None and cancel.is_set():
                status = Status.CANCELLED
                break

            phi = family.parameters()
            estimate = _advance(family, transform, model, optimizer, state, config, rng,
                                executor, last_elbo)
            drift.push(family.parameters())
            n_failed += estimate.n_failed
            history.append(estimate.value)
            window.push(estimate.value)

            if np.isfinite(estimate.value):
                last_elbo = estimate.value
                if best_elbo is None or estimate.value > best_elbo:
                    best_elbo, best_phi = estimate.value, phi

            if window.all_non_finite():
                raise OptimizationFailure(
                    f"ELBO was non-finite for {window.size} consecutive iterations",
                    iteration=state.iteration, last_elbo=last_elbo)

            if window.is_full:
                logger.debug("iteration %d: ELBO %.4f, relative change %.3g",
                             state.iteration, estimate.value, window.relative_change())
            if window.converged(config.convergence_tolerance):
                if not drift.drifting(config.drift_threshold):
                    status = Status.CONVERGED
                    break
                logger.debug("iteration %d: ELBO window settled but the parameters are still "
                             "drifting (ratio %.3f)", state.iteration, drift.max_ratio())
        else:
            status = Status.MAX_ITERATIONS_REACHED

    if status != Status.CONVERGED:
        family.set_parameters(best_phi)

    result = ADVIResult(status=status, iterations=state.iteration, elbo=last_elbo,
                        best_elbo=best_elbo, elbo_history=np.array(history),
                        step_size=step_size, family=family, transform=transform,
                        n_failed_draws=n_failed, adapted=config.adapt_engaged)

    if status == Status.CONVERGED:
        logger.info("ADVI %s", result.report())
    else:
        logger.warning("ADVI %s; reporting the best parameters found", result.report())

    if verbose:
        console.print(
            Panel(
                result.report(),
                title=f"[bold blue]ADVI: {status.value}[/]",
                border_style="green" if result.converged else "yellow",
                expand=False
            )
        )
    return result
