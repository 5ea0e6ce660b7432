# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements the error types for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================


class ADVIError(Exception):
    """
    Base class for all errors raised by the ADVI engine.

    Parameters
    ----------
    message : str
        Detailed error message.
    error_context : dict, optional
        Additional diagnostic state (iteration, parameter name, value, ...).
        Rendered as ``key=value`` pairs by ``str()``.
    """

    def __init__(self, message: str, error_context: dict = None):
        super().__init__(message)
        self.error_context = error_context or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.error_context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.error_context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


class DomainError(ADVIError, ValueError):
    """
    Raised when a value lies outside the admissible domain of a constraint,
    e.g. a negative value for a positive parameter or a vector that is not
    on the simplex. Never recovered by the transform itself.
    """


class RecoverableEvaluationError(ADVIError):
    """
    Raised when a Monte Carlo draw (or every draw of one iteration) could not
    be evaluated. The ELBO estimator resamples single draws; the driver
    retries an iteration whose draws all failed.
    """


class OptimizationFailure(ADVIError, RuntimeError):
    """
    Raised when the stochastic optimization cannot continue: repeated
    iteration failures, or an ELBO that stays non-finite for a full
    convergence window.

    Attributes
    ----------
    iteration : int
        Number of iterations completed before failure.
    last_elbo : float or None
        Last finite ELBO estimate, if any was obtained.
    status : str
        Always ``"failed"``.
    """

    def __init__(self, message: str, iteration: int = 0, last_elbo=None,
                 error_context: dict = None):
        context = {"iteration": iteration, "last_elbo": last_elbo}
        context.update(error_context or {})
        super().__init__(message, context)
        self.iteration = iteration
        self.last_elbo = last_elbo
        self.status = "failed"
