# =============================================================================
# Copyright 2025. Somjit Roy and Pritam Dey.
# This program implements helper functions for the ADVI algorithm as developed in:
# Kucukelbir, A., Tran, D., Ranganath, R., Gelman, A., and Blei, D.M.
# 'Automatic Differentiation Variational Inference',
# Journal of Machine Learning Research, 18(14):1-45, 2017.
#
# Authors:
#   Somjit Roy <sroy_123@tamu.edu> and Pritam Dey <pritam.dey@tamu.edu>
# =============================================================================

# Required imports
import numpy as np

GAUSSIAN_ENTROPY_CONST = 0.5 * (1.0 + np.log(2.0 * np.pi))


def as_rng(rng=None) -> np.random.Generator:
    """
    Coerces ``rng`` into a NumPy ``Generator``.

    Parameters
    ----------
    rng : None, int, np.random.SeedSequence or np.random.Generator
        Seed material or an existing generator (returned unchanged).

    Returns
    -------
    np.random.Generator
    """
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def split_rngs(rng: np.random.Generator, n: int) -> list:
    """
    Derives ``n`` independent child generators from ``rng``.

    One integer is drawn from ``rng`` to seed a ``SeedSequence`` which is then
    spawned ``n`` times, so child ``i`` depends only on the state of ``rng``
    and on ``i``. Evaluating the children in any order, or concurrently,
    gives the same streams.

    Parameters
    ----------
    rng : np.random.Generator
        Parent generator. Advanced by exactly one draw.
    n : int
        Number of children.

    Returns
    -------
    list of np.random.Generator
    """
    root = np.random.SeedSequence(int(rng.integers(0, 2**63 - 1)))
    return [np.random.default_rng(child) for child in root.spawn(n)]


def is_finite(value, gradient=None) -> bool:
    """True when ``value`` (and ``gradient`` if given) contain no NaN/inf."""
    if not np.all(np.isfinite(value)):
        return False
    if gradient is not None and not np.all(np.isfinite(gradient)):
        return False
    return True
