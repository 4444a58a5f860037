"""
_choice.py
==========
The weighted-choice primitive shared by rootward and leafward sampling.
"""

import logging
from typing import Optional

import numpy as np

from dagtopo._context import resolve_zero_weight_policy
from dagtopo._cpu_kernels import _weighted_index_nb
from dagtopo._exceptions import SamplingError
from dagtopo._logging import log_sampling_failure, log_zero_weight_fallback


logger = logging.getLogger(__name__)


def weighted_choice(
    weights, rng: np.random.Generator, zero_weight: Optional[str] = None
) -> int:
    """
    Draw an index with probability proportional to its weight.

    Exactly one value is drawn from *rng* per call (a singleton pool still
    consumes a draw), so the generator advances identically regardless of
    the weights.

    Parameters
    ----------
    weights : array-like of float
        Non-negative weights, one per candidate, in candidate order.
    rng : numpy.random.Generator
        Source of randomness; its state advances by one ``random()`` call.
    zero_weight : {'uniform', 'raise'} or None
        Handling of a pool whose weights sum to zero.  None resolves through
        use_zero_weight_policy() and then the package default ('uniform').

    Returns
    -------
    int
        Index into *weights*.

    Raises
    ------
    SamplingError
        If the pool is empty, or sums to zero under the 'raise' policy.
    ValueError
        If any weight is negative or not finite.
    """
    w = np.ascontiguousarray(weights, dtype=np.float64)
    n = w.shape[0]
    if n == 0:
        message = "Weighted-choice pool is empty"
        log_sampling_failure(message)
        raise SamplingError(message)
    if not np.all(np.isfinite(w)) or np.any(w < 0.0):
        raise ValueError(f"Weights must be finite and non-negative; got {w}.")

    u = rng.random()

    if not np.any(w > 0.0):
        policy = resolve_zero_weight_policy(zero_weight)
        if policy == "raise":
            message = f"All {n} candidate weight(s) are zero"
            log_sampling_failure(message)
            raise SamplingError(message)
        log_zero_weight_fallback(n)
        return min(int(u * n), n - 1)

    # scale so the running sum cannot overflow for very large weights
    return int(_weighted_index_nb(w / w.max(), u))
