"""
_context.py
===========
Context managers for dagtopo.

Provides context managers for temporarily changing state:
- Logging control (suppress/change levels)
- Zero-weight policy selection (how all-zero weight pools are handled)

All context managers restore state on exit, even if exceptions occur.
"""

import logging
from contextlib import contextmanager
from typing import Optional


ZERO_WEIGHT_POLICIES = ("uniform", "raise")
DEFAULT_ZERO_WEIGHT_POLICY = "uniform"

# Module-level state for the zero-weight policy override
_zero_weight_override = None


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Parameters
    ----------
    logger_name : str
        Name of the logger to suppress (e.g., 'dagtopo._sampler').
    level : int, default logging.CRITICAL
        Temporary logging level.

    Examples
    --------
    >>> with suppress_logger('dagtopo._choice'):
    ...     trees = sampler.sample_many(1000, focus, dag, normalized, inverted)

    Notes
    -----
    - Exception-safe: Logger level restored even if exception raised
    - Nesting-safe: Can nest multiple suppress_logger contexts
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all dagtopo logging.

    Every module logger is a child of the 'dagtopo' package logger, so
    raising that one logger's level silences the whole package.

    Examples
    --------
    >>> with quiet():
    ...     trees = sample_trees_parallel(10_000, focus, dag, normalized, inverted)

    >>> # Keep warnings (e.g. zero-weight fallbacks) visible
    >>> with quiet(logging.WARNING):
    ...     trees = sampler.sample_many(100, focus, dag, normalized, inverted)
    """
    with suppress_logger("dagtopo", level):
        yield


# ============================================================================ #
# Zero-weight Policy Context Manager
# ============================================================================ #


def validate_zero_weight_policy(policy: str) -> str:
    if policy not in ZERO_WEIGHT_POLICIES:
        raise ValueError(
            f"Unknown zero-weight policy {policy!r}; "
            f"expected one of {ZERO_WEIGHT_POLICIES}."
        )
    return policy


@contextmanager
def use_zero_weight_policy(policy: str):
    """
    Temporarily set how every sampler handles a weight pool summing to zero.

    Parameters
    ----------
    policy : str
        - 'uniform': choose uniformly over the pool and log a warning
        - 'raise':   raise SamplingError

    Raises
    ------
    ValueError
        If *policy* is not recognised.

    Examples
    --------
    >>> # Treat probability underflow as a hard error while debugging
    >>> with use_zero_weight_policy('raise'):
    ...     tree = sampler.sample(focus, dag, normalized, inverted)

    Notes
    -----
    - **Not thread-safe**: Uses module-level state
    - A sampler constructed with an explicit ``zero_weight=`` ignores the
      override; pass the policy to the sampler for thread-local behavior.
    """
    global _zero_weight_override

    validate_zero_weight_policy(policy)
    original = _zero_weight_override
    try:
        _zero_weight_override = policy
        yield
    finally:
        _zero_weight_override = original


def get_zero_weight_override() -> Optional[str]:
    """Return the policy set by an active use_zero_weight_policy(), or None."""
    return _zero_weight_override


def resolve_zero_weight_policy(explicit: Optional[str] = None) -> str:
    """
    Resolve the policy in precedence order: explicit argument, active
    context override, package default.
    """
    if explicit is not None:
        return validate_zero_weight_policy(explicit)
    if _zero_weight_override is not None:
        return _zero_weight_override
    return DEFAULT_ZERO_WEIGHT_POLICY
