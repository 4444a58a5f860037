"""
_utils.py
=========
General-purpose helpers for dagtopo.

These functions don't depend on the sampler and are useful on their own:
input validation for probability tables and tallies over sampled trees.
"""

from collections import Counter
from typing import Dict, FrozenSet, Iterable

import numpy as np


def validate_probabilities(probs, dag, name: str = "probabilities") -> np.ndarray:
    """
    Convert a per-edge probability table to a float64 vector and check it.

    Parameters
    ----------
    probs : array-like
        One value per probability-table slot.
    dag : SubsplitDAG
        The DAG whose ``edge_index`` slots must all be covered.
    name : str
        Used in error messages.

    Returns
    -------
    numpy.ndarray
        1-D float64 array (a view of *probs* when no conversion is needed).

    Raises
    ------
    ValueError
        If *probs* is not 1-D, is too short for the DAG's edge slots, or
        contains negative, NaN or infinite entries.

    Examples
    --------
    >>> validate_probabilities([0.5, 0.5, 1.0], dag, "normalized")
    array([0.5, 0.5, 1. ])
    """
    arr = np.asarray(probs, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be 1-D; got shape {arr.shape}.")
    required = int(dag.edge_index.max()) + 1 if dag.n_edges else 0
    if arr.shape[0] < required:
        raise ValueError(
            f"{name} has {arr.shape[0]} entries; the DAG's edges need {required}."
        )
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains NaN or infinite values.")
    if np.any(arr < 0.0):
        raise ValueError(f"{name} contains negative values.")
    return arr


def count_topologies(trees: Iterable) -> Counter:
    """
    Tally trees by rooted topology.

    Returns
    -------
    collections.Counter
        ``Tree.topology_key()`` -> number of trees with that topology.
    """
    return Counter(tree.topology_key() for tree in trees)


def topology_frequencies(trees: Iterable) -> Dict[FrozenSet[FrozenSet[int]], float]:
    """
    Relative frequency of every rooted topology among *trees*.

    Returns an empty dict for an empty input.

    Examples
    --------
    >>> freqs = topology_frequencies(sampler.sample_many(1000, 0, dag, p, q))
    >>> sum(freqs.values())
    1.0
    """
    counts = count_topologies(trees)
    total = sum(counts.values())
    if total == 0:
        return {}
    return {key: count / total for key, count in counts.items()}
