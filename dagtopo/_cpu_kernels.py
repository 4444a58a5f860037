"""
_cpu_kernels.py
===============
Numba-compiled inner loops for topology sampling.

This module contains ONLY numba-accelerated code and does not import other
project modules, to keep import-time complications out of the kernels.

Exported Functions
------------------
_weighted_index_nb : njit function
    Map a uniform draw in [0, 1) to an index with probability proportional
    to weight.

_taxon_counts_nb : njit function
    Count how often each taxon index occurs in a leaf list.

Notes
-----
- cache=True persists the compiled binary to disk for faster subsequent runs
- Kernels accept only numpy arrays and plain scalars
"""

import numpy as np
from numba import njit


@njit(cache=True)
def _weighted_index_nb(weights, u):
    """
    Inverse-CDF lookup over a non-negative weight vector.

    Parameters
    ----------
    weights : float64[:]
        Non-negative weights with a strictly positive sum.
    u : float
        Uniform draw in [0, 1).

    Returns
    -------
    int
        Index ``i`` such that the cumulative weight before ``i`` is
        ``<= u * total < `` the cumulative weight through ``i``.  Zero-weight
        entries are never returned.  If round-off pushes the target past the
        final cumulative sum, the last positive-weight index is returned.
        Returns -1 if no weight is positive.
    """
    n = weights.shape[0]
    total = 0.0
    for i in range(n):
        total += weights[i]
    target = u * total

    acc = 0.0
    last_positive = -1
    for i in range(n):
        w = weights[i]
        if w > 0.0:
            acc += w
            last_positive = i
            if target < acc:
                return i
    return last_positive


@njit(cache=True)
def _taxon_counts_nb(taxa, n_taxa):
    """
    Per-taxon occurrence counts of a leaf list.

    Parameters
    ----------
    taxa : int64[:]
        Taxon index of every leaf.
    n_taxa : int
        Size of the taxon universe.

    Returns
    -------
    int64[n_taxa + 1]
        ``counts[t]`` for ``t < n_taxa``; the final slot counts entries
        outside ``[0, n_taxa)``.
    """
    counts = np.zeros(n_taxa + 1, dtype=np.int64)
    for i in range(taxa.shape[0]):
        t = taxa[i]
        if t < 0 or t >= n_taxa:
            counts[n_taxa] += 1
        else:
            counts[t] += 1
    return counts
