"""
_logging.py
===========
Logging functions for dagtopo.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages, so computation
stays separate from reporting and logging can be silenced or mocked in tests.
"""

import logging
from typing import Optional


logger = logging.getLogger(__name__)


# ============================================================================ #
# DAG and Session Logging
# ============================================================================ #


def log_dag_summary(
    n_nodes: int, n_edges: int, n_taxa: int, n_roots: int, n_leaves: int
) -> None:
    """
    Log the shape of the DAG a bulk sampling run draws from.

    Parameters
    ----------
    n_nodes, n_edges, n_taxa : int
        DAG dimensions.
    n_roots, n_leaves : int
        Number of ROOT and leaf nodes.
    """
    logger.info(
        "Subsplit DAG: %d nodes, %d edges over %d taxa (%d root(s), %d leaves)",
        n_nodes,
        n_edges,
        n_taxa,
        n_roots,
        n_leaves,
    )
    if n_roots != 1:
        logger.warning(
            "DAG has %d root nodes; sampling expects exactly one reachable root.",
            n_roots,
        )


def log_session_summary(focus: int, n_vertices: int, n_lines: int, root: int) -> None:
    """Log the size of one completed sampling subgraph at DEBUG level."""
    logger.debug(
        "Sampled subgraph from focus %d: %d vertices, %d edges, root %d",
        focus,
        n_vertices,
        n_lines,
        root,
    )


# ============================================================================ #
# Sampling Diagnostics
# ============================================================================ #


def log_zero_weight_fallback(pool_size: int) -> None:
    """
    Warn that a weight pool summed to zero and a uniform choice was made.

    Parameters
    ----------
    pool_size : int
        Number of candidates in the pool.
    """
    logger.warning(
        "All %d candidate weight(s) are zero (probability underflow?); "
        "choosing uniformly over the pool.",
        pool_size,
    )


def log_sampling_failure(message: str) -> None:
    """Log a fatal sampling failure immediately before it is raised."""
    logger.error("Sampling failed: %s", message)


def log_seed(seed: Optional[int]) -> None:
    if seed is None:
        logger.debug("Sampler seeded from OS entropy")
    else:
        logger.debug(f"Sampler seeded with {seed}")


# ============================================================================ #
# Bulk Sampling Logging
# ============================================================================ #


def log_bulk_sampling(
    n_trees: int, n_workers: int, elapsed: float, n_topologies: int
) -> None:
    """
    Log a bulk sampling summary.

    Parameters
    ----------
    n_trees : int
        Number of trees drawn.
    n_workers : int
        Number of worker threads (1 for serial sampling).
    elapsed : float
        Wall-clock seconds.
    n_topologies : int
        Number of distinct topologies among the drawn trees.
    """
    rate = n_trees / elapsed if elapsed > 0 else float("inf")
    logger.info(
        f"Sampled {n_trees} tree(s) on {n_workers} worker(s) in {elapsed:.3f}s "
        f"({rate:.0f} trees/s), {n_topologies} distinct topologies"
    )

