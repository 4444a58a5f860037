"""
_sampler.py
===========
Weighted topology sampling over a subsplit DAG.

Starting from a focus node, the sampler climbs rootward one parent edge at a
time (weights: *inverted* probabilities) and, at every node it reaches,
descends leafward (weights: *normalized* probabilities) on each clade it did
not arrive through.  The chosen vertices and edges form exactly one tree,
which is then rebuilt bottom-up from the root into a standalone ``Tree``.

Traversal
---------
The rootward/leafward mutual recursion runs on an explicit LIFO work-list of
tagged tasks, so very deep DAGs do not hit Python's recursion limit:

  (_CLIMB,   node, None)    sample one parent edge of ``node``
  (_DESCEND, node, clade)   sample one child edge of ``node`` on ``clade``

After each sampled edge, ``_visit`` decides the follow-up tasks from the
direction of arrival:

  arrived ROOTWARD (climbing, via ``clade`` of the parent)
      climb further, and descend the *opposite* clade only; the clade just
      arrived through is already sampled.
  arrived LEAFWARD (descending)
      descend both clades.

Follow-ups are pushed in reverse, so random draws happen in the same order
as a depth-first recursive walk: climb, then left, then right.

Reproducibility
---------------
Each sampler owns a ``numpy.random.Generator``.  Identical seed, DAG and
probability tables give an identical sequence of trees.  A sampler is not
reentrant; give each worker thread its own (see ``sample_trees_parallel``).
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple, Union

import numpy as np

from dagtopo._choice import weighted_choice
from dagtopo._context import validate_zero_weight_policy
from dagtopo._cpu_kernels import _taxon_counts_nb
from dagtopo._dag import DAGEdge, DAGNode, Direction, SubsplitDAG
from dagtopo._exceptions import SamplingError
from dagtopo._logging import (
    log_bulk_sampling,
    log_dag_summary,
    log_sampling_failure,
    log_seed,
    log_session_summary,
)
from dagtopo._session import SamplingSession
from dagtopo._subsplit import Clade
from dagtopo._tree import Tree
from dagtopo._utils import count_topologies, validate_probabilities


logger = logging.getLogger(__name__)

_CLIMB = 0
_DESCEND = 1

Task = Tuple[int, int, Optional[Clade]]


def _fail(message: str) -> None:
    log_sampling_failure(message)
    raise SamplingError(message)


class TopologySampler:
    """
    Draws tree topologies from a subsplit DAG.

    Parameters
    ----------
    seed : int, numpy.random.SeedSequence or None
        Generator seed.  None seeds from OS entropy.
    zero_weight : {'uniform', 'raise'} or None
        Handling of weight pools that sum to zero.  None defers to
        use_zero_weight_policy() and then the package default ('uniform').

    Examples
    --------
    >>> sampler = TopologySampler(seed=42)
    >>> tree = sampler.sample(focus, dag, normalized, inverted)
    >>> tree.leaf_taxa()
    [0, 2, 1, 3]
    """

    def __init__(self, seed=None, zero_weight: Optional[str] = None) -> None:
        if zero_weight is not None:
            validate_zero_weight_policy(zero_weight)
        self.zero_weight = zero_weight
        self.set_seed(seed)

    def set_seed(self, seed) -> None:
        """Reset the generator; the following draws depend only on *seed*."""
        self.seed = seed
        self._rng = np.random.default_rng(seed)
        log_seed(seed)

    # ================================================================== #
    # Public sampling API                                                  #
    # ================================================================== #

    def sample(
        self,
        focus: Union[int, DAGNode],
        dag: SubsplitDAG,
        normalized,
        inverted,
    ) -> Tree:
        """
        Sample one tree that contains the subsplit of *focus*.

        Parameters
        ----------
        focus : int | DAGNode
            Node to start from; need not be the DAG root.
        dag : SubsplitDAG
            Read-only DAG; not modified.
        normalized : array-like of float
            Leafward (child-given-parent) probability per edge slot.
        inverted : array-like of float
            Rootward (parent-given-child) probability per edge slot.

        Returns
        -------
        Tree
            Standalone tree whose leaves are every taxon exactly once.

        Raises
        ------
        SamplingError
            If no root is reachable, the subgraph is not a single complete
            tree, or a weight pool cannot be drawn from.
        ValueError, IndexError, TypeError
            On malformed probability tables or focus.
        """
        focus_id = _resolve_focus(focus, dag)
        normalized, inverted = _validate_tables(dag, normalized, inverted)
        return self._sample_validated(focus_id, dag, normalized, inverted)

    def sample_subgraph(
        self,
        focus: Union[int, DAGNode],
        dag: SubsplitDAG,
        normalized,
        inverted,
    ) -> SamplingSession:
        """
        Run the traversal only and return the finished session.

        The session's ``vertices`` and ``lines`` are the sampled subgraph;
        ``find_root()`` and ``check_complete()`` can be used to inspect it.
        """
        focus_id = _resolve_focus(focus, dag)
        normalized, inverted = _validate_tables(dag, normalized, inverted)
        return self._traverse(focus_id, dag, normalized, inverted)

    def sample_from_root(self, dag: SubsplitDAG, normalized) -> Tree:
        """
        Sample a tree by descending from the DAG's root only.

        A walk that starts at the root never climbs, so only the normalized
        (leafward) probabilities are consulted.

        Raises
        ------
        SamplingError
            If the DAG does not have exactly one root.
        """
        roots = dag.roots()
        if len(roots) != 1:
            _fail(f"Expected exactly one DAG root; found {len(roots)}")
        normalized = validate_probabilities(normalized, dag, "normalized")
        return self._sample_validated(roots[0], dag, normalized, normalized)

    def sample_many(
        self,
        n: int,
        focus: Union[int, DAGNode],
        dag: SubsplitDAG,
        normalized,
        inverted,
    ) -> List[Tree]:
        """Sample *n* trees in sequence from the same focus."""
        if n < 0:
            raise ValueError(f"n must be non-negative; got {n}.")
        focus_id = _resolve_focus(focus, dag)
        normalized, inverted = _validate_tables(dag, normalized, inverted)

        start = time.time()
        trees = self._draw(n, focus_id, dag, normalized, inverted)
        elapsed = time.time() - start
        log_bulk_sampling(n, 1, elapsed, len(count_topologies(trees)))
        return trees

    # ================================================================== #
    # Traversal                                                            #
    # ================================================================== #

    def _draw(self, n, focus_id, dag, normalized, inverted) -> List[Tree]:
        return [
            self._sample_validated(focus_id, dag, normalized, inverted)
            for _ in range(n)
        ]

    def _sample_validated(self, focus_id, dag, normalized, inverted) -> Tree:
        session = self._traverse(focus_id, dag, normalized, inverted)
        root = session.find_root()
        if root is None:
            _fail(
                f"No root found: the rootward walk from node {focus_id} ended "
                "at a node that does not cover every taxon"
            )
        session.check_complete(root)
        log_session_summary(focus_id, len(session.vertices), len(session.lines), root)
        tree = build_tree(session, root)
        check_leaf_coverage(tree, dag.n_taxa)
        return tree

    def _traverse(self, focus_id, dag, normalized, inverted) -> SamplingSession:
        session = SamplingSession(dag, normalized, inverted)
        session.add_vertex(focus_id)

        stack: List[Task] = [
            (_DESCEND, focus_id, Clade.RIGHT),
            (_DESCEND, focus_id, Clade.LEFT),
            (_CLIMB, focus_id, None),
        ]
        while stack:
            task, node_id, clade = stack.pop()
            if task == _CLIMB:
                edge = self._sample_rootward(session, node_id)
                if edge is None:
                    continue
                follow = self._visit(session, edge.parent, Direction.ROOTWARD, edge.clade)
            else:
                edge = self._sample_leafward(session, node_id, clade)
                if edge is None:
                    continue
                follow = self._visit(session, edge.child, Direction.LEAFWARD, clade)
            stack.extend(reversed(follow))
        return session

    @staticmethod
    def _visit(
        session: SamplingSession, node_id: int, direction: Direction, clade: Clade
    ) -> List[Task]:
        """Record *node_id* and return its follow-up tasks in draw order."""
        session.add_vertex(node_id)
        if direction == Direction.ROOTWARD:
            return [(_CLIMB, node_id, None), (_DESCEND, node_id, clade.opposite())]
        return [(_DESCEND, node_id, Clade.LEFT), (_DESCEND, node_id, Clade.RIGHT)]

    def _sample_rootward(
        self, session: SamplingSession, node_id: int
    ) -> Optional[DAGEdge]:
        dag = session.dag
        pool = dag.neighbors(node_id, Direction.ROOTWARD, Clade.LEFT) + dag.neighbors(
            node_id, Direction.ROOTWARD, Clade.RIGHT
        )
        if not pool:
            # reached a node without parents
            return None
        return self._choose(session, pool, session.inverted)

    def _sample_leafward(
        self, session: SamplingSession, node_id: int, clade: Clade
    ) -> Optional[DAGEdge]:
        pool = session.dag.neighbors(node_id, Direction.LEAFWARD, clade)
        if not pool:
            # leaf on this side
            return None
        return self._choose(session, pool, session.normalized)

    def _choose(self, session, pool, table) -> DAGEdge:
        dag = session.dag
        edge_ids = np.fromiter((e for e, _ in pool), dtype=np.int64, count=len(pool))
        weights = table[dag.edge_index[edge_ids]]
        i = weighted_choice(weights, self._rng, self.zero_weight)
        edge = dag.edge(int(edge_ids[i]))
        session.add_line(edge)
        return edge


# ====================================================================== #
# Tree reconstruction                                                     #
# ====================================================================== #


def build_tree(session: SamplingSession, root_id: int) -> Tree:
    """
    Rebuild the sampled subgraph below *root_id* as a standalone Tree.

    Per vertex, children first:

    - both clades have a sampled child  -> internal node tagged with the
      vertex's DAG id
    - the vertex is a DAG leaf          -> leaf tagged with its taxon
    - the vertex is *root_id* with one sampled child (universal-ancestor
      root)                             -> that child's subtree is the tree
    - anything else                     -> SamplingError

    Raises
    ------
    SamplingError
        If a non-root, non-leaf vertex has fewer than two sampled children,
        or a leaf vertex does not encode exactly one taxon.
    """
    built = {}
    stack = [(root_id, False)]
    while stack:
        v, expanded = stack.pop()
        left, right = session.children(v)
        present = [c for c in (left, right) if c is not None]
        if present and not expanded:
            stack.append((v, True))
            for c in reversed(present):
                stack.append((c, False))
            continue

        if left is not None and right is not None:
            built[v] = Tree.join(built.pop(left), built.pop(right), node_id=v)
        elif session.dag.is_leaf(v):
            try:
                taxon = session.vertices[v].taxon
            except ValueError as e:
                message = f"Leaf vertex {v}: {e}"
                log_sampling_failure(message)
                raise SamplingError(message) from e
            built[v] = Tree.leaf(taxon, node_id=v)
        elif v == root_id and len(present) == 1:
            built[v] = built.pop(present[0])
        else:
            _fail(f"Vertex {v} can't have only {len(present)} child(ren)")
    return built[root_id]


def check_leaf_coverage(tree: Tree, n_taxa: int) -> None:
    """
    Raise SamplingError unless the leaves of *tree* are every taxon in
    ``0 … n_taxa-1`` exactly once.
    """
    taxa = np.asarray(tree.leaf_taxa(), dtype=np.int64)
    counts = _taxon_counts_nb(taxa, n_taxa)
    missing = np.flatnonzero(counts[:n_taxa] == 0)
    repeated = np.flatnonzero(counts[:n_taxa] > 1)
    if missing.size or repeated.size or counts[n_taxa]:
        _fail(
            f"Sampled tree does not cover the taxon universe: missing "
            f"{missing.tolist()}, repeated {repeated.tolist()}, "
            f"{int(counts[n_taxa])} out of range"
        )


# ====================================================================== #
# Parallel bulk sampling                                                  #
# ====================================================================== #


def sample_trees_parallel(
    n: int,
    focus: Union[int, DAGNode],
    dag: SubsplitDAG,
    normalized,
    inverted,
    seed=None,
    n_workers: Optional[int] = None,
    zero_weight: Optional[str] = None,
) -> List[Tree]:
    """
    Sample *n* trees on a pool of worker threads.

    Each worker owns a TopologySampler seeded from
    ``SeedSequence(seed).spawn(n_workers)`` and draws a fixed share
    (``n // n_workers``, the first ``n % n_workers`` workers one more).
    The DAG and tables are shared read-only.  Results are concatenated in
    worker order, so the output is reproducible for a fixed *seed* and
    *n_workers*.

    Parameters
    ----------
    n : int
        Number of trees.
    seed : int or None
        Root seed for the per-worker generators.
    n_workers : int, optional
        Worker threads; default ``min(os.cpu_count(), n)``.
    zero_weight : {'uniform', 'raise'} or None
        Passed to every worker's sampler.

    Returns
    -------
    list[Tree]
    """
    if n < 0:
        raise ValueError(f"n must be non-negative; got {n}.")
    if n_workers is None:
        n_workers = min(os.cpu_count() or 1, max(n, 1))
    if n_workers < 1:
        raise ValueError(f"n_workers must be at least 1; got {n_workers}.")

    focus_id = _resolve_focus(focus, dag)
    normalized, inverted = _validate_tables(dag, normalized, inverted)
    log_dag_summary(dag.n_nodes, dag.n_edges, dag.n_taxa, len(dag.roots()), len(dag.leaves()))

    seeds = np.random.SeedSequence(seed).spawn(n_workers)
    samplers = [TopologySampler(seed=s, zero_weight=zero_weight) for s in seeds]
    shares = [n // n_workers + (1 if k < n % n_workers else 0) for k in range(n_workers)]

    def work(k: int) -> List[Tree]:
        return samplers[k]._draw(shares[k], focus_id, dag, normalized, inverted)

    start = time.time()
    with ThreadPoolExecutor(max_workers=n_workers) as pool:
        chunks = list(pool.map(work, range(n_workers)))
    elapsed = time.time() - start

    trees = [tree for chunk in chunks for tree in chunk]
    log_bulk_sampling(n, n_workers, elapsed, len(count_topologies(trees)))
    return trees


# ====================================================================== #
# Argument checks                                                         #
# ====================================================================== #


def _resolve_focus(focus, dag: SubsplitDAG) -> int:
    if isinstance(focus, DAGNode):
        if focus.dag is not dag:
            raise ValueError("Focus node belongs to a different DAG.")
        return focus.id
    if isinstance(focus, (int, np.integer)) and not isinstance(focus, bool):
        return dag.node(int(focus)).id
    raise TypeError(
        f"focus must be a node id or DAGNode; got {type(focus).__name__}."
    )


def _validate_tables(dag, normalized, inverted) -> Tuple[np.ndarray, np.ndarray]:
    return (
        validate_probabilities(normalized, dag, "normalized"),
        validate_probabilities(inverted, dag, "inverted"),
    )
