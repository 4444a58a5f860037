"""
_session.py
===========
State of one sampling call: borrowed read-only inputs plus the subgraph
(vertices and chosen edges) that will become exactly one tree.

A session is created at the start of a sample call and discarded at its
end.  It never modifies the DAG or the probability tables.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from dagtopo._dag import DAGEdge, SubsplitDAG
from dagtopo._exceptions import SamplingError
from dagtopo._logging import log_sampling_failure
from dagtopo._subsplit import Clade, Subsplit


logger = logging.getLogger(__name__)


class SamplingSession:
    """
    Borrowed inputs and the growing sampled subgraph.

    Attributes
    ----------
    dag : SubsplitDAG
    normalized : float64 [>= dag.n_edges]   leafward (child) probabilities
    inverted   : float64 [>= dag.n_edges]   rootward (parent) probabilities
    vertices   : dict[int, Subsplit]        node id -> subsplit, in discovery order
    lines      : dict[int, DAGEdge]         edge id -> edge, in sampling order
    """

    def __init__(
        self, dag: SubsplitDAG, normalized: np.ndarray, inverted: np.ndarray
    ) -> None:
        self.dag = dag
        self.normalized = normalized
        self.inverted = inverted
        self.vertices: Dict[int, Subsplit] = {}
        self.lines: Dict[int, DAGEdge] = {}
        # node id -> [left child id, right child id]
        self._children: Dict[int, List[Optional[int]]] = {}
        # node id -> id of the sampled edge leading rootward from it
        self._parent_line: Dict[int, int] = {}

    # ================================================================== #
    # Growing the subgraph                                                 #
    # ================================================================== #

    def add_vertex(self, node_id: int) -> None:
        """Record *node_id* as a vertex; repeated calls are no-ops."""
        if node_id not in self.vertices:
            self.vertices[node_id] = self.dag.subsplits[node_id]
            self._children[node_id] = [None, None]

    def add_line(self, edge: DAGEdge) -> None:
        """
        Record a sampled edge.

        Raises
        ------
        SamplingError
            If a different edge was already sampled for the same parent
            clade, or for the rootward side of the same child.
        """
        if edge.id in self.lines:
            return
        self.add_vertex(edge.parent)
        self.add_vertex(edge.child)

        slot = self._children[edge.parent]
        existing = slot[int(edge.clade)]
        if existing is not None and existing != edge.child:
            self._fail(
                f"Vertex {edge.parent} already has child {existing} on its "
                f"{edge.clade.name} clade; cannot add {edge.child}"
            )
        if edge.child in self._parent_line:
            self._fail(
                f"Vertex {edge.child} already has a sampled parent edge "
                f"{self._parent_line[edge.child]}; cannot add edge {edge.id}"
            )
        slot[int(edge.clade)] = edge.child
        self._parent_line[edge.child] = edge.id
        self.lines[edge.id] = edge

    # ================================================================== #
    # Queries on the finished subgraph                                     #
    # ================================================================== #

    def child(self, node_id: int, clade: Clade) -> Optional[int]:
        """The sampled child of *node_id* on *clade*, or None."""
        return self._children[node_id][int(clade)]

    def children(self, node_id: int) -> Tuple[Optional[int], Optional[int]]:
        left, right = self._children[node_id]
        return left, right

    def parent_line(self, node_id: int) -> Optional[DAGEdge]:
        e = self._parent_line.get(node_id)
        return None if e is None else self.lines[e]

    def find_root(self) -> Optional[int]:
        """
        The unique vertex with no sampled parent edge that is a DAG root.

        Returns None if there is none.  Raises SamplingError if there are
        several, which a single rootward walk can never produce.
        """
        roots = [
            v
            for v in self.vertices
            if v not in self._parent_line and self.dag.is_root(v)
        ]
        if len(roots) > 1:
            self._fail(f"Sampled subgraph has {len(roots)} roots: {roots}")
        return roots[0] if roots else None

    def check_complete(self, root: int) -> None:
        """
        Verify the finished subgraph describes exactly one tree.

        Every non-root vertex has a sampled parent edge; every vertex that
        is not a DAG leaf has two sampled children, except that *root* may
        have one (the universal-ancestor root).  DAG leaves have none.

        Raises
        ------
        SamplingError
            On the first violated condition.
        """
        for v in self.vertices:
            if v != root and v not in self._parent_line:
                self._fail(f"Vertex {v} is not connected to the sampled root {root}")
            n_children = sum(c is not None for c in self._children[v])
            if self.dag.is_leaf(v):
                continue
            if n_children == 2:
                continue
            if v == root and n_children == 1:
                continue
            self._fail(
                f"Vertex {v} ({self.vertices[v]}) finished with {n_children} "
                "sampled child(ren); expected 2"
            )

    @staticmethod
    def _fail(message: str) -> None:
        log_sampling_failure(message)
        raise SamplingError(message)

    def __repr__(self) -> str:
        return (
            f"SamplingSession(n_vertices={len(self.vertices)}, "
            f"n_lines={len(self.lines)})"
        )
