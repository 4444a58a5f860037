"""
_dag.py
=======
A read-only subsplit DAG stored as flat, id-indexed arrays.

Nodes and edges are referred to by stable integer ids: node ``i`` is the
``i``-th subsplit passed to the constructor, edge ``e`` the ``e``-th
``(parent, child, clade)`` triple.  Edge endpoints live in parallel numpy
arrays (``edge_parent``, ``edge_child``, ``edge_clade``, ``edge_index``) and
per-node neighbor lists hold edge ids only, so callers that walk the graph
never own or allocate graph nodes.

Orientation
-----------
An edge ``(p, c, side)`` says that subsplit ``c`` resolves clade ``side`` of
subsplit ``p``: ``union(c) == clade(p, side)``.  From ``p`` the edge is a
*leafward* neighbor on ``side``; from ``c`` it is a *rootward* neighbor on
``side`` (the side of the parent that ``c`` instantiates).

Classification
--------------
  ROOT      no rootward neighbors and the subsplit covers every taxon
  LEAF      no leafward neighbors
  INTERNAL  everything else

A node without rootward neighbors whose subsplit does not cover every taxon
is an orphan; it is not a root, and a rootward walk that ends there has not
reached one.
"""

import logging
from enum import IntEnum
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from dagtopo._subsplit import Clade, Subsplit


logger = logging.getLogger(__name__)


class Direction(IntEnum):
    """Direction of travel through the DAG."""

    ROOTWARD = 0
    LEAFWARD = 1


class NodeKind(IntEnum):
    ROOT = 0
    INTERNAL = 1
    LEAF = 2


class DAGEdge(NamedTuple):
    """One parent-child subsplit pair of the DAG."""

    id: int
    parent: int
    child: int
    clade: Clade
    index: int  # slot in the probability tables


class DAGNode:
    """
    Lightweight view of one DAG node.  Holds only the id and a reference to
    the owning DAG; all data is read through the DAG's arrays.
    """

    __slots__ = ("dag", "id")

    def __init__(self, dag: "SubsplitDAG", node_id: int) -> None:
        self.dag = dag
        self.id = node_id

    @property
    def subsplit(self) -> Subsplit:
        return self.dag.subsplits[self.id]

    def rootward(self, clade: Clade) -> List[Tuple[int, int]]:
        return self.dag.neighbors(self.id, Direction.ROOTWARD, clade)

    def leafward(self, clade: Clade) -> List[Tuple[int, int]]:
        return self.dag.neighbors(self.id, Direction.LEAFWARD, clade)

    @property
    def kind(self) -> NodeKind:
        return self.dag.kind(self.id)

    @property
    def is_root(self) -> bool:
        return self.dag.is_root(self.id)

    @property
    def is_leaf(self) -> bool:
        return self.dag.is_leaf(self.id)

    def __eq__(self, other) -> bool:
        if not isinstance(other, DAGNode):
            return NotImplemented
        return self.dag is other.dag and self.id == other.id

    def __hash__(self) -> int:
        return hash((id(self.dag), self.id))

    def __repr__(self) -> str:
        return f"DAGNode({self.id}, {self.subsplit})"


class SubsplitDAG:
    """
    Immutable subsplit DAG.

    Parameters
    ----------
    subsplits : sequence of Subsplit
        Node payloads; the node id is the position in this sequence.
    edges : sequence of (parent, child, clade)
        Parent-child pairs; the edge id is the position in this sequence.
    edge_index : sequence of int, optional
        Probability-table slot of each edge.  Defaults to the edge id.

    Raises
    ------
    ValueError
        If the subsplits disagree on ``n_taxa``, a subsplit appears twice, an
        edge names an unknown node or is a self loop, or a child's union does
        not equal the parent's clade on the edge side.

    Attributes (read-only after construction)
    -----------------------------------------
    n_nodes, n_edges, n_taxa : int
    subsplits   : tuple[Subsplit]     [n_nodes]
    edge_parent : int32 [n_edges]
    edge_child  : int32 [n_edges]
    edge_clade  : int8  [n_edges]     0 = LEFT, 1 = RIGHT
    edge_index  : int32 [n_edges]     probability-table slot
    """

    def __init__(
        self,
        subsplits: Sequence[Subsplit],
        edges: Sequence[Tuple[int, int, int]],
        edge_index: Optional[Sequence[int]] = None,
    ) -> None:
        self.subsplits: Tuple[Subsplit, ...] = tuple(subsplits)
        self.n_nodes: int = len(self.subsplits)
        if self.n_nodes == 0:
            raise ValueError("A subsplit DAG needs at least one node.")

        self.n_taxa: int = self.subsplits[0].n_taxa
        seen = {}
        for node_id, subsplit in enumerate(self.subsplits):
            if subsplit.n_taxa != self.n_taxa:
                raise ValueError(
                    f"Node {node_id} has {subsplit.n_taxa} taxa; "
                    f"expected {self.n_taxa}."
                )
            if subsplit in seen:
                raise ValueError(
                    f"Subsplit {subsplit} appears twice (nodes "
                    f"{seen[subsplit]} and {node_id})."
                )
            seen[subsplit] = node_id

        self.n_edges: int = len(edges)
        self.edge_parent = np.empty(self.n_edges, dtype=np.int32)
        self.edge_child = np.empty(self.n_edges, dtype=np.int32)
        self.edge_clade = np.empty(self.n_edges, dtype=np.int8)
        for e, (parent, child, clade) in enumerate(edges):
            self._check_edge(e, int(parent), int(child), Clade(clade))
            self.edge_parent[e] = parent
            self.edge_child[e] = child
            self.edge_clade[e] = int(clade)

        if edge_index is None:
            self.edge_index = np.arange(self.n_edges, dtype=np.int32)
        else:
            self.edge_index = np.asarray(edge_index, dtype=np.int32)
            if self.edge_index.shape != (self.n_edges,):
                raise ValueError(
                    f"edge_index has shape {self.edge_index.shape}; "
                    f"expected ({self.n_edges},)."
                )
            if self.n_edges and int(self.edge_index.min()) < 0:
                raise ValueError("edge_index entries must be non-negative.")

        for arr in (self.edge_parent, self.edge_child, self.edge_clade, self.edge_index):
            arr.flags.writeable = False

        self._build_adjacency()

        logger.debug(
            "Built subsplit DAG: %d nodes, %d edges, %d taxa",
            self.n_nodes,
            self.n_edges,
            self.n_taxa,
        )

    # ================================================================== #
    # Construction helpers                                                 #
    # ================================================================== #

    def _check_edge(self, e: int, parent: int, child: int, clade: Clade) -> None:
        if not (0 <= parent < self.n_nodes and 0 <= child < self.n_nodes):
            raise ValueError(
                f"Edge {e} ({parent} -> {child}) refers to a node outside "
                f"[0, {self.n_nodes})."
            )
        if parent == child:
            raise ValueError(f"Edge {e} is a self loop on node {parent}.")
        parent_clade = self.subsplits[parent].clade(clade)
        if not np.array_equal(self.subsplits[child].union, parent_clade):
            raise ValueError(
                f"Edge {e}: child {self.subsplits[child]} does not resolve the "
                f"{clade.name} clade of parent {self.subsplits[parent]}."
            )

    def _build_adjacency(self) -> None:
        """Group edge ids by (node, direction, clade), in edge-id order."""
        self._leafward: List[Tuple[List[int], List[int]]] = [
            ([], []) for _ in range(self.n_nodes)
        ]
        self._rootward: List[Tuple[List[int], List[int]]] = [
            ([], []) for _ in range(self.n_nodes)
        ]
        for e in range(self.n_edges):
            side = int(self.edge_clade[e])
            self._leafward[int(self.edge_parent[e])][side].append(e)
            self._rootward[int(self.edge_child[e])][side].append(e)

    # ================================================================== #
    # Lookup                                                               #
    # ================================================================== #

    def node(self, node_id: int) -> DAGNode:
        """Return a view of node *node_id*; raises IndexError if unknown."""
        if not 0 <= node_id < self.n_nodes:
            raise IndexError(f"Node id {node_id} outside [0, {self.n_nodes}).")
        return DAGNode(self, node_id)

    def edge(self, edge_id: int) -> DAGEdge:
        """Return edge *edge_id*; raises IndexError if unknown."""
        if not 0 <= edge_id < self.n_edges:
            raise IndexError(f"Edge id {edge_id} outside [0, {self.n_edges}).")
        return DAGEdge(
            id=edge_id,
            parent=int(self.edge_parent[edge_id]),
            child=int(self.edge_child[edge_id]),
            clade=Clade(int(self.edge_clade[edge_id])),
            index=int(self.edge_index[edge_id]),
        )

    def neighbors(
        self, node_id: int, direction: Direction, clade: Clade
    ) -> List[Tuple[int, int]]:
        """
        Return ``(edge_id, neighbor_id)`` pairs of *node_id* on *clade*.

        Rootward neighbors on *clade* are parents whose *clade* side this
        node resolves; leafward neighbors on *clade* are the children that
        resolve this node's *clade* side.
        """
        if direction == Direction.LEAFWARD:
            edge_ids = self._leafward[node_id][int(clade)]
            return [(e, int(self.edge_child[e])) for e in edge_ids]
        edge_ids = self._rootward[node_id][int(clade)]
        return [(e, int(self.edge_parent[e])) for e in edge_ids]

    def has_neighbors(self, node_id: int, direction: Direction) -> bool:
        table = self._leafward if direction == Direction.LEAFWARD else self._rootward
        left, right = table[node_id]
        return bool(left or right)

    # ================================================================== #
    # Classification                                                       #
    # ================================================================== #

    def is_leaf(self, node_id: int) -> bool:
        return not self.has_neighbors(node_id, Direction.LEAFWARD)

    def is_root(self, node_id: int) -> bool:
        return (
            not self.has_neighbors(node_id, Direction.ROOTWARD)
            and self.subsplits[node_id].covers_all
        )

    def kind(self, node_id: int) -> NodeKind:
        if self.is_root(node_id):
            return NodeKind.ROOT
        if self.is_leaf(node_id):
            return NodeKind.LEAF
        return NodeKind.INTERNAL

    def roots(self) -> List[int]:
        """Ids of all ROOT nodes."""
        return [i for i in range(self.n_nodes) if self.is_root(i)]

    def leaves(self) -> List[int]:
        """Ids of all nodes without leafward neighbors."""
        return [i for i in range(self.n_nodes) if self.is_leaf(i)]

    def __repr__(self) -> str:
        return (
            f"SubsplitDAG(n_nodes={self.n_nodes}, n_edges={self.n_edges}, "
            f"n_taxa={self.n_taxa})"
        )
