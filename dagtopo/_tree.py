"""
_tree.py
========
A standalone rooted bifurcating tree, produced by the sampler.

A ``Tree`` is either a leaf holding a taxon index, or an internal node
holding exactly two child trees and the id of the DAG node it was built
from.  It keeps no reference back to the DAG, so it can outlive the DAG and
the probability tables, be pickled, or be handed to other subsystems.

Public API
----------
  Tree.leaf(taxon)
  Tree.join(left, right, node_id=-1)

  .is_leaf / .n_leaves
  .leaf_taxa()          taxa in left-to-right order
  .iter_postorder()     children before parents, no recursion
  .topology_key()       order-free canonical form of the topology
  .to_arrays()          parent / left_child / right_child int32 arrays

Array export conventions
------------------------
``to_arrays`` uses fixed node-ID conventions:

  Leaves   : 0 … n_leaves-1       (ID = taxon index)
  Internal : n_leaves … n_nodes-2 (post-order)
  Root     : n_nodes-1

which requires the leaf taxa to be exactly ``0 … n_leaves-1``; this always
holds for a tree returned by the sampler.

All traversals are iterative, so caterpillar trees on thousands of taxa do
not hit Python's recursion limit.
"""

from typing import FrozenSet, Iterator, List, Optional, Tuple

import numpy as np


class Tree:
    """
    A rooted, strictly bifurcating tree topology.

    Attributes
    ----------
    node_id  : int                DAG node id (internal); -1 if unknown.
    taxon    : int | None         Taxon index (leaf); None for internal nodes.
    children : tuple[Tree, Tree]  Empty for leaves.
    """

    __slots__ = ("node_id", "taxon", "children")

    def __init__(
        self,
        node_id: int = -1,
        taxon: Optional[int] = None,
        children: Tuple["Tree", ...] = (),
    ) -> None:
        if taxon is None and len(children) != 2:
            raise ValueError(
                f"An internal node needs exactly two children; got {len(children)}."
            )
        if taxon is not None and children:
            raise ValueError("A leaf cannot have children.")
        self.node_id = node_id
        self.taxon = taxon
        self.children = tuple(children)

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    @classmethod
    def leaf(cls, taxon: int, node_id: int = -1) -> "Tree":
        return cls(node_id=node_id, taxon=int(taxon))

    @classmethod
    def join(cls, left: "Tree", right: "Tree", node_id: int = -1) -> "Tree":
        return cls(node_id=node_id, children=(left, right))

    # ================================================================== #
    # Queries                                                              #
    # ================================================================== #

    @property
    def is_leaf(self) -> bool:
        return self.taxon is not None

    def iter_postorder(self) -> Iterator["Tree"]:
        """Yield every node, children (left then right) before parents."""
        stack: List[Tuple[Tree, bool]] = [(self, False)]
        while stack:
            node, expanded = stack.pop()
            if node.is_leaf or expanded:
                yield node
                continue
            stack.append((node, True))
            stack.append((node.children[1], False))
            stack.append((node.children[0], False))

    def leaf_taxa(self) -> List[int]:
        """Taxon indices of the leaves, left to right."""
        return [node.taxon for node in self.iter_postorder() if node.is_leaf]

    @property
    def n_leaves(self) -> int:
        return len(self.leaf_taxa())

    def topology_key(self) -> FrozenSet[FrozenSet[int]]:
        """
        Canonical, order-free description of the rooted topology.

        The set of clades (taxon sets below each internal node).  Two trees
        have the same key exactly when they have the same rooted topology,
        regardless of child order or node ids.
        """
        clades = {}
        for node in self.iter_postorder():
            if node.is_leaf:
                clades[id(node)] = frozenset((node.taxon,))
            else:
                left, right = node.children
                clades[id(node)] = clades[id(left)] | clades[id(right)]
        return frozenset(
            clades[id(node)] for node in self.iter_postorder() if not node.is_leaf
        )

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Export the topology as flat int32 arrays.

        Returns
        -------
        parent, left_child, right_child : int32 [n_nodes]
            -1 marks "none" (root parent, leaf children).

        Raises
        ------
        ValueError
            If the leaf taxa are not exactly ``0 … n_leaves-1``.
        """
        taxa = self.leaf_taxa()
        n_leaves = len(taxa)
        if sorted(taxa) != list(range(n_leaves)):
            raise ValueError(
                "to_arrays() requires leaf taxa 0 … n_leaves-1 exactly once; "
                f"got {sorted(taxa)}."
            )
        n_nodes = 2 * n_leaves - 1
        parent = np.full(n_nodes, -1, dtype=np.int32)
        left_child = np.full(n_nodes, -1, dtype=np.int32)
        right_child = np.full(n_nodes, -1, dtype=np.int32)

        ids = {}
        internal_id = n_leaves
        for node in self.iter_postorder():
            if node.is_leaf:
                ids[id(node)] = node.taxon
                continue
            me = internal_id
            internal_id += 1
            ids[id(node)] = me
            l_id = ids[id(node.children[0])]
            r_id = ids[id(node.children[1])]
            left_child[me] = l_id
            right_child[me] = r_id
            parent[l_id] = me
            parent[r_id] = me

        return parent, left_child, right_child

    # ================================================================== #
    # Dunder                                                               #
    # ================================================================== #

    def __eq__(self, other) -> bool:
        """Structural equality: child order, taxa and node ids must match."""
        if not isinstance(other, Tree):
            return NotImplemented
        pairs = [(self, other)]
        while pairs:
            a, b = pairs.pop()
            if a.taxon != b.taxon or a.node_id != b.node_id:
                return False
            if len(a.children) != len(b.children):
                return False
            pairs.extend(zip(a.children, b.children))
        return True

    def __hash__(self) -> int:
        return hash((self.topology_key(), tuple(self.leaf_taxa())))

    def __repr__(self) -> str:
        parts = {}
        for node in self.iter_postorder():
            if node.is_leaf:
                parts[id(node)] = str(node.taxon)
            else:
                left, right = node.children
                parts[id(node)] = f"({parts[id(left)]},{parts[id(right)]})"
        return f"Tree({parts[id(self)]})"
