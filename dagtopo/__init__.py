"""
dagtopo
=======

Weighted sampling of tree topologies from a subsplit DAG.

A subsplit DAG compactly represents many overlapping rooted binary
topologies.  Given per-edge probability tables (normalized child-given-parent
probabilities for descending, inverted parent-given-child probabilities for
climbing), *dagtopo* draws one complete topology through any focus node and
returns it as a standalone tree with no reference back to the DAG.

Main Classes
------------
TopologySampler : Seedable sampler; one instance per thread
SubsplitDAG : Read-only DAG of subsplits, addressed by integer ids
Subsplit : Ordered bipartition of a clade as boolean taxon masks
Tree : Standalone rooted bifurcating tree

Functions
---------
sample_trees_parallel : Bulk sampling on a pool of worker threads
build_tree : Rebuild a finished sampling session as a Tree
weighted_choice : Probability-weighted index draw
count_topologies : Tally trees by rooted topology
topology_frequencies : Relative topology frequencies

Context Managers
----------------
quiet : Suppress dagtopo logging
suppress_logger : Suppress a specific logger
use_zero_weight_policy : Choose how all-zero weight pools are handled

Examples
--------
>>> from dagtopo import Subsplit, SubsplitDAG, TopologySampler
>>> n = 3
>>> subsplits = [
...     Subsplit.root(n),
...     Subsplit.from_taxa([0], [1, 2], n),
...     Subsplit.from_taxa([1], [2], n),
...     Subsplit.leaf(0, n), Subsplit.leaf(1, n), Subsplit.leaf(2, n),
... ]
>>> edges = [(0, 1, 0), (1, 3, 0), (1, 2, 1), (2, 4, 0), (2, 5, 1)]
>>> dag = SubsplitDAG(subsplits, edges)
>>> sampler = TopologySampler(seed=1)
>>> sampler.sample(2, dag, [1.0] * 5, [1.0] * 5)
Tree((0,(1,2)))
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Main classes
from ._sampler import TopologySampler, build_tree, sample_trees_parallel
from ._session import SamplingSession
from ._dag import SubsplitDAG, DAGNode, DAGEdge, Direction, NodeKind
from ._subsplit import Subsplit, Clade
from ._tree import Tree
from ._exceptions import SamplingError
from ._choice import weighted_choice

# Context managers
from ._context import (
    suppress_logger,
    quiet,
    use_zero_weight_policy,
)

# Utilities
from ._utils import (
    count_topologies,
    topology_frequencies,
    validate_probabilities,
)

# Public API
__all__ = [
    # Main classes
    "TopologySampler",
    "SamplingSession",
    "SubsplitDAG",
    "DAGNode",
    "DAGEdge",
    "Direction",
    "NodeKind",
    "Subsplit",
    "Clade",
    "Tree",
    "SamplingError",
    # Functions
    "sample_trees_parallel",
    "build_tree",
    "weighted_choice",
    # Context managers
    "suppress_logger",
    "quiet",
    "use_zero_weight_policy",
    # Utilities
    "count_topologies",
    "topology_frequencies",
    "validate_probabilities",
    # Version info
    "__version__",
]
