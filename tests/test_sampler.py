"""
tests/test_sampler.py
=====================
Pytest test suite for TopologySampler, build_tree and parallel sampling.

Example DAGs (tests/examples_dags.py)
-------------------------------------
  THREE_TAXON       (0,(1,2))                  one topology, minimal case
  SINGLE_SIX_TAXON  (((0,1),2),((3,4),5))      one topology, every pool size 1
  ONE_CHOICE        ((0,(1,2)),3) and (((0,1),2),3)
                    one leafward binary choice below rootsplit {0,1,2}|{3};
                    leaf 1 has two parents, {1}|{2} and {0}|{1}
  ALL_FOUR_TAXON    all 15 rooted topologies on 4 taxa

Probabilities come from uniform_probabilities(): every candidate edge of a
pool gets equal weight in both directions.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
sys.path.insert(0, os.path.dirname(__file__))

from dagtopo import (
    Clade,
    SamplingError,
    SamplingSession,
    Subsplit,
    SubsplitDAG,
    TopologySampler,
    Tree,
    build_tree,
    count_topologies,
    sample_trees_parallel,
    use_zero_weight_policy,
)
from examples_dags import (
    ALL_FOUR_TAXON,
    ONE_CHOICE,
    SINGLE_SIX_TAXON,
    THREE_TAXON,
    dag_from_topologies,
    disconnected_dag,
    edge_between,
    topology_key_of,
    uniform_probabilities,
)


# ======================================================================== #
# Fixtures                                                                  #
# ======================================================================== #


def _with_probs(topologies, n_taxa, with_root=True):
    dag, index = dag_from_topologies(topologies, n_taxa, with_root=with_root)
    normalized, inverted = uniform_probabilities(dag)
    return dag, index, normalized, inverted


@pytest.fixture(scope="module")
def three():
    return _with_probs(THREE_TAXON, 3)


@pytest.fixture(scope="module")
def six():
    return _with_probs(SINGLE_SIX_TAXON, 6)


@pytest.fixture(scope="module")
def one_choice():
    return _with_probs(ONE_CHOICE, 4)


@pytest.fixture(scope="module")
def four():
    return _with_probs(ALL_FOUR_TAXON, 4)


def assert_valid_tree(tree: Tree, n_taxa: int) -> None:
    assert sorted(tree.leaf_taxa()) == list(range(n_taxa))
    for node in tree.iter_postorder():
        assert node.is_leaf or len(node.children) == 2


# ======================================================================== #
# Leaf-set and structural properties                                        #
# ======================================================================== #


class TestTreeValidity:
    def test_leaf_set_is_taxon_universe_from_every_focus(self, four):
        dag, _, normalized, inverted = four
        sampler = TopologySampler(seed=0)
        for focus in range(dag.n_nodes):
            for _ in range(20):
                assert_valid_tree(sampler.sample(focus, dag, normalized, inverted), 4)

    def test_focus_node_is_in_sampled_tree(self, four):
        dag, _, normalized, inverted = four
        sampler = TopologySampler(seed=1)
        root = dag.roots()[0]
        for focus in range(dag.n_nodes):
            if focus == root:
                continue
            tree = sampler.sample(focus, dag, normalized, inverted)
            assert focus in {node.node_id for node in tree.iter_postorder()}

    def test_focus_clade_is_in_topology(self, four):
        dag, _, normalized, inverted = four
        sampler = TopologySampler(seed=2)
        for focus in range(dag.n_nodes):
            subsplit = dag.subsplits[focus]
            if subsplit.is_leaf or not np.any(subsplit.clade(Clade.RIGHT)):
                continue
            tree = sampler.sample(focus, dag, normalized, inverted)
            assert frozenset(subsplit.union_taxa) in tree.topology_key()

    def test_accepts_dag_node_focus(self, three):
        dag, _, normalized, inverted = three
        tree = TopologySampler(seed=0).sample(dag.node(0), dag, normalized, inverted)
        assert_valid_tree(tree, 3)

    def test_internal_nodes_tagged_with_dag_ids(self, three):
        dag, index, normalized, inverted = three
        tree = TopologySampler(seed=0).sample(0, dag, normalized, inverted)
        assert tree.node_id == index[Subsplit.from_taxa([0], [1, 2], 3)]
        inner = tree.children[1]
        assert inner.node_id == index[Subsplit.from_taxa([1], [2], 3)]


class TestSubgraphInvariants:
    def test_children_counts_and_unique_root(self, four):
        dag, _, normalized, inverted = four
        sampler = TopologySampler(seed=3)
        for focus in range(dag.n_nodes):
            for _ in range(10):
                session = sampler.sample_subgraph(focus, dag, normalized, inverted)
                root = session.find_root()
                assert root is not None
                assert focus in session.vertices

                roots = [
                    v for v in session.vertices
                    if session.parent_line(v) is None
                ]
                assert roots == [root]

                leaf_taxa = []
                for v in session.vertices:
                    n_children = sum(c is not None for c in session.children(v))
                    if dag.is_leaf(v):
                        assert n_children == 0
                        leaf_taxa.append(session.vertices[v].taxon)
                    elif v == root:
                        assert n_children in (1, 2)
                    else:
                        assert n_children == 2
                assert sorted(leaf_taxa) == [0, 1, 2, 3]
                session.check_complete(root)

    def test_one_edge_per_vertex_except_root(self, four):
        dag, _, normalized, inverted = four
        session = TopologySampler(seed=4).sample_subgraph(5, dag, normalized, inverted)
        assert len(session.lines) == len(session.vertices) - 1

    def test_inputs_not_mutated(self, four):
        dag, _, normalized, inverted = four
        before = (normalized.copy(), inverted.copy(), dag.edge_parent.copy())
        TopologySampler(seed=5).sample_many(50, 7, dag, normalized, inverted)
        assert np.array_equal(before[0], normalized)
        assert np.array_equal(before[1], inverted)
        assert np.array_equal(before[2], dag.edge_parent)


# ======================================================================== #
# Determinism                                                               #
# ======================================================================== #


class TestDeterminism:
    def test_same_seed_same_trees(self, four):
        dag, _, normalized, inverted = four
        a = TopologySampler(seed=123).sample_many(100, 9, dag, normalized, inverted)
        b = TopologySampler(seed=123).sample_many(100, 9, dag, normalized, inverted)
        assert a == b

    def test_set_seed_restarts_sequence(self, four):
        dag, _, normalized, inverted = four
        sampler = TopologySampler(seed=9)
        first = [sampler.sample(0, dag, normalized, inverted) for _ in range(30)]
        sampler.set_seed(9)
        again = [sampler.sample(0, dag, normalized, inverted) for _ in range(30)]
        assert first == again

    def test_different_seeds_differ(self, four):
        dag, _, normalized, inverted = four
        a = TopologySampler(seed=1).sample_many(50, 0, dag, normalized, inverted)
        b = TopologySampler(seed=2).sample_many(50, 0, dag, normalized, inverted)
        assert a != b


# ======================================================================== #
# Degenerate and minimal DAGs                                               #
# ======================================================================== #


class TestSingleTopology:
    @pytest.mark.parametrize("seed", range(10))
    def test_always_returns_the_encoded_topology(self, six, seed):
        dag, _, normalized, inverted = six
        expected = topology_key_of(SINGLE_SIX_TAXON[0])
        sampler = TopologySampler(seed=seed)
        for focus in range(dag.n_nodes):
            tree = sampler.sample(focus, dag, normalized, inverted)
            assert tree.topology_key() == expected

    def test_identical_trees_for_any_seed(self, six):
        dag, _, normalized, inverted = six
        trees = [TopologySampler(seed=s).sample(3, dag, normalized, inverted) for s in range(10)]
        assert all(t == trees[0] for t in trees)

    def test_three_taxa_minimal_case(self, three):
        dag, _, normalized, inverted = three
        for seed in range(20):
            tree = TopologySampler(seed=seed).sample(seed % dag.n_nodes, dag, normalized, inverted)
            internal = [n for n in tree.iter_postorder() if not n.is_leaf]
            assert len(internal) == 2  # the rootsplit and one more subsplit
            assert len([n for n in internal if n is not tree]) == 1
            assert tree.n_leaves == 3
            assert tree.topology_key() == topology_key_of(THREE_TAXON[0])

    def test_dag_without_universal_ancestor(self):
        dag, index, normalized, inverted = _with_probs(THREE_TAXON, 3, with_root=False)
        tree = TopologySampler(seed=0).sample(
            index[Subsplit.leaf(2, 3)], dag, normalized, inverted
        )
        assert tree.node_id == index[Subsplit.from_taxa([0], [1, 2], 3)]
        assert_valid_tree(tree, 3)


# ======================================================================== #
# Statistical correctness                                                   #
# ======================================================================== #


@pytest.mark.statistical
class TestFrequencies:
    n = 4000

    def _tolerance(self):
        return 5 * np.sqrt(0.25 / self.n)

    def test_leafward_binary_choice_is_fair(self, one_choice):
        dag, _, normalized, inverted = one_choice
        trees = TopologySampler(seed=2024).sample_many(
            self.n, dag.roots()[0], dag, normalized, inverted
        )
        counts = count_topologies(trees)
        assert len(counts) == 2
        frac = counts[topology_key_of(ONE_CHOICE[0])] / self.n
        assert abs(frac - 0.5) < self._tolerance()

    def test_rootward_binary_choice_is_fair(self, one_choice):
        dag, index, normalized, inverted = one_choice
        leaf1 = index[Subsplit.leaf(1, 4)]
        trees = TopologySampler(seed=77).sample_many(self.n, leaf1, dag, normalized, inverted)
        frac = np.mean([frozenset({1, 2}) in t.topology_key() for t in trees])
        assert abs(frac - 0.5) < self._tolerance()

    def test_weights_steer_the_choice(self, one_choice):
        dag, index, normalized, inverted = one_choice
        rootsplit = index[Subsplit.from_taxa([0, 1, 2], [3], 4)]
        favored = index[Subsplit.from_taxa([0, 1], [2], 4)]
        other = index[Subsplit.from_taxa([0], [1, 2], 4)]
        weighted = normalized.copy()
        weighted[edge_between(dag, rootsplit, favored)] = 0.9
        weighted[edge_between(dag, rootsplit, other)] = 0.1
        trees = TopologySampler(seed=8).sample_many(self.n, 0, dag, weighted, inverted)
        frac = np.mean([frozenset({0, 1}) in t.topology_key() for t in trees])
        assert abs(frac - 0.9) < 5 * np.sqrt(0.09 / self.n)

    def test_every_topology_reachable(self, four):
        dag, _, normalized, inverted = four
        tree = TopologySampler(seed=31).sample_from_root(dag, normalized)
        assert_valid_tree(tree, 4)
        sampled = count_topologies(
            TopologySampler(seed=31).sample_many(3000, 0, dag, normalized, inverted)
        )
        assert set(sampled) == {topology_key_of(t) for t in ALL_FOUR_TAXON}


# ======================================================================== #
# Root-only sampling                                                        #
# ======================================================================== #


class TestSampleFromRoot:
    def test_matches_sampling_with_root_focus(self, four):
        dag, _, normalized, inverted = four
        root = dag.roots()[0]
        a = [TopologySampler(seed=6).sample_from_root(dag, normalized)]
        b = [TopologySampler(seed=6).sample(root, dag, normalized, inverted)]
        assert a == b

    def test_requires_a_root(self):
        dag, _ = disconnected_dag()
        # the orphan has no parents but does not cover every taxon, so the
        # universal ancestor is still the only root
        assert len(dag.roots()) == 1
        no_root, _ = dag_from_topologies([], 2, with_root=False)
        with pytest.raises(SamplingError, match="exactly one DAG root"):
            TopologySampler(seed=0).sample_from_root(no_root, np.zeros(0))


# ======================================================================== #
# Failure modes                                                             #
# ======================================================================== #


class TestFailures:
    def test_disconnected_focus_has_no_root(self):
        dag, orphan = disconnected_dag()
        normalized, inverted = uniform_probabilities(dag)
        with pytest.raises(SamplingError, match="No root found"):
            TopologySampler(seed=0).sample(orphan, dag, normalized, inverted)

    def test_single_child_vertex_is_fatal(self, three):
        dag, index, normalized, inverted = three
        root = dag.roots()[0]
        rootsplit = index[Subsplit.from_taxa([0], [1, 2], 3)]
        leaf0 = index[Subsplit.leaf(0, 3)]
        session = SamplingSession(dag, normalized, inverted)
        session.add_line(dag.edge(edge_between(dag, root, rootsplit)))
        session.add_line(dag.edge(edge_between(dag, rootsplit, leaf0)))
        with pytest.raises(SamplingError, match="only 1 child"):
            build_tree(session, root)
        with pytest.raises(SamplingError, match="expected 2"):
            session.check_complete(root)

    def test_conflicting_children_rejected(self, one_choice):
        dag, index, normalized, inverted = one_choice
        rootsplit = index[Subsplit.from_taxa([0, 1, 2], [3], 4)]
        a = index[Subsplit.from_taxa([0, 1], [2], 4)]
        b = index[Subsplit.from_taxa([0], [1, 2], 4)]
        session = SamplingSession(dag, normalized, inverted)
        session.add_line(dag.edge(edge_between(dag, rootsplit, a)))
        with pytest.raises(SamplingError, match="already has child"):
            session.add_line(dag.edge(edge_between(dag, rootsplit, b)))

    def test_leaf_without_single_taxon_is_fatal(self):
        # {1}|{2} has no children, so it is a DAG leaf encoding two taxa
        subsplits = [
            Subsplit.from_taxa([0], [1, 2], 3),
            Subsplit.leaf(0, 3),
            Subsplit.from_taxa([1], [2], 3),
        ]
        dag = SubsplitDAG(subsplits, [(0, 1, Clade.LEFT), (0, 2, Clade.RIGHT)])
        with pytest.raises(SamplingError, match="Leaf vertex"):
            TopologySampler(seed=0).sample(0, dag, [1.0, 1.0], [1.0, 1.0])

    def test_zero_weight_pool_uniform_fallback(self, one_choice):
        dag, index, normalized, inverted = one_choice
        rootsplit = index[Subsplit.from_taxa([0, 1, 2], [3], 4)]
        zeroed = normalized.copy()
        for _, child in dag.node(rootsplit).leafward(Clade.LEFT):
            zeroed[edge_between(dag, rootsplit, child)] = 0.0
        trees = TopologySampler(seed=10).sample_many(200, 0, dag, zeroed, inverted)
        assert len(count_topologies(trees)) == 2

    def test_zero_weight_pool_raise_policy(self, one_choice):
        dag, index, normalized, inverted = one_choice
        rootsplit = index[Subsplit.from_taxa([0, 1, 2], [3], 4)]
        zeroed = normalized.copy()
        for _, child in dag.node(rootsplit).leafward(Clade.LEFT):
            zeroed[edge_between(dag, rootsplit, child)] = 0.0
        with pytest.raises(SamplingError):
            TopologySampler(seed=0, zero_weight="raise").sample(0, dag, zeroed, inverted)
        with use_zero_weight_policy("raise"):
            with pytest.raises(SamplingError):
                TopologySampler(seed=0).sample(0, dag, zeroed, inverted)


class TestArgumentChecks:
    def test_short_probability_table(self, three):
        dag, _, normalized, inverted = three
        with pytest.raises(ValueError, match="normalized"):
            TopologySampler().sample(0, dag, normalized[:-1], inverted)

    def test_negative_probability(self, three):
        dag, _, normalized, inverted = three
        bad = inverted.copy()
        bad[0] = -1.0
        with pytest.raises(ValueError, match="inverted"):
            TopologySampler().sample(0, dag, normalized, bad)

    def test_infinite_probability_rejected_before_drawing(self, three):
        dag, _, normalized, inverted = three
        bad = normalized.copy()
        bad[0] = np.inf
        sampler = TopologySampler(seed=8)
        with pytest.raises(ValueError, match="infinite"):
            sampler.sample(0, dag, bad, inverted)
        # no random draws were consumed by the failed call
        reference = np.random.default_rng(8)
        assert sampler._rng.random() == reference.random()

    def test_unknown_focus(self, three):
        dag, _, normalized, inverted = three
        with pytest.raises(IndexError):
            TopologySampler().sample(dag.n_nodes, dag, normalized, inverted)

    def test_focus_type(self, three):
        dag, _, normalized, inverted = three
        with pytest.raises(TypeError):
            TopologySampler().sample("root", dag, normalized, inverted)

    def test_focus_from_other_dag(self, three, six):
        dag, _, normalized, inverted = three
        other = six[0]
        with pytest.raises(ValueError, match="different DAG"):
            TopologySampler().sample(other.node(0), dag, normalized, inverted)

    def test_bad_policy_name(self):
        with pytest.raises(ValueError):
            TopologySampler(zero_weight="skip")

    def test_negative_count(self, three):
        dag, _, normalized, inverted = three
        with pytest.raises(ValueError):
            TopologySampler().sample_many(-1, 0, dag, normalized, inverted)


# ======================================================================== #
# Parallel sampling                                                         #
# ======================================================================== #


class TestParallelSampling:
    def test_count_and_validity(self, four):
        dag, _, normalized, inverted = four
        trees = sample_trees_parallel(101, 0, dag, normalized, inverted, seed=1, n_workers=4)
        assert len(trees) == 101
        for tree in trees:
            assert_valid_tree(tree, 4)

    def test_reproducible_for_fixed_seed_and_workers(self, four):
        dag, _, normalized, inverted = four
        a = sample_trees_parallel(60, 3, dag, normalized, inverted, seed=42, n_workers=3)
        b = sample_trees_parallel(60, 3, dag, normalized, inverted, seed=42, n_workers=3)
        assert a == b

    def test_more_workers_than_trees(self, three):
        dag, _, normalized, inverted = three
        trees = sample_trees_parallel(2, 0, dag, normalized, inverted, seed=0, n_workers=5)
        assert len(trees) == 2

    def test_zero_trees(self, three):
        dag, _, normalized, inverted = three
        assert sample_trees_parallel(0, 0, dag, normalized, inverted, seed=0) == []

    def test_invalid_worker_count(self, three):
        dag, _, normalized, inverted = three
        with pytest.raises(ValueError):
            sample_trees_parallel(5, 0, dag, normalized, inverted, n_workers=0)
