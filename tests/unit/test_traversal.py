"""Unit tests for lineage traversal."""

import pytest

from lineagelens.common.exceptions import (
    InvalidDepthError,
    InvalidDirectionError,
    NodeNotFoundError,
    TraversalTimeoutError,
)
from lineagelens.graph.store import GraphStore
from lineagelens.graph.traversal import GraphTraversal, LineageTree, parse_direction
from lineagelens.models.lineage import TraversalDirection


def longest_path(tree: LineageTree) -> int:
    return max((branch.depth for branch in tree.walk()), default=0)


@pytest.mark.unit
class TestTraceDownstream:
    """Test cases for downstream traversal."""

    def test_example_chain(self, example_store: GraphStore):
        """Test S -> P -> O is returned as a nested tree."""
        tree = GraphTraversal(example_store).trace_downstream("S")

        assert tree.root.id == "S"
        assert [b.node.id for b in tree.branches] == ["P"]
        assert tree.branches[0].relationship.id == "rel_s_p"
        assert tree.branches[0].depth == 1
        assert [c.node.id for c in tree.branches[0].children] == ["O"]
        assert tree.branches[0].children[0].depth == 2

    def test_depth_zero_is_empty(self, example_store: GraphStore):
        """Test a zero depth returns no branches."""
        tree = GraphTraversal(example_store).trace_downstream("S", max_depth=0)
        assert tree.branches == []

    def test_depth_one_stops_after_first_hop(self, example_store: GraphStore):
        """Test depth bounds the tree."""
        tree = GraphTraversal(example_store).trace_downstream("S", max_depth=1)

        assert [b.node.id for b in tree.walk()] == ["P"]
        assert tree.branches[0].children == []

    def test_leaf_node_has_no_downstream(self, example_store: GraphStore):
        """Test traversal from a leaf."""
        tree = GraphTraversal(example_store).trace_downstream("O")
        assert tree.branches == []


@pytest.mark.unit
class TestTraceUpstream:
    """Test cases for upstream traversal."""

    def test_upstream_chain(self, example_store: GraphStore):
        """Test O traces back to S through P."""
        tree = GraphTraversal(example_store).trace_upstream("O")

        assert [b.node.id for b in tree.walk()] == ["P", "S"]
        assert tree.direction == TraversalDirection.UPSTREAM

    def test_upstream_fan_in(self, park_store: GraphStore):
        """Test every input of the carbon calculation is reported."""
        tree = GraphTraversal(park_store).trace_upstream("process_carbon_calculation")

        assert {b.node.id for b in tree.branches} == {
            "source_ems_energy",
            "source_carbon_factors",
        }


@pytest.mark.unit
class TestTraversalInvariants:
    """Termination, cycle safety and diamond completeness."""

    @pytest.mark.parametrize("depth", [0, 1, 2, 5, 10])
    def test_termination_respects_depth(self, cycle_store: GraphStore, depth: int):
        """Test cyclic graphs terminate within the depth bound."""
        traversal = GraphTraversal(cycle_store)

        downstream = traversal.trace_downstream("A", max_depth=depth)
        upstream = traversal.trace_upstream("A", max_depth=depth)

        assert longest_path(downstream) <= depth
        assert longest_path(upstream) <= depth

    def test_cycle_safety(self, cycle_store: GraphStore):
        """Test A -> B -> C -> A does not loop and lists B once."""
        tree = GraphTraversal(cycle_store).trace_downstream("A", max_depth=5)

        assert [b.node.id for b in tree.branches] == ["B"]
        b = tree.branches[0]
        assert [c.node.id for c in b.children] == ["C"]
        c = b.children[0]

        # The edge closing the cycle stays visible but is not expanded
        assert [x.node.id for x in c.children] == ["A"]
        assert c.children[0].relationship.id == "rel_c_a"
        assert c.children[0].children == []
        assert tree.branch_count == 3

    def test_diamond_completeness(self, diamond_store: GraphStore):
        """Test D is reached through both B and C."""
        tree = GraphTraversal(diamond_store).trace_downstream("A", max_depth=5)

        by_first_hop = {b.node.id: b for b in tree.branches}
        assert set(by_first_hop) == {"B", "C"}
        assert [c.node.id for c in by_first_hop["B"].children] == ["D"]
        assert [c.node.id for c in by_first_hop["C"].children] == ["D"]
        assert by_first_hop["B"].children[0].relationship.id == "rel_b_d"
        assert by_first_hop["C"].children[0].relationship.id == "rel_c_d"

    def test_dangling_relationship_skipped(self, example_store: GraphStore, relationship_factory):
        """Test relationships to unregistered nodes are not followed."""
        example_store.register_relationship(relationship_factory("rel_ghost", "P", "ghost"))

        tree = GraphTraversal(example_store).trace_downstream("S")
        assert "ghost" not in {b.node.id for b in tree.walk()}


@pytest.mark.unit
class TestTraceLineage:
    """Test cases for combined lineage traces."""

    def test_both_directions(self, example_store: GraphStore):
        """Test a trace from the middle covers both sides."""
        result = GraphTraversal(example_store).trace_lineage("P")

        assert result.upstream is not None
        assert result.downstream is not None
        assert [b.node.id for b in result.upstream.walk()] == ["S"]
        assert [b.node.id for b in result.downstream.walk()] == ["O"]

    def test_single_direction(self, example_store: GraphStore):
        """Test an upstream-only trace has no downstream tree or paths."""
        result = GraphTraversal(example_store).trace_lineage("P", "upstream")

        assert result.downstream is None
        assert result.paths == []

    def test_paths_root_to_leaf(self, diamond_store: GraphStore):
        """Test paths cover each downstream branch."""
        result = GraphTraversal(diamond_store).trace_lineage("A", "downstream")

        assert [p.node_ids for p in result.paths] == [
            ["A", "B", "D"],
            ["A", "C", "D"],
        ]
        assert [p.path_id for p in result.paths] == ["path_1", "path_2"]
        assert result.paths[0].steps[0].relationship_id is None
        assert result.paths[0].steps[1].relationship_id == "rel_a_b"

    def test_stats(self, diamond_store: GraphStore):
        """Test stats count distinct nodes and relationships."""
        result = GraphTraversal(diamond_store).trace_lineage("A", "downstream")

        assert result.stats.total_nodes == 4
        assert result.stats.total_relationships == 4
        assert result.stats.max_depth_reached == 2
        assert result.stats.node_kinds == {"process": 4}
        assert result.stats.relationship_kinds == {"data_flow": 4}

    def test_publishes_event(self, example_store: GraphStore, event_bus, recorder):
        """Test lineage:traced is published with the result."""
        result = GraphTraversal(example_store, events=event_bus).trace_lineage("S")

        traced = recorder.of_type("lineage:traced")
        assert len(traced) == 1
        assert traced[0].payload is result

    def test_to_dict(self, example_store: GraphStore):
        """Test serialized shape."""
        data = GraphTraversal(example_store).trace_lineage("S").to_dict()

        assert data["root_node"]["id"] == "S"
        assert data["direction"] == "both"
        assert data["downstream_lineage"]["branches"][0]["node"]["id"] == "P"
        assert data["lineage_paths"][0]["length"] == 3
        assert data["statistics"]["total_nodes"] == 3


@pytest.mark.unit
class TestTraversalErrors:
    """Test cases for argument validation."""

    def test_unknown_node(self, example_store: GraphStore):
        """Test unknown roots fail fast."""
        with pytest.raises(NodeNotFoundError):
            GraphTraversal(example_store).trace_lineage("missing")

    @pytest.mark.parametrize("depth", [-1, 51, 2.5, True, "3"])
    def test_invalid_depth(self, example_store: GraphStore, depth):
        """Test depth must be an int within the cap."""
        with pytest.raises(InvalidDepthError):
            GraphTraversal(example_store, max_depth_limit=50).trace_downstream("S", depth)

    def test_invalid_direction(self, example_store: GraphStore):
        """Test unknown directions are rejected."""
        with pytest.raises(InvalidDirectionError):
            GraphTraversal(example_store).trace_lineage("S", "sideways")

    def test_parse_direction(self):
        """Test direction coercion."""
        assert parse_direction("both") == TraversalDirection.BOTH
        assert parse_direction(TraversalDirection.UPSTREAM) == TraversalDirection.UPSTREAM

    def test_deadline_exceeded(self, cycle_store: GraphStore, clock):
        """Test an expired deadline aborts the walk."""
        traversal = GraphTraversal(cycle_store, clock=clock)

        with pytest.raises(TraversalTimeoutError) as exc_info:
            traversal.trace_downstream("A", deadline=clock.now - 1)

        assert exc_info.value.status_code == 504

    def test_deadline_not_reached(self, cycle_store: GraphStore, clock):
        """Test a future deadline does not interfere."""
        traversal = GraphTraversal(cycle_store, clock=clock)
        tree = traversal.trace_downstream("A", deadline=clock.now + 10)
        assert tree.branch_count == 3
