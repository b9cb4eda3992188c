"""Lineage graph traversal.

Provides depth-bounded, cycle-safe upstream and downstream walks over
the graph store. Results are explicit trees so that the same node may
appear on several branches (diamond dependencies) while no single branch
revisits a node.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator

from lineagelens.common.exceptions import (
    InvalidDepthError,
    InvalidDirectionError,
    TraversalTimeoutError,
)
from lineagelens.common.logging import get_logger
from lineagelens.common.metrics import GRAPH_TRAVERSAL_NODES, LINEAGE_TRACES, TRAVERSAL_TIMEOUTS
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.store import GraphStore
from lineagelens.models.lineage import DataNode, Relationship, TraversalDirection

logger = get_logger(__name__)


@dataclass
class LineageBranch:
    """A node reached by a traversal, with the edge used to reach it."""

    node: DataNode
    relationship: Relationship
    depth: int  # Hops from the root
    children: list["LineageBranch"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node": self.node.to_dict(),
            "relationship": self.relationship.to_dict(),
            "depth": self.depth,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class LineageTree:
    """Result of a one-directional traversal."""

    root: DataNode
    direction: TraversalDirection  # UPSTREAM or DOWNSTREAM
    max_depth: int
    branches: list[LineageBranch] = field(default_factory=list)

    def walk(self) -> Iterator[LineageBranch]:
        """Iterate over all branches in depth-first pre-order."""
        stack = list(reversed(self.branches))
        while stack:
            branch = stack.pop()
            yield branch
            stack.extend(reversed(branch.children))

    @property
    def depth_reached(self) -> int:
        return max((branch.depth for branch in self.walk()), default=0)

    @property
    def branch_count(self) -> int:
        return sum(1 for _ in self.walk())

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_id": self.root.id,
            "direction": self.direction.value,
            "max_depth": self.max_depth,
            "branches": [branch.to_dict() for branch in self.branches],
        }


@dataclass
class PathStep:
    """One hop of a lineage path."""

    node_id: str
    node_name: str
    relationship_id: str | None = None


@dataclass
class LineagePath:
    """A linear root-to-leaf sequence of nodes."""

    path_id: str
    direction: TraversalDirection
    steps: list[PathStep]

    @property
    def length(self) -> int:
        return len(self.steps)

    @property
    def node_ids(self) -> list[str]:
        return [step.node_id for step in self.steps]

    def to_dict(self) -> dict[str, Any]:
        return {
            "path_id": self.path_id,
            "direction": self.direction.value,
            "nodes": [
                {
                    "node_id": step.node_id,
                    "node_name": step.node_name,
                    "relationship_id": step.relationship_id,
                }
                for step in self.steps
            ],
            "length": self.length,
        }


@dataclass
class LineageStats:
    """Aggregate figures of a lineage result."""

    total_nodes: int
    total_relationships: int
    max_depth_reached: int
    node_kinds: dict[str, int]
    relationship_kinds: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "total_relationships": self.total_relationships,
            "max_depth_reached": self.max_depth_reached,
            "node_kinds": dict(self.node_kinds),
            "relationship_kinds": dict(self.relationship_kinds),
        }


@dataclass
class LineageResult:
    """Result of a lineage trace in one or both directions."""

    root: DataNode
    direction: TraversalDirection
    max_depth: int
    upstream: LineageTree | None
    downstream: LineageTree | None
    paths: list[LineagePath]
    stats: LineageStats
    traced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def trees(self) -> list[LineageTree]:
        return [tree for tree in (self.upstream, self.downstream) if tree is not None]

    def nodes(self) -> dict[str, DataNode]:
        """All distinct nodes in the result, root first."""
        nodes = {self.root.id: self.root}
        for tree in self.trees():
            for branch in tree.walk():
                nodes.setdefault(branch.node.id, branch.node)
        return nodes

    def relationships(self) -> dict[str, Relationship]:
        """All distinct relationships in the result."""
        relationships: dict[str, Relationship] = {}
        for tree in self.trees():
            for branch in tree.walk():
                relationships.setdefault(branch.relationship.id, branch.relationship)
        return relationships

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_node": self.root.to_dict(),
            "direction": self.direction.value,
            "max_depth": self.max_depth,
            "traced_at": self.traced_at.isoformat(),
            "upstream_lineage": self.upstream.to_dict() if self.upstream else None,
            "downstream_lineage": self.downstream.to_dict() if self.downstream else None,
            "lineage_paths": [path.to_dict() for path in self.paths],
            "statistics": self.stats.to_dict(),
        }


class GraphTraversal:
    """Performs depth-bounded traversals of the lineage graph.

    Supports:
    - Upstream traversal (where did this data come from)
    - Downstream traversal (what consumes this data)
    - Combined lineage traces with paths and statistics

    Each recursive call receives its own copy of the visited set, so a
    diamond is explored on every path while a cycle ends the branch that
    closes it.
    """

    def __init__(
        self,
        store: GraphStore,
        max_depth: int = 5,
        max_depth_limit: int = 50,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize traversal.

        Args:
            store: Graph store to traverse.
            max_depth: Default traversal depth.
            max_depth_limit: Largest depth a caller may request.
            events: Optional event bus for ``lineage:traced``.
            clock: Monotonic clock used for deadlines.
        """
        self._store = store
        self._max_depth = max_depth
        self._max_depth_limit = max_depth_limit
        self._events = events
        self._clock = clock

    def trace_upstream(
        self,
        node_id: str,
        max_depth: int | None = None,
        deadline: float | None = None,
    ) -> LineageTree:
        """Get the tree of nodes the given node derives from.

        Args:
            node_id: Starting node.
            max_depth: Maximum traversal depth.
            deadline: Optional ``clock()`` value after which to abort.

        Returns:
            Upstream lineage tree.
        """
        return self._trace(node_id, TraversalDirection.UPSTREAM, max_depth, deadline)

    def trace_downstream(
        self,
        node_id: str,
        max_depth: int | None = None,
        deadline: float | None = None,
    ) -> LineageTree:
        """Get the tree of nodes that consume the given node.

        Args:
            node_id: Starting node.
            max_depth: Maximum traversal depth.
            deadline: Optional ``clock()`` value after which to abort.

        Returns:
            Downstream lineage tree.
        """
        return self._trace(node_id, TraversalDirection.DOWNSTREAM, max_depth, deadline)

    def trace_lineage(
        self,
        node_id: str,
        direction: TraversalDirection | str = TraversalDirection.BOTH,
        max_depth: int | None = None,
        deadline: float | None = None,
    ) -> LineageResult:
        """Trace lineage in one or both directions.

        Args:
            node_id: Root node.
            direction: "upstream", "downstream", or "both".
            max_depth: Maximum traversal depth.
            deadline: Optional ``clock()`` value after which to abort.

        Returns:
            Lineage result with trees, root-to-leaf paths and statistics.

        Raises:
            NodeNotFoundError: Root node is not registered.
            InvalidDirectionError: Unknown direction.
            InvalidDepthError: Depth out of range.
        """
        direction = parse_direction(direction)
        depth = self._resolve_depth(max_depth)
        root = self._store.get_node(node_id)

        upstream = None
        downstream = None
        if direction in (TraversalDirection.UPSTREAM, TraversalDirection.BOTH):
            upstream = self.trace_upstream(node_id, depth, deadline)
        if direction in (TraversalDirection.DOWNSTREAM, TraversalDirection.BOTH):
            downstream = self.trace_downstream(node_id, depth, deadline)

        result = LineageResult(
            root=root,
            direction=direction,
            max_depth=depth,
            upstream=upstream,
            downstream=downstream,
            paths=build_paths(root, downstream) if downstream else [],
            stats=LineageStats(0, 0, 0, {}, {}),
        )
        result.stats = compute_stats(result)

        LINEAGE_TRACES.labels(direction=direction.value).inc()
        logger.info(
            "Lineage traced",
            node_id=node_id,
            direction=direction.value,
            max_depth=depth,
            total_nodes=result.stats.total_nodes,
        )

        if self._events is not None:
            self._events.publish(EventType.LINEAGE_TRACED, result)

        return result

    def _trace(
        self,
        node_id: str,
        direction: TraversalDirection,
        max_depth: int | None,
        deadline: float | None,
    ) -> LineageTree:
        depth = self._resolve_depth(max_depth)
        root = self._store.get_node(node_id)

        branches = self._walk(node_id, depth, frozenset(), direction, 1, deadline)
        tree = LineageTree(root=root, direction=direction, max_depth=depth, branches=branches)

        GRAPH_TRAVERSAL_NODES.labels(direction=direction.value).observe(tree.branch_count)
        return tree

    def _walk(
        self,
        node_id: str,
        remaining: int,
        visited: frozenset[str],
        direction: TraversalDirection,
        level: int,
        deadline: float | None,
    ) -> list[LineageBranch]:
        if remaining <= 0 or node_id in visited:
            return []

        if deadline is not None and self._clock() > deadline:
            TRAVERSAL_TIMEOUTS.inc()
            raise TraversalTimeoutError(
                details={"node_id": node_id, "direction": direction.value, "level": level},
            )

        visited = visited | {node_id}

        if direction == TraversalDirection.DOWNSTREAM:
            rel_ids = self._store.downstream_of(node_id)
        else:
            rel_ids = self._store.upstream_of(node_id)

        branches = []
        for rel_id in sorted(rel_ids):
            relationship = self._store.get_relationship(rel_id)
            neighbor_id = (
                relationship.target_id
                if direction == TraversalDirection.DOWNSTREAM
                else relationship.source_id
            )

            if not self._store.has_node(neighbor_id):
                # Dangling endpoint, reported by the health check
                logger.debug(
                    "Skipping dangling relationship",
                    relationship_id=rel_id,
                    missing_node_id=neighbor_id,
                )
                continue

            branches.append(LineageBranch(
                node=self._store.get_node(neighbor_id),
                relationship=relationship,
                depth=level,
                children=self._walk(
                    neighbor_id, remaining - 1, visited, direction, level + 1, deadline
                ),
            ))

        return branches

    def _resolve_depth(self, max_depth: int | None) -> int:
        depth = self._max_depth if max_depth is None else max_depth
        if isinstance(depth, bool) or not isinstance(depth, int):
            raise InvalidDepthError(depth, self._max_depth_limit)
        if depth < 0 or depth > self._max_depth_limit:
            raise InvalidDepthError(depth, self._max_depth_limit)
        return depth


def parse_direction(value: TraversalDirection | str) -> TraversalDirection:
    """Coerce a traversal direction, rejecting unknown values.

    Raises:
        InvalidDirectionError: If the value is not a known direction.
    """
    if isinstance(value, TraversalDirection):
        return value
    try:
        return TraversalDirection(value)
    except ValueError:
        raise InvalidDirectionError(value) from None


def build_paths(root: DataNode, tree: LineageTree) -> list[LineagePath]:
    """Materialize every root-to-leaf path of a tree."""
    paths: list[LineagePath] = []

    def extend(branches: list[LineageBranch], prefix: list[PathStep]) -> None:
        for branch in branches:
            steps = prefix + [PathStep(
                node_id=branch.node.id,
                node_name=branch.node.name,
                relationship_id=branch.relationship.id,
            )]
            if branch.children:
                extend(branch.children, steps)
            else:
                paths.append(LineagePath(
                    path_id=f"path_{len(paths) + 1}",
                    direction=tree.direction,
                    steps=steps,
                ))

    extend(tree.branches, [PathStep(node_id=root.id, node_name=root.name)])
    return paths


def compute_stats(result: LineageResult) -> LineageStats:
    """Flatten a lineage result into aggregate statistics."""
    nodes = result.nodes()
    relationships = result.relationships()

    node_kinds: dict[str, int] = {}
    for node in nodes.values():
        node_kinds[node.kind.value] = node_kinds.get(node.kind.value, 0) + 1

    relationship_kinds: dict[str, int] = {}
    for relationship in relationships.values():
        kind = relationship.kind.value
        relationship_kinds[kind] = relationship_kinds.get(kind, 0) + 1

    return LineageStats(
        total_nodes=len(nodes),
        total_relationships=len(relationships),
        max_depth_reached=max((tree.depth_reached for tree in result.trees()), default=0),
        node_kinds=node_kinds,
        relationship_kinds=relationship_kinds,
    )
