"""Flow statistics over the whole lineage graph."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lineagelens.common.logging import get_logger
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.store import GraphStore
from lineagelens.graph.traversal import GraphTraversal, build_paths
from lineagelens.models.lineage import Criticality, utcnow

logger = get_logger(__name__)

CRITICAL_PATH_LEVELS = frozenset({Criticality.CRITICAL, Criticality.HIGH})


@dataclass
class ConnectedNode:
    """Connection counts of a node."""

    node_id: str
    node_name: str
    in_degree: int
    out_degree: int

    @property
    def degree(self) -> int:
        return self.in_degree + self.out_degree

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "in_degree": self.in_degree,
            "out_degree": self.out_degree,
            "degree": self.degree,
        }


@dataclass
class FlowPatterns:
    """Structural patterns in the flow of data."""

    most_connected_nodes: list[ConnectedNode] = field(default_factory=list)
    bottleneck_nodes: list[ConnectedNode] = field(default_factory=list)
    critical_paths: list[list[str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "most_connected_nodes": [n.to_dict() for n in self.most_connected_nodes],
            "bottleneck_nodes": [n.to_dict() for n in self.bottleneck_nodes],
            "critical_paths": [list(path) for path in self.critical_paths],
        }


@dataclass
class FlowStatistics:
    """Snapshot of graph composition and flow patterns."""

    generated_at: datetime
    nodes_by_kind: dict[str, int] = field(default_factory=dict)
    nodes_by_category: dict[str, int] = field(default_factory=dict)
    nodes_by_owner: dict[str, int] = field(default_factory=dict)
    relationships_by_kind: dict[str, int] = field(default_factory=dict)
    relationships_by_criticality: dict[str, int] = field(default_factory=dict)
    relationships_by_quality_impact: dict[str, int] = field(default_factory=dict)
    flow_patterns: FlowPatterns = field(default_factory=FlowPatterns)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.generated_at.isoformat(),
            "node_statistics": {
                "by_kind": dict(self.nodes_by_kind),
                "by_category": dict(self.nodes_by_category),
                "by_owner": dict(self.nodes_by_owner),
            },
            "relationship_statistics": {
                "by_kind": dict(self.relationships_by_kind),
                "by_criticality": dict(self.relationships_by_criticality),
                "by_data_quality_impact": dict(self.relationships_by_quality_impact),
            },
            "flow_patterns": self.flow_patterns.to_dict(),
        }


def _bump(counts: dict[str, int], key: str) -> None:
    counts[key] = counts.get(key, 0) + 1


class FlowStatisticsCollector:
    """Computes flow statistics and keeps the current snapshot.

    Flow patterns:
    - Most connected: highest in + out degree
    - Bottleneck: intermediate nodes where several flows converge and
      fan out again (in_degree * out_degree >= 2)
    - Critical path: source-to-leaf path made only of high or critical
      relationships
    """

    def __init__(
        self,
        store: GraphStore,
        traversal: GraphTraversal,
        top_n: int = 5,
        max_critical_paths: int = 10,
        events: EventBus | None = None,
    ) -> None:
        self._store = store
        self._traversal = traversal
        self._top_n = top_n
        self._max_critical_paths = max_critical_paths
        self._events = events
        self.current: FlowStatistics | None = None

    def refresh_flow_statistics(self) -> FlowStatistics:
        """Recompute statistics and store them as the current snapshot."""
        stats = FlowStatistics(generated_at=utcnow())

        for node in self._store.list_nodes():
            _bump(stats.nodes_by_kind, node.kind.value)
            _bump(stats.nodes_by_category, node.category)
            _bump(stats.nodes_by_owner, node.owner)

        for relationship in self._store.iter_relationships():
            _bump(stats.relationships_by_kind, relationship.kind.value)
            _bump(stats.relationships_by_criticality, relationship.criticality.value)
            _bump(stats.relationships_by_quality_impact, relationship.data_quality_impact.value)

        stats.flow_patterns = self._flow_patterns()
        self.current = stats

        logger.info(
            "Flow statistics updated",
            nodes=sum(stats.nodes_by_kind.values()),
            relationships=sum(stats.relationships_by_kind.values()),
            critical_paths=len(stats.flow_patterns.critical_paths),
        )

        if self._events is not None:
            self._events.publish(EventType.STATISTICS_UPDATED, stats)

        return stats

    def _flow_patterns(self) -> FlowPatterns:
        connected = [
            ConnectedNode(
                node_id=node.id,
                node_name=node.name,
                in_degree=len(self._store.upstream_of(node.id)),
                out_degree=len(self._store.downstream_of(node.id)),
            )
            for node in self._store.list_nodes()
        ]

        most_connected = sorted(
            (n for n in connected if n.degree > 0),
            key=lambda n: (-n.degree, n.node_id),
        )[:self._top_n]

        bottlenecks = sorted(
            (n for n in connected if n.in_degree * n.out_degree >= 2),
            key=lambda n: (-(n.in_degree * n.out_degree), n.node_id),
        )[:self._top_n]

        return FlowPatterns(
            most_connected_nodes=most_connected,
            bottleneck_nodes=bottlenecks,
            critical_paths=self._critical_paths(),
        )

    def _critical_paths(self) -> list[list[str]]:
        """Paths from root nodes along high or critical relationships only."""
        paths: list[list[str]] = []

        roots = [
            node for node in self._store.list_nodes()
            if not self._store.upstream_of(node.id) and self._store.downstream_of(node.id)
        ]

        for root in roots:
            tree = self._traversal.trace_downstream(root.id)
            for path in build_paths(root, tree):
                rel_ids = [step.relationship_id for step in path.steps if step.relationship_id]
                if not rel_ids:
                    continue
                if all(
                    self._store.get_relationship(rel_id).criticality in CRITICAL_PATH_LEVELS
                    for rel_id in rel_ids
                ):
                    paths.append(path.node_ids)
                if len(paths) >= self._max_critical_paths:
                    return paths

        return paths
