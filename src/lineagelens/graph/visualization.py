"""Graph visualization data for lineage traces.

Turns a lineage trace into flat node and edge lists that a UI can lay
out directly. Rendering itself happens outside the engine.
"""

import time
from typing import Any
from uuid import uuid4

from lineagelens.common.logging import get_logger
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.traversal import GraphTraversal, LineageResult
from lineagelens.models.lineage import DataNode, Relationship, TraversalDirection, utcnow

logger = get_logger(__name__)

NODE_COLORS = {
    "source": "#4CAF50",
    "process": "#2196F3",
    "storage": "#FF9800",
    "output": "#9C27B0",
    "reference": "#607D8B",
}
DEFAULT_NODE_COLOR = "#9E9E9E"

EDGE_COLORS = {
    "data_flow": "#2196F3",
    "reference": "#4CAF50",
    "data_consumption": "#FF5722",
}
DEFAULT_EDGE_COLOR = "#9E9E9E"

EDGE_WEIGHTS = {
    "critical": 5,
    "high": 3,
    "medium": 2,
    "low": 1,
}


def node_size(node: DataNode) -> str:
    """Display size of a node, from its tags."""
    if node.has_tag("critical"):
        return "large"
    if node.has_tag("business_critical"):
        return "medium"
    return "small"


def edge_weight(relationship: Relationship) -> int:
    return EDGE_WEIGHTS.get(relationship.criticality.value, 1)


class LineageVisualizer:
    """Builds visualization graphs centred on a node."""

    def __init__(
        self,
        traversal: GraphTraversal,
        default_depth: int = 3,
        events: EventBus | None = None,
    ) -> None:
        """Initialize visualizer.

        Args:
            traversal: Traversal used to collect the graph.
            default_depth: Depth used when the caller gives none.
            events: Optional event bus for ``visualization:generated``.
        """
        self._traversal = traversal
        self._default_depth = default_depth
        self._events = events

    def render_visualization(
        self,
        node_id: str,
        depth: int | None = None,
        direction: TraversalDirection | str = TraversalDirection.BOTH,
        layout: str = "hierarchical",
        include_metadata: bool = True,
    ) -> dict[str, Any]:
        """Get lineage around a node formatted for visualization.

        Args:
            node_id: Centre node.
            depth: Traversal depth in each direction.
            direction: "upstream", "downstream", or "both".
            layout: Layout hint passed through to the renderer.
            include_metadata: Attach full node/relationship data.

        Returns:
            Visualization data with nodes and edges.
        """
        lineage = self._traversal.trace_lineage(
            node_id,
            direction=direction,
            max_depth=self._default_depth if depth is None else depth,
        )

        nodes = []
        for node in lineage.nodes().values():
            nodes.append({
                "id": node.id,
                "label": node.name,
                "kind": node.kind.value,
                "category": node.category,
                "size": node_size(node),
                "color": NODE_COLORS.get(node.kind.value, DEFAULT_NODE_COLOR),
                "metadata": node.to_dict() if include_metadata else None,
            })

        # relationships() is keyed by id, so each edge appears once
        edges = []
        for relationship in lineage.relationships().values():
            edges.append({
                "id": relationship.id,
                "source": relationship.source_id,
                "target": relationship.target_id,
                "label": relationship.kind.value,
                "weight": edge_weight(relationship),
                "color": EDGE_COLORS.get(relationship.kind.value, DEFAULT_EDGE_COLOR),
                "metadata": relationship.to_dict() if include_metadata else None,
            })

        generated_at = utcnow()
        visualization = {
            "graph_id": f"VIZ_{int(time.time() * 1000)}_{uuid4().hex[:9]}",
            "center_node": node_id,
            "layout": layout,
            "generated_at": generated_at.isoformat(),
            "nodes": nodes,
            "edges": edges,
            "metadata": self._metadata(lineage, len(nodes), len(edges)) if include_metadata else None,
        }

        logger.info(
            "Lineage visualization generated",
            graph_id=visualization["graph_id"],
            node_id=node_id,
            nodes=len(nodes),
            edges=len(edges),
        )

        if self._events is not None:
            self._events.publish(EventType.VISUALIZATION_GENERATED, visualization)

        return visualization

    @staticmethod
    def _metadata(lineage: LineageResult, node_count: int, edge_count: int) -> dict[str, Any]:
        return {
            "total_nodes": node_count,
            "total_edges": edge_count,
            "max_depth": lineage.stats.max_depth_reached,
            "direction": lineage.direction.value,
            "generation_time": utcnow().isoformat(),
        }
