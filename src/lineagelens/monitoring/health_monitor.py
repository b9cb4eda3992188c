"""Graph integrity checks.

Reports inactive or failed nodes and relationships whose endpoints do
not exist. Problems are reported, never repaired and never raised.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lineagelens.common.logging import get_logger
from lineagelens.common.metrics import HEALTH_ISSUES
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.store import GraphStore
from lineagelens.models.lineage import utcnow

logger = get_logger(__name__)

UNHEALTHY_NODE = "unhealthy_node"
BROKEN_RELATIONSHIP = "broken_relationship"


@dataclass
class IntegrityWarning:
    """A single problem found by the health check."""

    issue_type: str
    message: str
    node_id: str | None = None
    relationship_id: str | None = None
    missing_node_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.issue_type, "issue": self.message}
        if self.node_id is not None:
            result["node_id"] = self.node_id
        if self.relationship_id is not None:
            result["relationship_id"] = self.relationship_id
            result["missing_node_ids"] = list(self.missing_node_ids)
        return result


@dataclass
class GraphHealthReport:
    """Result of a graph health check."""

    checked_at: datetime
    total_nodes: int
    total_relationships: int
    healthy_nodes: int = 0
    unhealthy_nodes: int = 0
    broken_relationships: int = 0
    issues: list[IntegrityWarning] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.checked_at.isoformat(),
            "total_nodes": self.total_nodes,
            "total_relationships": self.total_relationships,
            "healthy_nodes": self.healthy_nodes,
            "unhealthy_nodes": self.unhealthy_nodes,
            "broken_relationships": self.broken_relationships,
            "issues": [issue.to_dict() for issue in self.issues],
        }


class GraphHealthMonitor:
    """Checks node status and relationship integrity."""

    def __init__(self, store: GraphStore, events: EventBus | None = None) -> None:
        self._store = store
        self._events = events
        self.last_report: GraphHealthReport | None = None

    @property
    def last_checked_at(self) -> datetime | None:
        return self.last_report.checked_at if self.last_report else None

    def check_graph_health(self, publish: bool = True) -> GraphHealthReport:
        """Run the health check.

        Args:
            publish: Publish ``lineage:health_issues`` when issues are found.

        Returns:
            Health report.
        """
        nodes = self._store.list_nodes()
        relationships = list(self._store.iter_relationships())

        report = GraphHealthReport(
            checked_at=utcnow(),
            total_nodes=len(nodes),
            total_relationships=len(relationships),
        )

        for node in nodes:
            if node.is_active:
                report.healthy_nodes += 1
                continue
            report.unhealthy_nodes += 1
            report.issues.append(IntegrityWarning(
                issue_type=UNHEALTHY_NODE,
                message=f"Node status is {node.status.value}",
                node_id=node.id,
            ))

        for relationship in relationships:
            missing = tuple(
                node_id for node_id in (relationship.source_id, relationship.target_id)
                if not self._store.has_node(node_id)
            )
            if not missing:
                continue
            report.broken_relationships += 1
            report.issues.append(IntegrityWarning(
                issue_type=BROKEN_RELATIONSHIP,
                message="Relationship references a node that does not exist",
                relationship_id=relationship.id,
                missing_node_ids=missing,
            ))

        HEALTH_ISSUES.labels(issue_type=UNHEALTHY_NODE).set(report.unhealthy_nodes)
        HEALTH_ISSUES.labels(issue_type=BROKEN_RELATIONSHIP).set(report.broken_relationships)
        self.last_report = report

        if report.issues:
            logger.warning(
                "Lineage health issues found",
                unhealthy_nodes=report.unhealthy_nodes,
                broken_relationships=report.broken_relationships,
            )
            if publish and self._events is not None:
                self._events.publish(EventType.HEALTH_ISSUES, report)
        else:
            logger.info("Lineage health check passed", total_nodes=report.total_nodes)

        return report
