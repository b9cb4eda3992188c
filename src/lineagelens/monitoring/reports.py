"""Lineage reports assembled from live engine data."""

import time
from datetime import timedelta
from typing import Any

from lineagelens.audit.change_log import ChangeAuditLog
from lineagelens.common.exceptions import InvalidArgumentError
from lineagelens.common.logging import get_logger
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.impact import CriticalityLevel, ImpactAnalyzer
from lineagelens.graph.store import GraphStore
from lineagelens.monitoring.health_monitor import GraphHealthMonitor
from lineagelens.monitoring.statistics import FlowStatisticsCollector
from lineagelens.models.lineage import utcnow

logger = get_logger(__name__)

TIME_RANGES = {
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_TIME_RANGE = "30d"

SECTIONS = ("overview", "flow_analysis", "impact_summary", "change_history")
REPORT_TYPES = ("comprehensive",) + SECTIONS

RECENT_CHANGES_LIMIT = 10


def resolve_time_range(time_range: str | None) -> str:
    """Normalize a time range label, falling back to 30 days."""
    return time_range if time_range in TIME_RANGES else DEFAULT_TIME_RANGE


class LineageReporter:
    """Generates lineage reports."""

    def __init__(
        self,
        store: GraphStore,
        analyzer: ImpactAnalyzer,
        audit: ChangeAuditLog,
        statistics: FlowStatisticsCollector,
        health: GraphHealthMonitor,
        events: EventBus | None = None,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self._audit = audit
        self._statistics = statistics
        self._health = health
        self._events = events

    def generate_report(
        self,
        report_type: str = "comprehensive",
        time_range: str | None = DEFAULT_TIME_RANGE,
    ) -> dict[str, Any]:
        """Generate a lineage report.

        Args:
            report_type: "comprehensive" or a single section name.
            time_range: Change history window: 1d, 7d, 30d or 90d.

        Returns:
            Report with the requested sections.

        Raises:
            InvalidArgumentError: Unknown report type.
        """
        if report_type not in REPORT_TYPES:
            raise InvalidArgumentError(
                f"Unknown report type: {report_type}",
                details={"report_type": report_type, "allowed": list(REPORT_TYPES)},
            )

        time_range = resolve_time_range(time_range)
        wanted = SECTIONS if report_type == "comprehensive" else (report_type,)

        builders = {
            "overview": self._overview_section,
            "flow_analysis": self._flow_analysis_section,
            "impact_summary": self._impact_summary_section,
            "change_history": lambda: self._change_history_section(time_range),
        }

        report = {
            "report_id": f"RPT_{report_type}_{int(time.time() * 1000)}",
            "type": report_type,
            "generated_at": utcnow().isoformat(),
            "time_range": time_range,
            "sections": {name: builders[name]() for name in wanted},
        }

        logger.info("Lineage report generated", report_id=report["report_id"], sections=list(wanted))

        if self._events is not None:
            self._events.publish(EventType.REPORT_GENERATED, report)

        return report

    def _overview_section(self) -> dict[str, Any]:
        health = self._health.last_report or self._health.check_graph_health(publish=False)

        distribution: dict[str, int] = {}
        for node in self._store.list_nodes():
            distribution[node.kind.value] = distribution.get(node.kind.value, 0) + 1

        return {
            "total_nodes": self._store.node_count,
            "total_relationships": self._store.relationship_count,
            "node_distribution": distribution,
            "health_status": "healthy" if health.is_healthy else "degraded",
            "health_issues": len(health.issues),
            "last_health_check": health.checked_at.isoformat(),
        }

    def _flow_analysis_section(self) -> dict[str, Any]:
        stats = self._statistics.current or self._statistics.refresh_flow_statistics()
        names = {node.id: node.name for node in self._store.list_nodes()}
        patterns = stats.flow_patterns

        return {
            "critical_flows": [
                " → ".join(names.get(node_id, node_id) for node_id in path)
                for path in patterns.critical_paths
            ],
            "bottlenecks": [n.node_id for n in patterns.bottleneck_nodes],
            "most_connected_nodes": [n.node_id for n in patterns.most_connected_nodes],
            "statistics_generated_at": stats.generated_at.isoformat(),
        }

    def _impact_summary_section(self) -> dict[str, Any]:
        candidates = [
            node.id for node in self._store.list_nodes()
            if self._store.downstream_of(node.id)
        ]
        comparison = self._analyzer.compare_impacts(candidates)

        return {
            "high_impact_nodes": [
                scenario["node_id"] for scenario in comparison["scenarios"]
                if scenario["criticality_level"] == CriticalityLevel.HIGH.value
            ],
            "ranked_nodes": comparison["scenarios"][:RECENT_CHANGES_LIMIT],
            "recent_changes": len(self._audit),
        }

    def _change_history_section(self, time_range: str) -> dict[str, Any]:
        since = utcnow() - TIME_RANGES[time_range]
        changes = self._audit.list_changes(since=since)

        return {
            "total_changes": len(changes),
            "changes_by_type": self._audit.count_by_type(since=since),
            "recent_changes": [
                {
                    "change_id": change.change_id,
                    "node_id": change.node_id,
                    "change_type": change.change_type.value,
                    "timestamp": change.timestamp.isoformat(),
                    "validation_status": change.validation_status.value,
                }
                for change in changes[-RECENT_CHANGES_LIMIT:]
            ],
        }
