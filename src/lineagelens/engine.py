"""Lineage engine wiring.

``LineageEngine`` owns one instance of every component, connects them
through a shared event bus and exposes the query and mutation API.
Foreground calls are synchronous; only startup, shutdown and the
background scheduler run on the event loop.
"""

import time
from datetime import datetime
from typing import Any, Callable

from lineagelens.audit.change_log import ChangeAuditLog, ChangeRecord
from lineagelens.common.config import Settings, get_settings
from lineagelens.common.health import ComponentHealth, HealthChecker, HealthStatus
from lineagelens.common.logging import get_logger, setup_logging
from lineagelens.common.metrics import set_app_info
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.cache import ImpactCache
from lineagelens.graph.impact import ImpactAnalysis, ImpactAnalyzer
from lineagelens.graph.store import GraphStore
from lineagelens.graph.traversal import GraphTraversal, LineageResult
from lineagelens.graph.visualization import LineageVisualizer
from lineagelens.models.change import ChangeType
from lineagelens.models.lineage import DataNode, Relationship, TraversalDirection
from lineagelens.monitoring.health_monitor import GraphHealthMonitor, GraphHealthReport
from lineagelens.monitoring.reports import LineageReporter
from lineagelens.monitoring.statistics import FlowStatistics, FlowStatisticsCollector
from lineagelens.schemas.change import ChangeDetails
from lineagelens.schemas.lineage import GraphDefinition, NodeDefinition, RelationshipDefinition
from lineagelens.tasks.scheduler import BackgroundScheduler

logger = get_logger(__name__)

HEALTH_CHECK_TASK = "health_check"
CACHE_SWEEP_TASK = "cache_sweep"
STATISTICS_TASK = "flow_statistics"


class LineageEngine:
    """Data lineage engine.

    Usage:
        engine = LineageEngine.from_settings()
        await engine.start()

        lineage = engine.trace_lineage("source_energy", "downstream")
        impact = engine.analyze_impact("source_energy", "schema_change")

        await engine.stop()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        events: EventBus | None = None,
        cache_clock: Callable[[], float] = time.time,
        rollback_steps: list[str] | None = None,
    ) -> None:
        """Initialize engine and all of its components.

        Args:
            settings: Application settings. Uses global settings if not provided.
            events: Event bus to publish on. A new one is created if not provided.
            cache_clock: Wall clock for the impact cache.
            rollback_steps: Rollback steps attached to every impact analysis.
        """
        if settings is None:
            settings = get_settings()

        self._settings = settings
        lineage = settings.lineage

        self.events = events or EventBus(channel_max_size=settings.events.channel_max_size)
        self.store = GraphStore()
        self.traversal = GraphTraversal(
            self.store,
            max_depth=lineage.default_max_depth,
            max_depth_limit=lineage.max_depth_limit,
            events=self.events,
        )
        self.cache: ImpactCache[ImpactAnalysis] = ImpactCache(
            default_ttl=lineage.impact_cache_ttl_seconds,
            max_entries=lineage.impact_cache_max_entries,
            clock=cache_clock,
        )
        self.analyzer = ImpactAnalyzer(
            self.store,
            self.traversal,
            self.cache,
            scoring=settings.scoring,
            indirect_depth=lineage.indirect_max_depth,
            rollback_steps=rollback_steps,
            events=self.events,
        )
        self.audit = ChangeAuditLog(self.store, self.analyzer, events=self.events)
        self.visualizer = LineageVisualizer(
            self.traversal,
            default_depth=lineage.visualization_depth,
            events=self.events,
        )
        self.health_monitor = GraphHealthMonitor(self.store, events=self.events)
        self.statistics = FlowStatisticsCollector(self.store, self.traversal, events=self.events)
        self.reporter = LineageReporter(
            self.store,
            self.analyzer,
            self.audit,
            self.statistics,
            self.health_monitor,
            events=self.events,
        )

        self.scheduler = BackgroundScheduler(settings.scheduler)
        self.scheduler.add_task(
            HEALTH_CHECK_TASK,
            settings.scheduler.health_check_interval_seconds,
            self.check_graph_health,
        )
        self.scheduler.add_task(
            CACHE_SWEEP_TASK,
            settings.scheduler.cache_sweep_interval_seconds,
            self.analyzer.sweep_expired,
        )
        self.scheduler.add_task(
            STATISTICS_TASK,
            settings.scheduler.statistics_interval_seconds,
            self.refresh_flow_statistics,
        )

        self.health = HealthChecker(settings.app_name, settings.app_version)
        self.health.register_check("graph_integrity", self._check_graph_integrity)
        self.health.register_check("scheduler", self._check_scheduler)

        self._created_at = time.monotonic()
        self._running = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LineageEngine":
        """Set up logging, create an engine and load the configured bootstrap graph."""
        if settings is None:
            settings = get_settings()
        setup_logging(settings)

        engine = cls(settings)
        path = engine._settings.lineage.bootstrap_path
        if path is not None:
            engine.bootstrap(GraphDefinition.from_file(path))
        return engine

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def bootstrap(self, definition: GraphDefinition | dict[str, Any]) -> dict[str, int]:
        """Register every node, then every relationship, in order.

        Args:
            definition: Graph definition or its raw mapping.

        Returns:
            Counts of registered nodes and relationships.
        """
        if not isinstance(definition, GraphDefinition):
            definition = GraphDefinition.model_validate(definition)

        for node in definition.nodes:
            self.store.register_node(node.to_model())
        for relationship in definition.relationships:
            self.store.register_relationship(relationship.to_model())

        logger.info(
            "Lineage graph bootstrapped",
            nodes=len(definition.nodes),
            relationships=len(definition.relationships),
        )
        return {
            "nodes": len(definition.nodes),
            "relationships": len(definition.relationships),
        }

    async def start(self) -> None:
        """Warm the impact cache, start background tasks and announce readiness."""
        if self._running:
            return

        set_app_info(
            version=self._settings.app_version,
            environment=self._settings.environment,
        )

        if self._settings.lineage.warm_cache_on_start:
            self.analyzer.warm_cache(self._settings.lineage.warm_cache_tag)

        await self.scheduler.start()
        self._running = True

        logger.info(
            "Lineage engine started",
            nodes=self.store.node_count,
            relationships=self.store.relationship_count,
        )
        self.events.publish(EventType.READY, self.get_status())

    async def stop(self) -> None:
        """Stop background tasks and announce shutdown."""
        if not self._running:
            return

        await self.scheduler.stop()
        self._running = False

        logger.info("Lineage engine stopped")
        self.events.publish(EventType.STOPPED, self.get_status())

    async def __aenter__(self) -> "LineageEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register_node(self, node: DataNode | NodeDefinition | dict[str, Any]) -> DataNode:
        """Register or redefine a data node."""
        if isinstance(node, dict):
            node = NodeDefinition.model_validate(node)
        if isinstance(node, NodeDefinition):
            node = node.to_model()
        return self.store.register_node(node)

    def register_relationship(
        self,
        relationship: Relationship | RelationshipDefinition | dict[str, Any],
    ) -> Relationship:
        """Register or redefine a relationship."""
        if isinstance(relationship, dict):
            relationship = RelationshipDefinition.model_validate(relationship)
        if isinstance(relationship, RelationshipDefinition):
            relationship = relationship.to_model()
        return self.store.register_relationship(relationship)

    def remove_node(self, node_id: str) -> list[str]:
        """Remove a node with its relationships and drop its cached analyses.

        Returns:
            Ids of the removed relationships.
        """
        removed = self.store.remove_node(node_id)
        self.analyzer.invalidate(node_id)
        return removed

    def remove_relationship(self, relationship_id: str) -> Relationship:
        return self.store.remove_relationship(relationship_id)

    def record_change(
        self,
        node_id: str,
        details: ChangeDetails | dict[str, Any] | None = None,
        force_refresh: bool = False,
    ) -> ChangeRecord:
        return self.audit.record_change(node_id, details, force_refresh=force_refresh)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> DataNode:
        return self.store.get_node(node_id)

    def trace_lineage(
        self,
        node_id: str,
        direction: TraversalDirection | str = TraversalDirection.BOTH,
        max_depth: int | None = None,
        deadline: float | None = None,
    ) -> LineageResult:
        return self.traversal.trace_lineage(node_id, direction, max_depth, deadline)

    def analyze_impact(
        self,
        node_id: str,
        change_type: ChangeType | str = ChangeType.DATA_CHANGE,
        use_cache: bool = True,
        deadline: float | None = None,
    ) -> ImpactAnalysis:
        return self.analyzer.analyze_impact(node_id, change_type, use_cache, deadline)

    def compare_impacts(
        self,
        node_ids: list[str],
        change_type: ChangeType | str = ChangeType.DATA_CHANGE,
    ) -> dict[str, Any]:
        return self.analyzer.compare_impacts(node_ids, change_type)

    def render_visualization(
        self,
        node_id: str,
        depth: int | None = None,
        direction: TraversalDirection | str = TraversalDirection.BOTH,
        layout: str = "hierarchical",
        include_metadata: bool = True,
    ) -> dict[str, Any]:
        return self.visualizer.render_visualization(
            node_id, depth, direction, layout, include_metadata
        )

    def get_change(self, change_id: str) -> ChangeRecord:
        return self.audit.get_change(change_id)

    def list_changes(
        self,
        node_id: str | None = None,
        since: datetime | None = None,
        change_type: ChangeType | str | None = None,
        limit: int | None = None,
    ) -> list[ChangeRecord]:
        return self.audit.list_changes(node_id, since, change_type, limit)

    def check_graph_health(self) -> GraphHealthReport:
        return self.health_monitor.check_graph_health()

    def refresh_flow_statistics(self) -> FlowStatistics:
        return self.statistics.refresh_flow_statistics()

    def generate_report(
        self,
        report_type: str = "comprehensive",
        time_range: str | None = "30d",
    ) -> dict[str, Any]:
        return self.reporter.generate_report(report_type, time_range)

    def get_status(self) -> dict[str, Any]:
        """Get engine status summary."""
        last_check = self.health_monitor.last_checked_at
        return {
            "service_name": self._settings.app_name,
            "status": "running" if self._running else "stopped",
            "uptime_seconds": round(time.monotonic() - self._created_at, 3),
            "statistics": {
                "total_nodes": self.store.node_count,
                "total_relationships": self.store.relationship_count,
                "cached_impact_analyses": len(self.cache),
                "change_records": len(self.audit),
                "active_tasks": self.scheduler.active_task_count,
            },
            "last_health_check": last_check.isoformat() if last_check else None,
        }

    # ------------------------------------------------------------------
    # Health probes
    # ------------------------------------------------------------------

    async def _check_graph_integrity(self) -> ComponentHealth:
        report = self.health_monitor.last_report
        if report is None:
            report = self.health_monitor.check_graph_health(publish=False)

        if report.is_healthy:
            return ComponentHealth(
                name="graph_integrity",
                status=HealthStatus.HEALTHY,
                message="No integrity issues",
                details={"total_nodes": report.total_nodes},
            )
        return ComponentHealth(
            name="graph_integrity",
            status=HealthStatus.DEGRADED,
            message=f"{len(report.issues)} integrity issues",
            details={
                "unhealthy_nodes": report.unhealthy_nodes,
                "broken_relationships": report.broken_relationships,
            },
        )

    async def _check_scheduler(self) -> ComponentHealth:
        if not self._settings.scheduler.enabled:
            return ComponentHealth(
                name="scheduler",
                status=HealthStatus.HEALTHY,
                message="Scheduler disabled",
            )

        expected = len(self.scheduler.tasks) if self._running else 0
        active = self.scheduler.active_task_count
        status = HealthStatus.HEALTHY if active == expected else HealthStatus.DEGRADED
        return ComponentHealth(
            name="scheduler",
            status=status,
            message=f"{active}/{expected} background tasks running",
            details={name: task.to_dict() for name, task in self.scheduler.tasks.items()},
        )
