"""Graph health, flow statistics and reports."""

from lineagelens.monitoring.health_monitor import (
    GraphHealthMonitor,
    GraphHealthReport,
    IntegrityWarning,
)
from lineagelens.monitoring.reports import LineageReporter
from lineagelens.monitoring.statistics import (
    ConnectedNode,
    FlowPatterns,
    FlowStatistics,
    FlowStatisticsCollector,
)

__all__ = [
    "GraphHealthMonitor",
    "GraphHealthReport",
    "IntegrityWarning",
    "FlowStatistics",
    "FlowStatisticsCollector",
    "FlowPatterns",
    "ConnectedNode",
    "LineageReporter",
]
