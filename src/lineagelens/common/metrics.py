"""Prometheus metrics for the lineage engine.

Provides pre-defined metrics for monitoring graph size, traversal and
impact analysis throughput, and background task health.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
APP_INFO = Info(
    "lineagelens",
    "LineageLens application information",
)

# Graph store metrics
GRAPH_NODES = Gauge(
    "lineagelens_graph_nodes",
    "Current number of registered data nodes",
)

GRAPH_RELATIONSHIPS = Gauge(
    "lineagelens_graph_relationships",
    "Current number of registered relationships",
)

# Traversal metrics
LINEAGE_TRACES = Counter(
    "lineagelens_lineage_traces_total",
    "Total number of lineage traces",
    ["direction"],
)

GRAPH_TRAVERSAL_NODES = Histogram(
    "lineagelens_graph_traversal_nodes",
    "Number of tree branches produced by a traversal",
    ["direction"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
)

TRAVERSAL_TIMEOUTS = Counter(
    "lineagelens_traversal_timeouts_total",
    "Total number of traversals aborted by a deadline",
)

# Impact analysis metrics
IMPACT_ANALYSES = Counter(
    "lineagelens_impact_analyses_total",
    "Total number of impact analysis requests",
    ["cache"],
)

IMPACT_ANALYSIS_LATENCY = Histogram(
    "lineagelens_impact_analysis_latency_seconds",
    "Time to compute an uncached impact analysis",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

IMPACT_CACHE_SIZE = Gauge(
    "lineagelens_impact_cache_size",
    "Current number of cached impact analyses",
)

IMPACT_CACHE_EVICTIONS = Counter(
    "lineagelens_impact_cache_evictions_total",
    "Total number of cache entries removed",
    ["reason"],
)

# Change audit metrics
CHANGES_RECORDED = Counter(
    "lineagelens_changes_recorded_total",
    "Total number of recorded data changes",
    ["change_type"],
)

# Health metrics
HEALTH_ISSUES = Gauge(
    "lineagelens_health_issues",
    "Integrity issues found by the last health check",
    ["issue_type"],
)

# Event metrics
EVENTS_PUBLISHED = Counter(
    "lineagelens_events_published_total",
    "Total number of published events",
    ["event_type"],
)

EVENT_HANDLER_ERRORS = Counter(
    "lineagelens_event_handler_errors_total",
    "Total number of event handler failures",
    ["event_type"],
)

EVENTS_DROPPED = Counter(
    "lineagelens_events_dropped_total",
    "Total number of events dropped from full channels",
    ["event_type"],
)

# Scheduler metrics
SCHEDULER_TASK_RUNS = Counter(
    "lineagelens_scheduler_task_runs_total",
    "Total number of background task runs",
    ["task"],
)

SCHEDULER_TASK_ERRORS = Counter(
    "lineagelens_scheduler_task_errors_total",
    "Total number of background task failures",
    ["task"],
)

SCHEDULER_TASK_DURATION = Histogram(
    "lineagelens_scheduler_task_duration_seconds",
    "Duration of background task runs",
    ["task"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric.

    Args:
        version: Application version.
        environment: Deployment environment.
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
