"""Health probes for the process hosting the lineage engine.

Component checks are async callables returning ``ComponentHealth``. The
engine registers its own (graph integrity, scheduler); a host may add
more. A check that raises is reported as unhealthy rather than failing
the probe.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from lineagelens.common.logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status values, from best to worst."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


def worst_status(statuses: list[HealthStatus]) -> HealthStatus:
    """Overall status of a set of components."""
    return max(statuses, key=lambda s: s.rank, default=HealthStatus.HEALTHY)


@dataclass
class ComponentHealth:
    """Health of a single engine component."""

    name: str
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "latency_ms": self.latency_ms,
            "details": self.details or None,
        }


@dataclass
class HealthResponse:
    """Probe response."""

    status: HealthStatus
    timestamp: datetime
    service: str
    version: str
    uptime_seconds: float
    components: list[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "service": self.service,
            "version": self.version,
            "uptime_seconds": self.uptime_seconds,
            "components": [c.to_dict() for c in self.components],
        }


HealthCheck = Callable[[], Awaitable[ComponentHealth]]


class HealthChecker:
    """Runs registered component checks for liveness and readiness probes.

    Usage:
        health = HealthChecker("LineageLens", "0.1.0")
        health.register_check("graph_integrity", check_graph)
        response = await health.readiness()
    """

    def __init__(self, service_name: str, version: str) -> None:
        self.service_name = service_name
        self.version = version
        self._checks: dict[str, HealthCheck] = {}
        self._started = time.monotonic()

    @property
    def check_names(self) -> list[str]:
        return list(self._checks)

    def register_check(self, name: str, check_func: HealthCheck) -> None:
        """Register a component check, replacing any check of the same name."""
        self._checks[name] = check_func

    async def liveness(self) -> HealthResponse:
        """Is the process alive? Runs no component checks."""
        return self._response(HealthStatus.HEALTHY, [])

    async def readiness(self) -> HealthResponse:
        """Can the engine answer queries? Runs every component check concurrently."""
        components = list(await asyncio.gather(
            *(self._run_check(name, check) for name, check in self._checks.items())
        ))
        status = worst_status([c.status for c in components])

        if status != HealthStatus.HEALTHY:
            logger.warning(
                "Readiness check not healthy",
                status=status,
                failing=[c.name for c in components if c.status != HealthStatus.HEALTHY],
            )
        return self._response(status, components)

    async def full_health(self) -> HealthResponse:
        """Readiness plus the details every component reported."""
        return await self.readiness()

    async def _run_check(self, name: str, check: HealthCheck) -> ComponentHealth:
        start = time.perf_counter()
        try:
            result = await check()
        except Exception as e:
            logger.error("Health check failed", component=name, error=str(e))
            result = ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=f"Check failed: {e}",
            )
        if result.latency_ms is None:
            result.latency_ms = round((time.perf_counter() - start) * 1000, 2)
        return result

    def _response(self, status: HealthStatus, components: list[ComponentHealth]) -> HealthResponse:
        return HealthResponse(
            status=status,
            timestamp=datetime.now(timezone.utc),
            service=self.service_name,
            version=self.version,
            uptime_seconds=round(time.monotonic() - self._started, 3),
            components=components,
        )
