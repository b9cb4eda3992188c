"""Pytest configuration and fixtures for LineageLens tests."""

from typing import Any, Callable

import pytest

from lineagelens.common.config import (
    LineageSettings,
    SchedulerSettings,
    ScoringSettings,
    Settings,
)
from lineagelens.common.logging import clear_context
from lineagelens.events.bus import EventBus, LineageEvent
from lineagelens.graph.cache import ImpactCache
from lineagelens.graph.impact import ImpactAnalyzer
from lineagelens.graph.store import GraphStore
from lineagelens.graph.traversal import GraphTraversal
from lineagelens.models.lineage import (
    Criticality,
    DataNode,
    DataQualityImpact,
    NodeKind,
    Relationship,
    RelationshipKind,
)
from lineagelens.schemas.lineage import GraphDefinition


class FakeClock:
    """Manually advanced clock for TTL and deadline tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    """Collects every published event."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[LineageEvent] = []
        bus.subscribe("*", self.events.append)

    def of_type(self, event_type: str) -> list[LineageEvent]:
        return [e for e in self.events if e.event_type.value == event_type]


def make_node(node_id: str, kind: NodeKind = NodeKind.PROCESS, **kwargs: Any) -> DataNode:
    kwargs.setdefault("name", node_id.upper())
    if "tags" in kwargs:
        kwargs["tags"] = frozenset(kwargs["tags"])
    return DataNode(id=node_id, kind=kind, **kwargs)


def make_relationship(
    rel_id: str,
    source_id: str,
    target_id: str,
    criticality: Criticality = Criticality.MEDIUM,
    quality: DataQualityImpact = DataQualityImpact.MEDIUM,
    kind: RelationshipKind = RelationshipKind.DATA_FLOW,
) -> Relationship:
    return Relationship(
        id=rel_id,
        source_id=source_id,
        target_id=target_id,
        kind=kind,
        criticality=criticality,
        data_quality_impact=quality,
    )


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Reset structlog context between tests."""
    yield
    clear_context()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def node_factory() -> Callable[..., DataNode]:
    return make_node


@pytest.fixture
def relationship_factory() -> Callable[..., Relationship]:
    return make_relationship


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no background scheduling and no cache warming."""
    return Settings(
        environment="development",
        debug=True,
        lineage=LineageSettings(warm_cache_on_start=False, bootstrap_path=None),
        scheduler=SchedulerSettings(enabled=False),
    )


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(channel_max_size=10)


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    return EventRecorder(event_bus)


@pytest.fixture
def store() -> GraphStore:
    return GraphStore()


@pytest.fixture
def example_store() -> GraphStore:
    """S(source) -> P(process) -> O(storage).

    S->P is critical with high quality impact, P->O is high with medium.
    """
    store = GraphStore()
    store.register_node(make_node("S", NodeKind.SOURCE))
    store.register_node(make_node("P", NodeKind.PROCESS))
    store.register_node(make_node("O", NodeKind.STORAGE))
    store.register_relationship(make_relationship(
        "rel_s_p", "S", "P", Criticality.CRITICAL, DataQualityImpact.HIGH,
    ))
    store.register_relationship(make_relationship(
        "rel_p_o", "P", "O", Criticality.HIGH, DataQualityImpact.MEDIUM,
    ))
    return store


@pytest.fixture
def cycle_store() -> GraphStore:
    """A -> B -> C -> A."""
    store = GraphStore()
    for node_id in ("A", "B", "C"):
        store.register_node(make_node(node_id))
    store.register_relationship(make_relationship("rel_a_b", "A", "B"))
    store.register_relationship(make_relationship("rel_b_c", "B", "C"))
    store.register_relationship(make_relationship("rel_c_a", "C", "A"))
    return store


@pytest.fixture
def diamond_store() -> GraphStore:
    """A -> B, A -> C, B -> D, C -> D."""
    store = GraphStore()
    for node_id in ("A", "B", "C", "D"):
        store.register_node(make_node(node_id))
    store.register_relationship(make_relationship("rel_a_b", "A", "B"))
    store.register_relationship(make_relationship("rel_a_c", "A", "C"))
    store.register_relationship(make_relationship("rel_b_d", "B", "D"))
    store.register_relationship(make_relationship("rel_c_d", "C", "D"))
    return store


def build_analyzer(
    store: GraphStore,
    clock: Callable[[], float],
    events: EventBus | None = None,
    ttl: float = 3600,
) -> ImpactAnalyzer:
    traversal = GraphTraversal(store, events=events)
    cache: ImpactCache = ImpactCache(default_ttl=ttl, max_entries=100, clock=clock)
    return ImpactAnalyzer(
        store,
        traversal,
        cache,
        scoring=ScoringSettings(),
        indirect_depth=5,
        events=events,
    )


@pytest.fixture
def analyzer_factory() -> Callable[..., ImpactAnalyzer]:
    return build_analyzer


@pytest.fixture
def park_definition() -> dict[str, Any]:
    """Carbon accounting data flows of an industrial park."""
    def node(node_id: str, name: str, kind: str, category: str, owner: str, tags: list[str]) -> dict:
        return {
            "id": node_id,
            "name": name,
            "kind": kind,
            "category": category,
            "owner": owner,
            "tags": tags,
        }

    def rel(rel_id: str, source: str, target: str, kind: str, quality: str, criticality: str) -> dict:
        return {
            "id": rel_id,
            "source_id": source,
            "target_id": target,
            "kind": kind,
            "data_quality_impact": quality,
            "criticality": criticality,
            "transformation": {"kind": "business_rule", "payload": {"rule": rel_id}},
        }

    return {
        "nodes": [
            node("source_ems_energy", "Energy Management System", "source", "energy",
                 "energy_team", ["energy", "real_time", "critical"]),
            node("source_mes_production", "Manufacturing Execution System", "source", "production",
                 "production_team", ["production", "hourly", "business_critical"]),
            node("source_carbon_factors", "Carbon Emission Factors", "reference", "carbon",
                 "carbon_team", ["carbon", "reference", "national_standard"]),
            node("process_carbon_calculation", "Carbon Emission Calculation", "process", "carbon",
                 "carbon_team", ["carbon", "calculation", "real_time"]),
            node("process_national_indicators", "National Indicator Calculation", "process",
                 "indicators", "indicator_team", ["indicators", "national_standard", "daily"]),
            node("process_energy_optimization", "Energy Optimization", "process", "optimization",
                 "optimization_team", ["optimization", "energy", "scheduling"]),
            node("storage_carbon_emissions", "Carbon Emissions Store", "storage", "carbon",
                 "carbon_team", ["carbon", "storage", "long_term"]),
            node("storage_national_indicators", "National Indicators Store", "storage",
                 "indicators", "indicator_team", ["indicators", "storage", "permanent"]),
            node("output_dashboard", "Monitoring Dashboard", "output", "visualization",
                 "ui_team", ["visualization", "dashboard", "real_time"]),
            node("output_reports", "Compliance Reports", "output", "reporting",
                 "report_team", ["reporting", "compliance", "on_demand"]),
            node("output_api", "Data Service API", "output", "api",
                 "api_team", ["api", "integration", "real_time"]),
        ],
        "relationships": [
            rel("rel_energy_to_carbon", "source_ems_energy", "process_carbon_calculation",
                "data_flow", "high", "critical"),
            rel("rel_carbon_factors_to_calculation", "source_carbon_factors",
                "process_carbon_calculation", "reference", "high", "critical"),
            rel("rel_carbon_calculation_to_storage", "process_carbon_calculation",
                "storage_carbon_emissions", "data_flow", "medium", "high"),
            rel("rel_production_to_indicators", "source_mes_production",
                "process_national_indicators", "data_flow", "high", "high"),
            rel("rel_carbon_to_indicators", "process_carbon_calculation",
                "process_national_indicators", "data_flow", "high", "critical"),
            rel("rel_indicators_to_storage", "process_national_indicators",
                "storage_national_indicators", "data_flow", "medium", "high"),
            rel("rel_energy_to_optimization", "source_ems_energy", "process_energy_optimization",
                "data_flow", "high", "high"),
            rel("rel_storage_to_dashboard", "storage_carbon_emissions", "output_dashboard",
                "data_consumption", "low", "medium"),
            rel("rel_indicators_to_dashboard", "storage_national_indicators", "output_dashboard",
                "data_consumption", "low", "medium"),
            rel("rel_storage_to_reports", "storage_carbon_emissions", "output_reports",
                "data_consumption", "medium", "high"),
            rel("rel_indicators_to_api", "storage_national_indicators", "output_api",
                "data_consumption", "medium", "medium"),
        ],
    }


@pytest.fixture
def park_store(park_definition: dict[str, Any]) -> GraphStore:
    definition = GraphDefinition.model_validate(park_definition)
    store = GraphStore()
    for node in definition.nodes:
        store.register_node(node.to_model())
    for relationship in definition.relationships:
        store.register_relationship(relationship.to_model())
    return store
