"""Unit tests for impact analysis."""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest

from lineagelens.common.config import ScoringSettings
from lineagelens.common.exceptions import InvalidChangeTypeError, NodeNotFoundError
from lineagelens.graph.impact import (
    DEFAULT_ROLLBACK_STEPS,
    CriticalityLevel,
    ImpactAnalyzer,
)
from lineagelens.graph.store import GraphStore
from lineagelens.models.change import ChangeType
from lineagelens.models.lineage import Criticality, DataQualityImpact


@pytest.mark.unit
class TestExampleScenario:
    """S -> P -> O scores exactly as documented."""

    def test_scores(self, example_store: GraphStore, analyzer_factory, clock):
        """Test direct 15, indirect 5, overall 20, medium."""
        analysis = analyzer_factory(example_store, clock).analyze_impact("S")

        assert analysis.direct_impact.impact_score == 15
        assert analysis.indirect_impact.impact_score == 5
        assert analysis.total_impact.overall_score == 20
        assert analysis.total_impact.criticality_level == CriticalityLevel.MEDIUM

    def test_affected_nodes(self, example_store: GraphStore, analyzer_factory, clock):
        """Test P is direct and O is indirect at depth 2."""
        analysis = analyzer_factory(example_store, clock).analyze_impact("S")

        direct = analysis.direct_impact.affected_nodes
        assert [(e.node.id, e.depth, e.impact_type) for e in direct] == [
            ("P", 1, "direct_downstream"),
        ]
        indirect = analysis.indirect_impact.affected_nodes
        assert [(e.node.id, e.depth, e.impact_type) for e in indirect] == [
            ("O", 2, "indirect_downstream"),
        ]
        assert analysis.total_impact.total_affected_nodes == 2
        assert analysis.total_impact.total_affected_relationships == 2

    def test_mitigations_and_rollback(self, example_store: GraphStore, analyzer_factory, clock):
        """Test a medium change only gets enhanced monitoring."""
        analysis = analyzer_factory(example_store, clock).analyze_impact("S")

        assert [m.strategy for m in analysis.mitigation_strategies] == ["monitoring_enhancement"]
        assert analysis.rollback_plan.strategy == "automated_rollback"
        assert analysis.rollback_plan.estimated_time == "15_minutes"
        assert analysis.rollback_plan.steps == DEFAULT_ROLLBACK_STEPS
        assert len(analysis.rollback_plan.steps) == 5
        assert len(analysis.rollback_plan.validation) == 3

    def test_leaf_has_no_impact(self, example_store: GraphStore, analyzer_factory, clock):
        """Test a node nothing depends on scores zero."""
        analysis = analyzer_factory(example_store, clock).analyze_impact("O")

        assert analysis.total_impact.overall_score == 0
        assert analysis.total_impact.total_affected_nodes == 0
        assert analysis.total_impact.criticality_level == CriticalityLevel.LOW


@pytest.mark.unit
class TestCaching:
    """Cache idempotence and expiry."""

    def test_cached_result_is_identical(self, example_store: GraphStore, analyzer_factory, clock):
        """Test two calls within the TTL return the same object."""
        analyzer = analyzer_factory(example_store, clock)

        first = analyzer.analyze_impact("S", "data_change")
        clock.advance(100)
        second = analyzer.analyze_impact("S", "data_change")

        assert second is first
        assert second.cached_at == first.cached_at

    def test_cached_result_cannot_be_mutated(
        self, example_store: GraphStore, analyzer_factory, clock,
    ):
        """Test a caller cannot alter the result later callers receive."""
        analyzer = analyzer_factory(example_store, clock)
        first = analyzer.analyze_impact("S")

        with pytest.raises(FrozenInstanceError):
            first.total_impact.overall_score = 0
        with pytest.raises(FrozenInstanceError):
            first.direct_impact.affected_nodes[0].depth = 9
        with pytest.raises(AttributeError):
            first.mitigation_strategies.append(None)
        with pytest.raises(AttributeError):
            first.rollback_plan.steps.clear()

        second = analyzer.analyze_impact("S")
        assert second.total_impact.overall_score == 20
        assert len(second.mitigation_strategies) == 1
        assert len(second.rollback_plan.steps) == 5

    def test_expired_result_is_recomputed(self, example_store: GraphStore, analyzer_factory, clock):
        """Test a call after the TTL produces a new cached_at."""
        analyzer = analyzer_factory(example_store, clock, ttl=60)

        first = analyzer.analyze_impact("S")
        clock.advance(61)
        second = analyzer.analyze_impact("S")

        assert second is not first
        assert second.cached_at > first.cached_at
        assert second.cached_at == datetime.fromtimestamp(clock.now, tz=timezone.utc)
        assert second.ttl == 60

    def test_expired_result_reflects_graph_changes(
        self, example_store: GraphStore, analyzer_factory, clock, node_factory, relationship_factory,
    ):
        """Test the recomputed analysis sees relationships added meanwhile."""
        analyzer = analyzer_factory(example_store, clock, ttl=60)
        first = analyzer.analyze_impact("S")

        example_store.register_node(node_factory("X"))
        example_store.register_relationship(relationship_factory("rel_s_x", "S", "X"))

        assert analyzer.analyze_impact("S") is first

        clock.advance(61)
        assert analyzer.analyze_impact("S").total_impact.total_affected_nodes == 3

    def test_change_types_cached_separately(self, example_store: GraphStore, analyzer_factory, clock):
        """Test the change type is part of the cache key."""
        analyzer = analyzer_factory(example_store, clock)

        data = analyzer.analyze_impact("S", ChangeType.DATA_CHANGE)
        schema = analyzer.analyze_impact("S", ChangeType.SCHEMA_CHANGE)

        assert schema is not data
        assert schema.change_type == ChangeType.SCHEMA_CHANGE
        assert len(analyzer.cache) == 2

    def test_bypass_cache(self, example_store: GraphStore, analyzer_factory, clock):
        """Test use_cache=False recomputes and rewrites the entry."""
        analyzer = analyzer_factory(example_store, clock)

        first = analyzer.analyze_impact("S")
        second = analyzer.analyze_impact("S", use_cache=False)

        assert second is not first
        assert analyzer.analyze_impact("S") is second

    def test_invalidate(self, example_store: GraphStore, analyzer_factory, clock):
        """Test invalidation for one node and for all."""
        analyzer = analyzer_factory(example_store, clock)
        analyzer.analyze_impact("S")
        analyzer.analyze_impact("S", "schema_change")
        analyzer.analyze_impact("P")

        assert analyzer.invalidate("S") == 2
        assert analyzer.invalidate() == 1

    def test_sweep_expired(self, example_store: GraphStore, analyzer_factory, clock):
        """Test the sweep reclaims expired analyses."""
        analyzer = analyzer_factory(example_store, clock, ttl=60)
        analyzer.analyze_impact("S")
        clock.advance(61)

        assert analyzer.sweep_expired() == 1
        assert len(analyzer.cache) == 0


@pytest.mark.unit
class TestScoring:
    """Scoring rules and monotonicity."""

    def test_adding_critical_relationship_increases_score(
        self, example_store: GraphStore, analyzer_factory, clock, node_factory, relationship_factory,
    ):
        """Test score monotonicity for a new critical downstream edge."""
        analyzer = analyzer_factory(example_store, clock)
        before = analyzer.analyze_impact("S").total_impact.overall_score

        example_store.register_node(node_factory("X"))
        example_store.register_relationship(
            relationship_factory("rel_s_x", "S", "X", Criticality.CRITICAL, DataQualityImpact.LOW)
        )
        after = analyzer.analyze_impact("S", use_cache=False).total_impact.overall_score

        assert after > before
        assert after == before + 11

    def test_diamond_scores_each_path(
        self, diamond_store: GraphStore, analyzer_factory, clock,
    ):
        """Test both paths into D are scored while D is counted once."""
        analysis = analyzer_factory(diamond_store, clock).analyze_impact("A")

        # Direct: A->B, A->C at medium/medium = 2 * (4 + 3)
        assert analysis.direct_impact.impact_score == 14
        # Indirect: B->D, C->D = 2 * 7 * 0.5
        assert analysis.indirect_impact.impact_score == 7
        assert [e.relationship.id for e in analysis.indirect_impact.affected_nodes] == [
            "rel_b_d",
            "rel_c_d",
        ]
        assert analysis.total_impact.total_affected_nodes == 3
        assert analysis.total_impact.total_affected_relationships == 4

    def test_diamond_tail_is_scored_once_per_path(
        self, node_factory, relationship_factory, analyzer_factory, clock,
    ):
        """Test D->E below a diamond is scored on each path that reaches it."""
        store = GraphStore()
        for node_id in ("A", "B", "C", "D", "E"):
            store.register_node(node_factory(node_id))
        for rel_id, src, tgt in [
            ("rel_a_b", "A", "B"),
            ("rel_a_c", "A", "C"),
            ("rel_b_d", "B", "D"),
            ("rel_c_d", "C", "D"),
            ("rel_d_e", "D", "E"),
        ]:
            store.register_relationship(
                relationship_factory(rel_id, src, tgt, Criticality.CRITICAL, DataQualityImpact.HIGH)
            )

        analysis = analyzer_factory(store, clock).analyze_impact("A")

        assert analysis.direct_impact.impact_score == 30
        # B->D, D->E, C->D, D->E = 4 * 15 * 0.5
        assert analysis.indirect_impact.impact_score == 30
        assert [e.relationship.id for e in analysis.indirect_impact.affected_nodes] == [
            "rel_b_d",
            "rel_d_e",
            "rel_c_d",
            "rel_d_e",
        ]
        assert analysis.total_impact.total_affected_nodes == 4
        assert analysis.total_impact.total_affected_relationships == 5
        assert analysis.total_impact.overall_score == 60

    def test_score_of_fifty_is_medium(
        self, store: GraphStore, node_factory, relationship_factory, analyzer_factory, clock,
    ):
        """Test a score exactly on the high threshold stays medium."""
        for node_id in ("X", "T1", "T2", "T3", "T4"):
            store.register_node(node_factory(node_id))
        for rel_id, target in [("rel_x_1", "T1"), ("rel_x_2", "T2"), ("rel_x_3", "T3")]:
            store.register_relationship(
                relationship_factory(rel_id, "X", target, Criticality.CRITICAL, DataQualityImpact.HIGH)
            )
        store.register_relationship(
            relationship_factory("rel_x_4", "X", "T4", Criticality.MEDIUM, DataQualityImpact.LOW)
        )

        analysis = analyzer_factory(store, clock).analyze_impact("X")

        assert analysis.total_impact.overall_score == 50
        assert analysis.total_impact.total_affected_nodes == 4
        assert analysis.total_impact.criticality_level == CriticalityLevel.MEDIUM
        assert [m.strategy for m in analysis.mitigation_strategies] == ["monitoring_enhancement"]

    def test_cycle_is_scored_finitely(self, cycle_store: GraphStore, analyzer_factory, clock):
        """Test a cyclic graph counts each relationship once."""
        analysis = analyzer_factory(cycle_store, clock).analyze_impact("A")

        assert analysis.direct_impact.impact_score == 7
        assert analysis.indirect_impact.impact_score == 7
        # C->A loops back to the changed node itself
        assert analysis.total_impact.total_affected_nodes == 3

    def test_high_level_mitigations(self, park_store: GraphStore, analyzer_factory, clock):
        """Test a high impact change gets the full mitigation set."""
        analysis = analyzer_factory(park_store, clock).analyze_impact("source_ems_energy")

        assert analysis.total_impact.criticality_level == CriticalityLevel.HIGH
        assert analysis.total_impact.total_affected_nodes > 5
        assert [m.strategy for m in analysis.mitigation_strategies] == [
            "staged_rollout",
            "backup_verification",
            "parallel_testing",
            "monitoring_enhancement",
        ]

    @pytest.mark.parametrize(
        ("score", "nodes", "expected"),
        [
            (0, 0, CriticalityLevel.LOW),
            (19.5, 5, CriticalityLevel.LOW),
            (20, 0, CriticalityLevel.MEDIUM),
            (10, 6, CriticalityLevel.MEDIUM),
            (49.5, 10, CriticalityLevel.MEDIUM),
            (50, 0, CriticalityLevel.MEDIUM),
            (50, 10, CriticalityLevel.MEDIUM),
            (50.5, 0, CriticalityLevel.HIGH),
            (0, 11, CriticalityLevel.HIGH),
        ],
    )
    def test_criticality_level(self, store: GraphStore, analyzer_factory, clock, score, nodes, expected):
        """Test level thresholds."""
        analyzer = analyzer_factory(store, clock)
        assert analyzer.criticality_level(score, nodes) == expected

    def test_custom_weights(self, example_store: GraphStore, clock):
        """Test weights come from scoring settings."""
        from lineagelens.graph.cache import ImpactCache
        from lineagelens.graph.traversal import GraphTraversal

        scoring = ScoringSettings(
            criticality_weights={"critical": 1, "high": 1, "medium": 1, "low": 1},
            quality_weights={"high": 0, "medium": 0, "low": 0},
            indirect_discount=1.0,
        )
        analyzer = ImpactAnalyzer(
            example_store,
            GraphTraversal(example_store),
            ImpactCache(clock=clock),
            scoring=scoring,
        )

        assert analyzer.analyze_impact("S").total_impact.overall_score == 2

    def test_custom_rollback_steps(self, example_store: GraphStore, clock):
        """Test collaborator-supplied rollback steps are used."""
        from lineagelens.graph.cache import ImpactCache
        from lineagelens.graph.traversal import GraphTraversal

        analyzer = ImpactAnalyzer(
            example_store,
            GraphTraversal(example_store),
            ImpactCache(clock=clock),
            scoring=ScoringSettings(),
            rollback_steps=["Revert the pipeline release"],
        )

        assert analyzer.analyze_impact("S").rollback_plan.steps == ("Revert the pipeline release",)


@pytest.mark.unit
class TestImpactErrors:
    """Error handling and side effects."""

    def test_unknown_node_writes_nothing(self, example_store: GraphStore, analyzer_factory, clock):
        """Test unknown nodes raise and leave the cache untouched."""
        analyzer = analyzer_factory(example_store, clock)

        with pytest.raises(NodeNotFoundError):
            analyzer.analyze_impact("missing")

        assert len(analyzer.cache) == 0

    def test_unknown_change_type(self, example_store: GraphStore, analyzer_factory, clock):
        """Test unknown change types are rejected."""
        with pytest.raises(InvalidChangeTypeError):
            analyzer_factory(example_store, clock).analyze_impact("S", "meteor_strike")

    def test_event_only_on_fresh_analysis(
        self, example_store: GraphStore, analyzer_factory, clock, event_bus, recorder,
    ):
        """Test impact:analyzed is not published for cache hits."""
        analyzer = analyzer_factory(example_store, clock, events=event_bus)

        analysis = analyzer.analyze_impact("S")
        analyzer.analyze_impact("S")

        analyzed = recorder.of_type("impact:analyzed")
        assert len(analyzed) == 1
        assert analyzed[0].payload is analysis


@pytest.mark.unit
class TestCacheWarmingAndComparison:
    """Test cases for warm_cache and compare_impacts."""

    def test_warm_cache(self, park_store: GraphStore, analyzer_factory, clock):
        """Test every node tagged critical is precomputed."""
        analyzer = analyzer_factory(park_store, clock)

        assert analyzer.warm_cache("critical") == 1
        assert ("source_ems_energy", "data_change") in analyzer.cache

    def test_compare_impacts(self, park_store: GraphStore, analyzer_factory, clock):
        """Test nodes are ranked by overall score and unknown ids skipped."""
        analyzer = analyzer_factory(park_store, clock)

        comparison = analyzer.compare_impacts(
            ["output_api", "source_ems_energy", "missing", "storage_national_indicators"]
        )

        assert comparison["total_scenarios"] == 3
        assert comparison["highest_impact"]["node_id"] == "source_ems_energy"
        scores = [s["overall_score"] for s in comparison["scenarios"]]
        assert scores == sorted(scores, reverse=True)

    def test_to_dict(self, example_store: GraphStore, analyzer_factory, clock):
        """Test serialized shape."""
        data = analyzer_factory(example_store, clock).analyze_impact("S").to_dict()

        assert data["source_node"]["id"] == "S"
        assert data["direct_impact"]["affected_relationships"] == ["rel_s_p"]
        assert data["total_impact"]["criticality_level"] == "medium"
        assert data["rollback_plan"]["rollback_strategy"] == "automated_rollback"
