"""Impact analysis for the lineage graph.

Calculates what a change to a data node would affect downstream, with
weighted scoring, mitigation strategies and a rollback plan. Results
are cached per ``(node_id, change_type)``.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from lineagelens.common.config import ScoringSettings, get_settings
from lineagelens.common.exceptions import NotFoundError
from lineagelens.common.logging import get_logger
from lineagelens.common.metrics import IMPACT_ANALYSES, IMPACT_ANALYSIS_LATENCY
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.cache import ImpactCache
from lineagelens.graph.store import GraphStore
from lineagelens.graph.traversal import GraphTraversal
from lineagelens.models.change import ChangeType, parse_change_type
from lineagelens.models.lineage import DataNode, Relationship

logger = get_logger(__name__)

DEFAULT_ROLLBACK_STEPS = (
    "Stop affected data processing flows",
    "Restore data to its pre-change state",
    "Restart dependent services",
    "Verify data integrity",
    "Resume normal monitoring",
)

DEFAULT_ROLLBACK_VALIDATION = (
    "Data completeness check",
    "Business process verification",
    "Performance indicator confirmation",
)


class CriticalityLevel(str, Enum):
    """Overall criticality of a change."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class AffectedNode:
    """A node affected by a change, reached through one relationship."""

    node: DataNode
    relationship: Relationship
    depth: int  # Hops from the changed node
    impact_type: str  # "direct_downstream" or "indirect_downstream"

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node.id,
            "node_name": self.node.name,
            "node_kind": self.node.kind.value,
            "relationship_id": self.relationship.id,
            "depth": self.depth,
            "impact_type": self.impact_type,
            "criticality": self.relationship.criticality.value,
            "data_quality_impact": self.relationship.data_quality_impact.value,
        }


@dataclass(frozen=True)
class ImpactSection:
    """Affected nodes and score for one impact band (direct or indirect)."""

    affected_nodes: tuple[AffectedNode, ...] = ()
    impact_score: float = 0

    @property
    def affected_relationships(self) -> tuple[Relationship, ...]:
        return tuple(entry.relationship for entry in self.affected_nodes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "affected_nodes": [entry.to_dict() for entry in self.affected_nodes],
            "affected_relationships": [rel.id for rel in self.affected_relationships],
            "impact_score": self.impact_score,
        }


@dataclass(frozen=True)
class TotalImpact:
    """Combined direct and indirect impact."""

    total_affected_nodes: int
    total_affected_relationships: int
    overall_score: float
    criticality_level: CriticalityLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_affected_nodes": self.total_affected_nodes,
            "total_affected_relationships": self.total_affected_relationships,
            "overall_score": self.overall_score,
            "criticality_level": self.criticality_level.value,
        }


@dataclass(frozen=True)
class MitigationStrategy:
    """A recommended action to reduce the risk of a change."""

    strategy: str
    description: str
    priority: str


@dataclass(frozen=True)
class RollbackPlan:
    """Steps to undo a change."""

    steps: tuple[str, ...]
    validation: tuple[str, ...]
    strategy: str = "automated_rollback"
    estimated_time: str = "15_minutes"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rollback_strategy": self.strategy,
            "estimated_rollback_time": self.estimated_time,
            "rollback_steps": list(self.steps),
            "rollback_validation": list(self.validation),
        }


@dataclass(frozen=True)
class ImpactAnalysis:
    """Result of impact analysis."""

    source_node: DataNode
    change_type: ChangeType
    direct_impact: ImpactSection
    indirect_impact: ImpactSection
    total_impact: TotalImpact
    mitigation_strategies: tuple[MitigationStrategy, ...]
    rollback_plan: RollbackPlan
    cached_at: datetime
    ttl: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_node": self.source_node.to_dict(),
            "change_type": self.change_type.value,
            "direct_impact": self.direct_impact.to_dict(),
            "indirect_impact": self.indirect_impact.to_dict(),
            "total_impact": self.total_impact.to_dict(),
            "mitigation_strategies": [
                {"strategy": m.strategy, "description": m.description, "priority": m.priority}
                for m in self.mitigation_strategies
            ],
            "rollback_plan": self.rollback_plan.to_dict(),
            "cached_at": self.cached_at.isoformat(),
            "ttl": self.ttl,
        }


class ImpactAnalyzer:
    """Analyzes the downstream impact of changing a data node.

    Direct impact covers every relationship leaving the node. Indirect
    impact covers relationships two or more hops away, scored with the
    same weights and discounted. Weights and thresholds come from
    ``ScoringSettings``.
    """

    def __init__(
        self,
        store: GraphStore,
        traversal: GraphTraversal,
        cache: ImpactCache[ImpactAnalysis],
        scoring: ScoringSettings | None = None,
        indirect_depth: int = 5,
        rollback_steps: list[str] | None = None,
        events: EventBus | None = None,
    ) -> None:
        """Initialize analyzer.

        Args:
            store: Graph store.
            traversal: Traversal used for indirect impact.
            cache: Result cache.
            scoring: Scoring policy. Uses global settings if not provided.
            indirect_depth: Depth of the indirect impact walk.
            rollback_steps: Collaborator-specific rollback steps.
            events: Optional event bus for ``impact:analyzed``.
        """
        self._store = store
        self._traversal = traversal
        self._cache = cache
        self._scoring = scoring or get_settings().scoring
        self._indirect_depth = indirect_depth
        self._rollback_steps = tuple(rollback_steps or DEFAULT_ROLLBACK_STEPS)
        self._events = events

    @property
    def cache(self) -> ImpactCache[ImpactAnalysis]:
        return self._cache

    def analyze_impact(
        self,
        node_id: str,
        change_type: ChangeType | str = ChangeType.DATA_CHANGE,
        use_cache: bool = True,
        deadline: float | None = None,
    ) -> ImpactAnalysis:
        """Analyze the impact of a change to a node.

        A fresh cached result is returned unchanged, without recomputing
        and without publishing an event.

        Args:
            node_id: Node being changed.
            change_type: Kind of change.
            use_cache: Set False to bypass the cache lookup.
            deadline: Optional monotonic deadline for the indirect walk.

        Returns:
            Impact analysis result.

        Raises:
            NodeNotFoundError: Node is not registered. Nothing is cached.
            InvalidChangeTypeError: Unknown change type.
        """
        change_type = parse_change_type(change_type)
        key = (node_id, change_type.value)

        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                IMPACT_ANALYSES.labels(cache="hit").inc()
                return cached

        IMPACT_ANALYSES.labels(cache="miss").inc()
        source = self._store.get_node(node_id)
        start = time.perf_counter()

        direct = self._direct_impact(node_id)
        indirect = self._indirect_impact(node_id, deadline)
        total = self._total_impact(direct, indirect)

        now = self._cache.now()
        analysis = ImpactAnalysis(
            source_node=source,
            change_type=change_type,
            direct_impact=direct,
            indirect_impact=indirect,
            total_impact=total,
            mitigation_strategies=self._mitigation_strategies(total),
            rollback_plan=RollbackPlan(
                steps=self._rollback_steps,
                validation=DEFAULT_ROLLBACK_VALIDATION,
            ),
            cached_at=datetime.fromtimestamp(now, tz=timezone.utc),
            ttl=self._cache.default_ttl,
        )
        self._cache.set(key, analysis, cached_at=now)

        IMPACT_ANALYSIS_LATENCY.observe(time.perf_counter() - start)
        logger.info(
            "Impact analyzed",
            node_id=node_id,
            change_type=change_type.value,
            overall_score=total.overall_score,
            criticality_level=total.criticality_level.value,
            affected_nodes=total.total_affected_nodes,
        )

        if self._events is not None:
            self._events.publish(EventType.IMPACT_ANALYZED, analysis)

        return analysis

    def warm_cache(self, tag: str = "critical") -> int:
        """Precompute analyses for every node carrying a tag.

        Returns:
            Number of nodes analyzed.
        """
        nodes = self._store.list_nodes(tag=tag)
        for node in nodes:
            self.analyze_impact(node.id)

        logger.info("Impact cache warmed", tag=tag, nodes=len(nodes))
        return len(nodes)

    def invalidate(self, node_id: str | None = None) -> int:
        """Drop cached analyses for one node, or all of them.

        Returns:
            Number of entries dropped.
        """
        if node_id is None:
            return self._cache.clear()
        return self._cache.invalidate_node(node_id)

    def sweep_expired(self) -> int:
        """Evict expired cache entries."""
        removed = self._cache.sweep_expired()
        logger.info("Impact cache swept", removed=removed, remaining=len(self._cache))
        return removed

    def compare_impacts(
        self,
        node_ids: list[str],
        change_type: ChangeType | str = ChangeType.DATA_CHANGE,
    ) -> dict[str, Any]:
        """Compare the impact of changing several nodes.

        Unknown node ids are skipped.

        Args:
            node_ids: Nodes to compare.
            change_type: Kind of change.

        Returns:
            Comparison results, highest impact first.
        """
        results = []

        for node_id in node_ids:
            try:
                analysis = self.analyze_impact(node_id, change_type)
            except NotFoundError:
                logger.warning("Skipping unknown node in comparison", node_id=node_id)
                continue
            results.append({
                "node_id": node_id,
                "node_name": analysis.source_node.name,
                "overall_score": analysis.total_impact.overall_score,
                "criticality_level": analysis.total_impact.criticality_level.value,
                "total_affected_nodes": analysis.total_impact.total_affected_nodes,
            })

        results.sort(key=lambda x: x["overall_score"], reverse=True)

        return {
            "scenarios": results,
            "highest_impact": results[0] if results else None,
            "total_scenarios": len(results),
        }

    def _direct_impact(self, node_id: str) -> ImpactSection:
        """One hop downstream: every relationship leaving the node."""
        entries = []

        for rel_id in sorted(self._store.downstream_of(node_id)):
            relationship = self._store.get_relationship(rel_id)
            if not self._store.has_node(relationship.target_id):
                continue
            entries.append(AffectedNode(
                node=self._store.get_node(relationship.target_id),
                relationship=relationship,
                depth=1,
                impact_type="direct_downstream",
            ))

        return ImpactSection(
            affected_nodes=tuple(entries),
            impact_score=self._score(entry.relationship for entry in entries),
        )

    def _indirect_impact(self, node_id: str, deadline: float | None) -> ImpactSection:
        """Two or more hops downstream, one entry per branch of the walk.

        Paths that reconverge repeat their shared tail in the walk, and
        each repetition is scored. Totals count distinct ids instead.
        """
        tree = self._traversal.trace_downstream(node_id, self._indirect_depth, deadline)

        entries = tuple(
            AffectedNode(
                node=branch.node,
                relationship=branch.relationship,
                depth=branch.depth,
                impact_type="indirect_downstream",
            )
            for branch in tree.walk()
            if branch.depth >= 2
        )

        return ImpactSection(
            affected_nodes=entries,
            impact_score=(
                self._score(entry.relationship for entry in entries)
                * self._scoring.indirect_discount
            ),
        )

    def _score(self, relationships: Iterable[Relationship]) -> float:
        """Sum of criticality and data-quality weights."""
        criticality_weights = self._scoring.criticality_weights
        quality_weights = self._scoring.quality_weights

        score = 0
        for relationship in relationships:
            score += criticality_weights.get(relationship.criticality.value, 0)
            score += quality_weights.get(relationship.data_quality_impact.value, 0)
        return score

    def _total_impact(self, direct: ImpactSection, indirect: ImpactSection) -> TotalImpact:
        """Combine both bands. Nodes and relationships are counted by distinct id."""
        entries = direct.affected_nodes + indirect.affected_nodes
        node_count = len({entry.node.id for entry in entries})
        relationship_count = len({entry.relationship.id for entry in entries})
        overall = direct.impact_score + indirect.impact_score

        return TotalImpact(
            total_affected_nodes=node_count,
            total_affected_relationships=relationship_count,
            overall_score=overall,
            criticality_level=self.criticality_level(overall, node_count),
        )

    def criticality_level(self, score: float, node_count: int) -> CriticalityLevel:
        """Classify a score and affected node count.

        High needs a score strictly above its threshold, medium a score at
        or above its threshold. Node thresholds are exclusive.
        """
        scoring = self._scoring
        if score > scoring.high_score_threshold or node_count > scoring.high_node_threshold:
            return CriticalityLevel.HIGH
        if score >= scoring.medium_score_threshold or node_count > scoring.medium_node_threshold:
            return CriticalityLevel.MEDIUM
        return CriticalityLevel.LOW

    def _mitigation_strategies(self, total: TotalImpact) -> tuple[MitigationStrategy, ...]:
        strategies = []

        if total.criticality_level == CriticalityLevel.HIGH:
            strategies.append(MitigationStrategy(
                strategy="staged_rollout",
                description="Deploy the change in stages and verify impact at each step",
                priority="high",
            ))
            strategies.append(MitigationStrategy(
                strategy="backup_verification",
                description="Confirm complete backups exist for all affected data",
                priority="high",
            ))

        if total.total_affected_nodes > self._scoring.parallel_testing_node_threshold:
            strategies.append(MitigationStrategy(
                strategy="parallel_testing",
                description="Validate every affected node in a parallel test environment",
                priority="medium",
            ))

        strategies.append(MitigationStrategy(
            strategy="monitoring_enhancement",
            description="Increase monitoring and alerting while the change rolls out",
            priority="medium",
        ))

        return tuple(strategies)
