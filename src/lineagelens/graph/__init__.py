"""Graph algorithms - store, traversal, impact analysis, visualization.

The lineage graph is held in memory and rebuilt from collaborator
supplied definitions at startup.
"""

from lineagelens.graph.cache import CacheEntry, ImpactCache
from lineagelens.graph.impact import (
    AffectedNode,
    CriticalityLevel,
    ImpactAnalysis,
    ImpactAnalyzer,
    ImpactSection,
    MitigationStrategy,
    RollbackPlan,
    TotalImpact,
)
from lineagelens.graph.store import GraphStore
from lineagelens.graph.traversal import (
    GraphTraversal,
    LineageBranch,
    LineagePath,
    LineageResult,
    LineageStats,
    LineageTree,
)
from lineagelens.graph.visualization import LineageVisualizer

__all__ = [
    # Store
    "GraphStore",
    # Traversal
    "GraphTraversal",
    "LineageBranch",
    "LineagePath",
    "LineageResult",
    "LineageStats",
    "LineageTree",
    # Impact
    "ImpactAnalyzer",
    "ImpactAnalysis",
    "ImpactSection",
    "AffectedNode",
    "TotalImpact",
    "CriticalityLevel",
    "MitigationStrategy",
    "RollbackPlan",
    # Cache
    "ImpactCache",
    "CacheEntry",
    # Visualization
    "LineageVisualizer",
]
