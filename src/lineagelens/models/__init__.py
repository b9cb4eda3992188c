"""Lineage graph data models."""

from lineagelens.models.change import ChangeType, ValidationStatus, parse_change_type
from lineagelens.models.lineage import (
    Criticality,
    DataNode,
    DataQualityImpact,
    MetadataEnvelope,
    NodeKind,
    NodeStatus,
    Relationship,
    RelationshipKind,
    RelationshipStatus,
    TraversalDirection,
)

__all__ = [
    "ChangeType",
    "Criticality",
    "DataNode",
    "DataQualityImpact",
    "MetadataEnvelope",
    "NodeKind",
    "NodeStatus",
    "Relationship",
    "RelationshipKind",
    "RelationshipStatus",
    "TraversalDirection",
    "ValidationStatus",
    "parse_change_type",
]
