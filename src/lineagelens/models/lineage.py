"""Lineage graph models.

Data nodes are the assets of the lineage graph; relationships are the
directed, typed edges describing how data moves between them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class NodeKind(str, Enum):
    """Kinds of data assets."""

    SOURCE = "source"
    PROCESS = "process"
    STORAGE = "storage"
    OUTPUT = "output"
    REFERENCE = "reference"


class NodeStatus(str, Enum):
    """Operational status of a data node."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class RelationshipKind(str, Enum):
    """How data moves along a relationship."""

    DATA_FLOW = "data_flow"
    REFERENCE = "reference"
    DATA_CONSUMPTION = "data_consumption"


class RelationshipStatus(str, Enum):
    """Operational status of a relationship."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class Criticality(str, Enum):
    """Business criticality of a relationship."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DataQualityImpact(str, Enum):
    """Effect a relationship has on downstream data quality."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TraversalDirection(str, Enum):
    """Direction of a lineage traversal."""

    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"
    BOTH = "both"


@dataclass(frozen=True)
class MetadataEnvelope:
    """Opaque metadata with a typed envelope.

    The engine never interprets ``payload``; only ``kind`` and
    ``version`` are meaningful to it.
    """

    kind: str = "opaque"
    version: str = "1"
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "version": self.version,
            "payload": self.payload,
        }


@dataclass
class DataNode:
    """A data asset in the lineage graph."""

    id: str
    name: str
    kind: NodeKind
    category: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)
    status: NodeStatus = NodeStatus.ACTIVE
    schema_or_location: MetadataEnvelope = field(default_factory=MetadataEnvelope)
    version: int = 1

    # Descriptive metadata
    description: str = ""
    owner: str = ""
    steward: str = ""
    update_frequency: str = ""

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def has_tag(self, tag: str) -> bool:
        """Check whether the node carries a tag."""
        return tag in self.tags

    @property
    def is_active(self) -> bool:
        return self.status == NodeStatus.ACTIVE

    def redefine(self, other: "DataNode") -> "DataNode":
        """Return ``other`` as the next version of this node.

        Keeps the original creation time and bumps the version.
        """
        return replace(
            other,
            version=self.version + 1,
            created_at=self.created_at,
            updated_at=utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "category": self.category,
            "tags": sorted(self.tags),
            "status": self.status.value,
            "schema_or_location": self.schema_or_location.to_dict(),
            "version": self.version,
            "description": self.description,
            "owner": self.owner,
            "steward": self.steward,
            "update_frequency": self.update_frequency,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class Relationship:
    """A directed edge ``source_id -> target_id`` between data nodes."""

    id: str
    source_id: str
    target_id: str
    kind: RelationshipKind = RelationshipKind.DATA_FLOW
    transformation: MetadataEnvelope = field(default_factory=MetadataEnvelope)
    data_quality_impact: DataQualityImpact = DataQualityImpact.MEDIUM
    criticality: Criticality = Criticality.MEDIUM
    status: RelationshipStatus = RelationshipStatus.ACTIVE
    version: int = 1

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def redefine(self, other: "Relationship") -> "Relationship":
        """Return ``other`` as the next version of this relationship."""
        return replace(
            other,
            version=self.version + 1,
            created_at=self.created_at,
            updated_at=utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "kind": self.kind.value,
            "transformation": self.transformation.to_dict(),
            "data_quality_impact": self.data_quality_impact.value,
            "criticality": self.criticality.value,
            "status": self.status.value,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
