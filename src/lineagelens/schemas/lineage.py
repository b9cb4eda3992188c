"""Pydantic schemas for lineage graph definitions.

Collaborators supply node and relationship definitions at startup (and
at runtime through the mutation API). These schemas validate the raw
input and convert it to the engine's models.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

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
)


class MetadataEnvelopeSchema(BaseModel):
    """Opaque metadata payload with its envelope."""

    kind: str = Field("opaque", max_length=100)
    version: str = Field("1", max_length=20)
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_model(self) -> MetadataEnvelope:
        return MetadataEnvelope(kind=self.kind, version=self.version, payload=dict(self.payload))


class NodeDefinition(BaseModel):
    """Definition of a data node."""

    id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    kind: NodeKind
    category: str = Field("", max_length=100)
    tags: list[str] = Field(default_factory=list)
    status: NodeStatus = NodeStatus.ACTIVE
    schema_or_location: MetadataEnvelopeSchema = Field(default_factory=MetadataEnvelopeSchema)
    description: str = ""
    owner: str = Field("", max_length=100)
    steward: str = Field("", max_length=100)
    update_frequency: str = Field("", max_length=50)

    def to_model(self) -> DataNode:
        return DataNode(
            id=self.id,
            name=self.name,
            kind=self.kind,
            category=self.category,
            tags=frozenset(self.tags),
            status=self.status,
            schema_or_location=self.schema_or_location.to_model(),
            description=self.description,
            owner=self.owner,
            steward=self.steward,
            update_frequency=self.update_frequency,
        )


class RelationshipDefinition(BaseModel):
    """Definition of a directed relationship between two nodes."""

    id: str = Field(..., min_length=1, max_length=255)
    source_id: str = Field(..., min_length=1, max_length=255)
    target_id: str = Field(..., min_length=1, max_length=255)
    kind: RelationshipKind = RelationshipKind.DATA_FLOW
    transformation: MetadataEnvelopeSchema = Field(default_factory=MetadataEnvelopeSchema)
    data_quality_impact: DataQualityImpact = DataQualityImpact.MEDIUM
    criticality: Criticality = Criticality.MEDIUM
    status: RelationshipStatus = RelationshipStatus.ACTIVE

    def to_model(self) -> Relationship:
        return Relationship(
            id=self.id,
            source_id=self.source_id,
            target_id=self.target_id,
            kind=self.kind,
            transformation=self.transformation.to_model(),
            data_quality_impact=self.data_quality_impact,
            criticality=self.criticality,
            status=self.status,
        )


class GraphDefinition(BaseModel):
    """Ordered bootstrap input: all nodes, then all relationships."""

    nodes: list[NodeDefinition] = Field(default_factory=list)
    relationships: list[RelationshipDefinition] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: Path | str) -> "GraphDefinition":
        """Load and validate a JSON graph definition file.

        Args:
            path: Path to the JSON document.

        Returns:
            Validated graph definition.
        """
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))
