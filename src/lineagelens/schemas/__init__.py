"""Pydantic schemas for engine inputs."""

from lineagelens.schemas.change import ChangeDetails
from lineagelens.schemas.lineage import (
    GraphDefinition,
    MetadataEnvelopeSchema,
    NodeDefinition,
    RelationshipDefinition,
)

__all__ = [
    "ChangeDetails",
    "GraphDefinition",
    "MetadataEnvelopeSchema",
    "NodeDefinition",
    "RelationshipDefinition",
]
