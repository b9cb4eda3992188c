"""In-memory graph store for data nodes and relationships.

Holds the node and relationship tables and the adjacency index derived
from them. Dangling relationship endpoints are accepted at write time;
they are detected later by the graph health check.
"""

from collections import defaultdict
from typing import Iterator

from lineagelens.common.exceptions import NodeNotFoundError, RelationshipNotFoundError
from lineagelens.common.logging import get_logger
from lineagelens.common.metrics import GRAPH_NODES, GRAPH_RELATIONSHIPS
from lineagelens.models.lineage import (
    Criticality,
    DataNode,
    NodeKind,
    NodeStatus,
    Relationship,
    RelationshipKind,
)

logger = get_logger(__name__)


class GraphStore:
    """Node/relationship tables plus the adjacency index.

    The adjacency index maps a node id to the ids of relationships where
    the node is the source (downstream) or the target (upstream). It is
    maintained incrementally on every relationship write and removal.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, DataNode] = {}
        self._relationships: dict[str, Relationship] = {}
        self._downstream: dict[str, set[str]] = defaultdict(set)
        self._upstream: dict[str, set[str]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def register_node(self, node: DataNode) -> DataNode:
        """Register a node, or redefine an existing one.

        Re-registration keeps the creation time and bumps the version.

        Args:
            node: Node definition.

        Returns:
            The stored node.
        """
        existing = self._nodes.get(node.id)
        stored = existing.redefine(node) if existing else node
        self._nodes[node.id] = stored
        GRAPH_NODES.set(len(self._nodes))

        logger.debug(
            "Registered data node",
            node_id=node.id,
            kind=stored.kind.value,
            version=stored.version,
        )
        return stored

    def get_node(self, node_id: str) -> DataNode:
        """Get a node by id.

        Raises:
            NodeNotFoundError: If the node is not registered.
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def list_nodes(
        self,
        kind: NodeKind | None = None,
        category: str | None = None,
        tag: str | None = None,
        status: NodeStatus | None = None,
    ) -> list[DataNode]:
        """List nodes matching all given filters, in registration order."""
        nodes = []
        for node in self._nodes.values():
            if kind is not None and node.kind != kind:
                continue
            if category is not None and node.category != category:
                continue
            if tag is not None and not node.has_tag(tag):
                continue
            if status is not None and node.status != status:
                continue
            nodes.append(node)
        return nodes

    def remove_node(self, node_id: str) -> list[str]:
        """Remove a node and every relationship that references it.

        Args:
            node_id: Node to remove.

        Returns:
            Ids of the relationships removed with the node.

        Raises:
            NodeNotFoundError: If the node is not registered.
        """
        if node_id not in self._nodes:
            raise NodeNotFoundError(node_id)

        attached = sorted(self._downstream.get(node_id, set()) | self._upstream.get(node_id, set()))
        for rel_id in attached:
            self.remove_relationship(rel_id)

        del self._nodes[node_id]
        self._downstream.pop(node_id, None)
        self._upstream.pop(node_id, None)
        GRAPH_NODES.set(len(self._nodes))

        logger.info("Removed data node", node_id=node_id, relationships_removed=len(attached))
        return attached

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def register_relationship(self, relationship: Relationship) -> Relationship:
        """Register a relationship, or redefine an existing one.

        Endpoints are not validated here.

        Args:
            relationship: Relationship definition.

        Returns:
            The stored relationship.
        """
        existing = self._relationships.get(relationship.id)
        if existing is not None:
            self._unlink(existing)
            stored = existing.redefine(relationship)
        else:
            stored = relationship

        self._relationships[stored.id] = stored
        self._link(stored)
        GRAPH_RELATIONSHIPS.set(len(self._relationships))

        logger.debug(
            "Registered relationship",
            relationship_id=stored.id,
            source_id=stored.source_id,
            target_id=stored.target_id,
            version=stored.version,
        )
        return stored

    def get_relationship(self, relationship_id: str) -> Relationship:
        """Get a relationship by id.

        Raises:
            RelationshipNotFoundError: If the relationship is not registered.
        """
        relationship = self._relationships.get(relationship_id)
        if relationship is None:
            raise RelationshipNotFoundError(relationship_id)
        return relationship

    def list_relationships(
        self,
        kind: RelationshipKind | None = None,
        criticality: Criticality | None = None,
    ) -> list[Relationship]:
        """List relationships matching all given filters."""
        return [
            rel for rel in self._relationships.values()
            if (kind is None or rel.kind == kind)
            and (criticality is None or rel.criticality == criticality)
        ]

    def remove_relationship(self, relationship_id: str) -> Relationship:
        """Remove a relationship.

        Raises:
            RelationshipNotFoundError: If the relationship is not registered.
        """
        relationship = self._relationships.pop(relationship_id, None)
        if relationship is None:
            raise RelationshipNotFoundError(relationship_id)
        self._unlink(relationship)
        GRAPH_RELATIONSHIPS.set(len(self._relationships))
        return relationship

    def find_relationship(self, source_id: str, target_id: str) -> Relationship | None:
        """Find a relationship between two nodes, if any."""
        for rel_id in sorted(self._downstream.get(source_id, ())):
            relationship = self._relationships[rel_id]
            if relationship.target_id == target_id:
                return relationship
        return None

    def iter_relationships(self) -> Iterator[Relationship]:
        return iter(list(self._relationships.values()))

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------

    def downstream_of(self, node_id: str) -> frozenset[str]:
        """Ids of relationships where the node is the source."""
        return frozenset(self._downstream.get(node_id, ()))

    def upstream_of(self, node_id: str) -> frozenset[str]:
        """Ids of relationships where the node is the target."""
        return frozenset(self._upstream.get(node_id, ()))

    def adjacency_snapshot(self) -> dict[str, dict[str, frozenset[str]]]:
        """Copy of the non-empty adjacency entries, keyed by node id."""
        node_ids = set(self._downstream) | set(self._upstream)
        snapshot = {}
        for node_id in node_ids:
            downstream = self.downstream_of(node_id)
            upstream = self.upstream_of(node_id)
            if downstream or upstream:
                snapshot[node_id] = {"downstream": downstream, "upstream": upstream}
        return snapshot

    def rebuild_adjacency(self) -> None:
        """Recompute the adjacency index from the relationship table."""
        self._downstream = defaultdict(set)
        self._upstream = defaultdict(set)
        for relationship in self._relationships.values():
            self._link(relationship)
        logger.info("Rebuilt adjacency index", relationships=len(self._relationships))

    def _link(self, relationship: Relationship) -> None:
        self._downstream[relationship.source_id].add(relationship.id)
        self._upstream[relationship.target_id].add(relationship.id)

    def _unlink(self, relationship: Relationship) -> None:
        self._downstream[relationship.source_id].discard(relationship.id)
        self._upstream[relationship.target_id].discard(relationship.id)
        if not self._downstream[relationship.source_id]:
            del self._downstream[relationship.source_id]
        if not self._upstream[relationship.target_id]:
            del self._upstream[relationship.target_id]

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def relationship_count(self) -> int:
        return len(self._relationships)

    def clear(self) -> None:
        """Drop all nodes, relationships and adjacency."""
        self._nodes.clear()
        self._relationships.clear()
        self._downstream = defaultdict(set)
        self._upstream = defaultdict(set)
        GRAPH_NODES.set(0)
        GRAPH_RELATIONSHIPS.set(0)
