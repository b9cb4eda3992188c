"""Append-only audit log of changes made to data nodes.

Every recorded change carries the impact analysis computed when it was
recorded. Records are immutable; the validation status is the only
field that moves after creation, and it does so by replacing the record.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from lineagelens.common.exceptions import ChangeRecordNotFoundError
from lineagelens.common.logging import get_logger
from lineagelens.common.metrics import CHANGES_RECORDED
from lineagelens.events.bus import EventBus, EventType
from lineagelens.graph.impact import ImpactAnalysis, ImpactAnalyzer
from lineagelens.graph.store import GraphStore
from lineagelens.models.change import ChangeType, ValidationStatus, parse_change_type
from lineagelens.models.lineage import utcnow
from lineagelens.schemas.change import ChangeDetails

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChangeRecord:
    """A single recorded change."""

    change_id: str
    node_id: str
    change_type: ChangeType
    description: str
    changed_fields: tuple[str, ...]
    before: dict[str, Any]
    after: dict[str, Any]
    actor: str
    reason: str
    declared_impact: str
    timestamp: datetime
    impact_analysis: ImpactAnalysis | None = None
    validation_status: ValidationStatus = ValidationStatus.PENDING
    error: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "change_id": self.change_id,
            "node_id": self.node_id,
            "change_type": self.change_type.value,
            "description": self.description,
            "changed_fields": list(self.changed_fields),
            "before": self.before,
            "after": self.after,
            "actor": self.actor,
            "reason": self.reason,
            "declared_impact": self.declared_impact,
            "timestamp": self.timestamp.isoformat(),
            "impact_analysis": self.impact_analysis.to_dict() if self.impact_analysis else None,
            "validation_status": self.validation_status.value,
            "error": self.error,
        }


class ChangeAuditLog:
    """Records changes and their analyzed impact.

    Usage:
        audit = ChangeAuditLog(store, analyzer, events)
        record = audit.record_change("node_a", {"type": "schema_change"})
    """

    def __init__(
        self,
        store: GraphStore,
        analyzer: ImpactAnalyzer,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self._events = events
        self._clock = clock
        self._records: dict[str, ChangeRecord] = {}

    def record_change(
        self,
        node_id: str,
        details: ChangeDetails | dict[str, Any] | None = None,
        force_refresh: bool = False,
    ) -> ChangeRecord:
        """Record a change to a node and analyze its impact.

        The analysis honours the impact cache unless ``force_refresh`` is
        set. Once the record is stored, all cached analyses for the node
        are invalidated.

        Args:
            node_id: Changed node.
            details: Change details.
            force_refresh: Recompute the impact analysis.

        Returns:
            The stored change record.

        Raises:
            NodeNotFoundError: Node is not registered. Nothing is recorded.
            InvalidChangeTypeError: Unknown change type. Nothing is recorded.
        """
        details = self._coerce_details(details)
        self._store.get_node(node_id)

        record = ChangeRecord(
            change_id=self._next_change_id(),
            node_id=node_id,
            change_type=details.type,
            description=details.description,
            changed_fields=tuple(details.fields),
            before=details.before,
            after=details.after,
            actor=details.user,
            reason=details.reason,
            declared_impact=details.impact,
            timestamp=self._clock(),
        )
        self._records[record.change_id] = record

        try:
            analysis = self._analyzer.analyze_impact(
                node_id, details.type, use_cache=not force_refresh
            )
        except Exception as e:
            self._records[record.change_id] = replace(
                record,
                validation_status=ValidationStatus.FAILED,
                error=str(e),
            )
            self._analyzer.invalidate(node_id)
            logger.error(
                "Impact analysis failed for change",
                change_id=record.change_id,
                node_id=node_id,
                error=str(e),
            )
            raise

        record = replace(
            record,
            impact_analysis=analysis,
            validation_status=ValidationStatus.COMPLETED,
        )
        self._records[record.change_id] = record
        self._analyzer.invalidate(node_id)

        CHANGES_RECORDED.labels(change_type=record.change_type.value).inc()
        logger.info(
            "Change recorded",
            change_id=record.change_id,
            node_id=node_id,
            change_type=record.change_type.value,
            criticality_level=analysis.total_impact.criticality_level.value,
        )

        if self._events is not None:
            self._events.publish(EventType.CHANGE_RECORDED, record)

        return record

    def get_change(self, change_id: str) -> ChangeRecord:
        """Get a change record.

        Raises:
            ChangeRecordNotFoundError: If no such record exists.
        """
        record = self._records.get(change_id)
        if record is None:
            raise ChangeRecordNotFoundError(change_id)
        return record

    def list_changes(
        self,
        node_id: str | None = None,
        since: datetime | None = None,
        change_type: ChangeType | str | None = None,
        limit: int | None = None,
    ) -> list[ChangeRecord]:
        """List change records in the order they were recorded.

        Args:
            node_id: Only changes to this node.
            since: Only changes at or after this time.
            change_type: Only changes of this type.
            limit: Keep only the most recent records.

        Returns:
            Matching change records.
        """
        wanted_type = parse_change_type(change_type) if change_type is not None else None

        records = [
            record for record in self._records.values()
            if (node_id is None or record.node_id == node_id)
            and (since is None or record.timestamp >= since)
            and (wanted_type is None or record.change_type == wanted_type)
        ]

        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def count_by_type(
        self,
        node_id: str | None = None,
        since: datetime | None = None,
    ) -> dict[str, int]:
        """Count matching change records per change type."""
        counts: dict[str, int] = {}
        for record in self.list_changes(node_id=node_id, since=since):
            key = record.change_type.value
            counts[key] = counts.get(key, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self._records)

    @staticmethod
    def _coerce_details(details: ChangeDetails | dict[str, Any] | None) -> ChangeDetails:
        if details is None:
            return ChangeDetails()
        if isinstance(details, ChangeDetails):
            return details
        data = dict(details)
        if "type" in data:
            data["type"] = parse_change_type(data["type"])
        return ChangeDetails.model_validate(data)

    def _next_change_id(self) -> str:
        while True:
            change_id = f"CHG_{int(time.time() * 1000)}_{uuid4().hex[:9]}"
            if change_id not in self._records:
                return change_id
