"""Pydantic schemas for change recording."""

from typing import Any

from pydantic import BaseModel, Field

from lineagelens.models.change import ChangeType


class ChangeDetails(BaseModel):
    """Details of a change made to a data node."""

    type: ChangeType = ChangeType.DATA_CHANGE
    description: str = ""
    fields: list[str] = Field(default_factory=list)
    impact: str = "unknown"
    user: str = "system"
    reason: str = ""
    before: dict[str, Any] = Field(default_factory=dict)
    after: dict[str, Any] = Field(default_factory=dict)
