"""Change classification models.

Change types key the impact cache and classify audit records.
"""

from enum import Enum

from lineagelens.common.exceptions import InvalidChangeTypeError


class ChangeType(str, Enum):
    """Types of changes that can be made to a data node."""

    DATA_CHANGE = "data_change"
    SCHEMA_CHANGE = "schema_change"
    LOCATION_CHANGE = "location_change"
    TRANSFORMATION_CHANGE = "transformation_change"
    STATUS_CHANGE = "status_change"
    RETIREMENT = "retirement"


class ValidationStatus(str, Enum):
    """Impact validation state of a change record."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def parse_change_type(value: "ChangeType | str") -> ChangeType:
    """Coerce a change type value, rejecting unknown ones.

    Raises:
        InvalidChangeTypeError: If the value is not a known change type.
    """
    if isinstance(value, ChangeType):
        return value
    try:
        return ChangeType(value)
    except ValueError:
        raise InvalidChangeTypeError(value) from None
