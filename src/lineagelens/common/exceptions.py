"""Custom exceptions for the lineage engine.

Provides a hierarchy of exceptions with status codes and structured
error payloads so that collaborators exposing the engine over a
network surface can map them directly.
"""

from typing import Any


class LineageError(Exception):
    """Base exception for all lineage engine errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize exception with optional details.

        Args:
            message: Human-readable error message.
            details: Additional error details for debugging.
            cause: Original exception that caused this error.
        """
        self.message = message or self.message
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# 400 Bad Request errors
class InvalidArgumentError(LineageError):
    """A query argument is out of range or not a known value."""

    status_code = 400
    error_code = "INVALID_ARGUMENT"
    message = "Invalid argument"


class InvalidDepthError(InvalidArgumentError):
    """Traversal depth is negative or above the configured limit."""

    error_code = "INVALID_DEPTH"
    message = "Invalid traversal depth"

    def __init__(self, depth: Any, limit: int | None = None) -> None:
        self.depth = depth
        details: dict[str, Any] = {"depth": depth}
        if limit is not None:
            details["limit"] = limit
        super().__init__(f"Invalid traversal depth: {depth}", details=details)


class InvalidDirectionError(InvalidArgumentError):
    """Unknown traversal direction."""

    error_code = "INVALID_DIRECTION"
    message = "Invalid traversal direction"

    def __init__(self, direction: Any) -> None:
        self.direction = direction
        super().__init__(
            f"Invalid traversal direction: {direction}",
            details={"direction": direction},
        )


class InvalidChangeTypeError(InvalidArgumentError):
    """Unknown change type."""

    error_code = "INVALID_CHANGE_TYPE"
    message = "Invalid change type"

    def __init__(self, change_type: Any) -> None:
        self.change_type = change_type
        super().__init__(
            f"Invalid change type: {change_type}",
            details={"change_type": change_type},
        )


# 404 Not Found errors
class NotFoundError(LineageError):
    """Resource not found."""

    status_code = 404
    error_code = "NOT_FOUND"
    message = "Resource not found"


class NodeNotFoundError(NotFoundError):
    """Data node not found."""

    error_code = "NODE_NOT_FOUND"
    message = "Data node not found"

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Data node not found: {node_id}", details={"node_id": node_id})


class RelationshipNotFoundError(NotFoundError):
    """Relationship not found."""

    error_code = "RELATIONSHIP_NOT_FOUND"
    message = "Relationship not found"

    def __init__(self, relationship_id: str) -> None:
        self.relationship_id = relationship_id
        super().__init__(
            f"Relationship not found: {relationship_id}",
            details={"relationship_id": relationship_id},
        )


class ChangeRecordNotFoundError(NotFoundError):
    """Change record not found."""

    error_code = "CHANGE_NOT_FOUND"
    message = "Change record not found"

    def __init__(self, change_id: str) -> None:
        self.change_id = change_id
        super().__init__(f"Change record not found: {change_id}", details={"change_id": change_id})


# 504 Gateway Timeout errors
class TraversalTimeoutError(LineageError):
    """Traversal exceeded the caller-supplied deadline."""

    status_code = 504
    error_code = "TRAVERSAL_TIMEOUT"
    message = "Traversal deadline exceeded"


# 500 Internal Server errors
class ConfigurationError(LineageError):
    """Configuration error."""

    error_code = "CONFIGURATION_ERROR"
    message = "Service configuration error"
