"""Change audit trail."""

from lineagelens.audit.change_log import ChangeAuditLog, ChangeRecord

__all__ = [
    "ChangeAuditLog",
    "ChangeRecord",
]
