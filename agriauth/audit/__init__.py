"""
Audit trail package.

This package contains the audit entry models, the append-only storage
backends and the recorder that business call sites use after a privileged
mutation commits.
"""

from .models import (
    AuditAction,
    AuditTargetType,
    AuditStatus,
    ActionRecord,
    AuditEntry,
    AuditQuery,
    AuditPage,
    NOTIFICATION_ACTIONS,
)
from .storage import AuditStorage, InMemoryAuditStorage, JsonLinesAuditStorage
from .recorder import AuditRecorder

__all__ = [
    "AuditAction",
    "AuditTargetType",
    "AuditStatus",
    "ActionRecord",
    "AuditEntry",
    "AuditQuery",
    "AuditPage",
    "NOTIFICATION_ACTIONS",
    "AuditStorage",
    "InMemoryAuditStorage",
    "JsonLinesAuditStorage",
    "AuditRecorder",
]
