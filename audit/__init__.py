"""
Audit Trail

Immutable, attributable records of privileged mutations, with a
write-ahead outbox so no mutation goes unrecorded.
"""

from .models import (
    AuditAction,
    Actor,
    AuditTarget,
    AuditEntry,
    OutboxItem,
    PaginatedResponse,
)
from .service import AuditTrailService

__all__ = [
    "AuditAction",
    "Actor",
    "AuditTarget",
    "AuditEntry",
    "OutboxItem",
    "PaginatedResponse",
    "AuditTrailService",
]
