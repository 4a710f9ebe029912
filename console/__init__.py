"""
Token Console

This package provides:
- Settings and logging setup
- Authorized, audited token adjustments
- Notifications to golfers within an administrator's clubs
- Reconciliation of audit entries left staged by interrupted mutations
- The FastAPI application (console.api)
"""

from .config import Settings, SettingsError, load_settings
from .notifications import NotificationService, NotificationRequest, AudienceType
from .reconcile import AuditReconciler
from .services import ConsoleServices, build_services
from .tokens import TokenService, ConcurrentModificationError

__all__ = [
    "Settings",
    "SettingsError",
    "load_settings",
    "NotificationService",
    "NotificationRequest",
    "AudienceType",
    "AuditReconciler",
    "ConsoleServices",
    "build_services",
    "TokenService",
    "ConcurrentModificationError",
]
