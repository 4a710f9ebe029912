"""
Administrator access control

Administrator records, the club-scoped authorization gate, and the
administrator lifecycle (create, update, deactivate, reactivate).
"""

from .models import Role, Feature, Administrator, AdminUserCreate, AdminUserUpdate
from .gate import (
    Operation,
    AuthorizationContext,
    AuthorizationDecision,
    AuthorizationDenied,
    AuthorizationGate,
    club_prefix_matches,
)
from .service import AdminUserService

__all__ = [
    "Role",
    "Feature",
    "Administrator",
    "AdminUserCreate",
    "AdminUserUpdate",
    "Operation",
    "AuthorizationContext",
    "AuthorizationDecision",
    "AuthorizationDenied",
    "AuthorizationGate",
    "club_prefix_matches",
    "AdminUserService",
]
