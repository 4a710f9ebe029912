import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .models import Administrator, Feature, Role

logger = logging.getLogger(__name__)

CLUB_PREFIX_WIDTH = 5

REASON_INACTIVE = "administrator inactive"
REASON_FEATURE = "feature not enabled"
REASON_ACCOUNT_SCOPE = "account not in assigned clubs"
REASON_CLUB_SCOPE = "club not in assigned clubs"
REASON_SUPER_ADMIN_ONLY = "super admin access required"
REASON_SUPER_ADMIN_TARGET = "only super admins can manage super_admin accounts"
REASON_UNSCOPED_TARGET = "only super admins can manage administrators without a club"
REASON_SELF_MANAGEMENT = "club admins cannot change their own access"
REASON_FEATURE_GRANT = "cannot grant features you do not hold"
REASON_UNKNOWN_OPERATION = "operation not permitted"
REASON_NO_ADMIN = "You do not have admin access. Please contact an administrator."


class AuthorizationDenied(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class Operation(str, Enum):
    LOOKUP_ACCOUNT = "lookup_account"
    CREDIT_TOKENS = "credit_tokens"
    DEBIT_TOKENS = "debit_tokens"
    SEND_NOTIFICATION = "send_notification"
    MANAGE_ADMIN_USERS = "manage_admin_users"
    VIEW_AUDIT_LOG = "view_audit_log"
    RECONCILE_AUDIT = "reconcile_audit"


@dataclass(frozen=True)
class OperationRule:
    required_feature: Optional[Feature] = None
    super_admin_only: bool = False


@dataclass(frozen=True)
class AuthorizationContext:
    """What the operation touches: an account identifier and/or club ids.

    ``target_role`` is set whenever an administrator record is the target;
    ``club_ids`` then holds that record's clubs.
    """

    account_identifier: Optional[str] = None
    club_ids: tuple[str, ...] = ()
    target_role: Optional[Role] = None
    target_admin_id: Optional[str] = None
    granted_features: tuple[Feature, ...] = ()


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise AuthorizationDenied(self.reason or REASON_UNKNOWN_OPERATION)


ALLOW = AuthorizationDecision(True)


def deny(reason: str) -> AuthorizationDecision:
    return AuthorizationDecision(False, reason)


def pad_club_id(club_id: str) -> str:
    return str(club_id).strip().zfill(CLUB_PREFIX_WIDTH)


def club_prefix(identifier: str) -> str:
    return identifier.strip()[:CLUB_PREFIX_WIDTH].zfill(CLUB_PREFIX_WIDTH)


def club_prefix_matches(identifier: str, club_ids: list[str]) -> bool:
    prefix = club_prefix(identifier)
    return any(prefix == pad_club_id(club_id) for club_id in club_ids)


DEFAULT_RULES: dict[Operation, OperationRule] = {
    Operation.LOOKUP_ACCOUNT: OperationRule(required_feature=Feature.GOLFER_LOOKUP),
    Operation.CREDIT_TOKENS: OperationRule(required_feature=Feature.GOLFER_LOOKUP),
    Operation.DEBIT_TOKENS: OperationRule(required_feature=Feature.GOLFER_LOOKUP),
    Operation.SEND_NOTIFICATION: OperationRule(required_feature=Feature.NOTIFICATIONS),
    Operation.MANAGE_ADMIN_USERS: OperationRule(required_feature=Feature.ADMIN_USERS),
    Operation.VIEW_AUDIT_LOG: OperationRule(super_admin_only=True),
    Operation.RECONCILE_AUDIT: OperationRule(super_admin_only=True),
}


@dataclass
class AuthorizationGate:
    """Single capability check for every privileged operation.

    Pure: the decision depends only on the administrator snapshot, the
    operation and the context. Operations missing from ``rules`` are denied.
    """

    rules: dict[Operation, OperationRule] = field(default_factory=lambda: dict(DEFAULT_RULES))

    def authorize(
        self,
        admin: Administrator,
        operation: Operation,
        context: Optional[AuthorizationContext] = None,
    ) -> AuthorizationDecision:
        context = context or AuthorizationContext()

        if not admin.is_active:
            return deny(REASON_INACTIVE)
        if admin.is_super_admin:
            return ALLOW

        rule = self.rules.get(operation)
        if rule is None:
            return deny(REASON_UNKNOWN_OPERATION)
        if rule.super_admin_only:
            return deny(REASON_SUPER_ADMIN_ONLY)
        if rule.required_feature and not admin.has_feature(rule.required_feature):
            return deny(REASON_FEATURE)
        if context.account_identifier is not None and not club_prefix_matches(context.account_identifier, admin.club_ids):
            return deny(REASON_ACCOUNT_SCOPE)
        if context.club_ids:
            own = {pad_club_id(c) for c in admin.club_ids}
            if not all(pad_club_id(c) in own for c in context.club_ids):
                return deny(REASON_CLUB_SCOPE)
        if context.target_role == Role.SUPER_ADMIN:
            return deny(REASON_SUPER_ADMIN_TARGET)
        if context.target_role is not None and not context.club_ids:
            return deny(REASON_UNSCOPED_TARGET)
        if context.target_admin_id == admin.id:
            return deny(REASON_SELF_MANAGEMENT)
        if any(not admin.has_feature(f) for f in context.granted_features):
            return deny(REASON_FEATURE_GRANT)
        return ALLOW

    def require(
        self,
        admin: Optional[Administrator],
        operation: Operation,
        context: Optional[AuthorizationContext] = None,
    ) -> Administrator:
        """Authorize or raise ``AuthorizationDenied``; ``None`` means no admin record."""
        if admin is None:
            logger.warning("Denied %s: no administrator record", operation.value)
            raise AuthorizationDenied(REASON_NO_ADMIN)
        decision = self.authorize(admin, operation, context)
        if not decision:
            logger.warning("Denied %s for %s: %s", operation.value, admin.email, decision.reason)
        decision.raise_if_denied()
        return admin
