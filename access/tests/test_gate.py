"""
Unit Tests for the Authorization Gate

Tests cover:
1. Role handling (super_admin vs club_admin)
2. Feature requirements
3. Club-prefix scope matching
4. Inactive administrators
5. Determinism and the closed operation set
6. Limits on managing other administrators
"""

import pytest

from access.gate import (
    AuthorizationContext,
    AuthorizationDenied,
    AuthorizationGate,
    Operation,
    OperationRule,
    REASON_ACCOUNT_SCOPE,
    REASON_CLUB_SCOPE,
    REASON_FEATURE,
    REASON_FEATURE_GRANT,
    REASON_INACTIVE,
    REASON_NO_ADMIN,
    REASON_SELF_MANAGEMENT,
    REASON_SUPER_ADMIN_ONLY,
    REASON_SUPER_ADMIN_TARGET,
    REASON_UNKNOWN_OPERATION,
    REASON_UNSCOPED_TARGET,
    club_prefix_matches,
)
from access.models import Administrator, Feature, Role


SUPER = Administrator(id="a-1", email="ops@example.com", name="Ops", role=Role.SUPER_ADMIN)
CLUB = Administrator(
    id="a-2", email="pro@example.com", name="Pro", role=Role.CLUB_ADMIN,
    club_ids=["20315"], features=[Feature.GOLFER_LOOKUP, Feature.NOTIFICATIONS, Feature.ADMIN_USERS],
)


def account(identifier: str) -> AuthorizationContext:
    return AuthorizationContext(account_identifier=identifier)


class TestClubPrefix:
    """Tests for the fixed-width club prefix rule."""

    def test_matching_prefix(self):
        """The first five digits name the club."""
        assert club_prefix_matches("2031500042", ["20315"])

    def test_other_club(self):
        """A different prefix does not match."""
        assert not club_prefix_matches("2031600042", ["20315"])

    def test_short_club_id_is_zero_padded(self):
        """Club ids shorter than five digits are left-padded."""
        assert club_prefix_matches("0041200007", ["412"])
        assert club_prefix_matches("0041200007", ["00412"])

    def test_any_assigned_club_matches(self):
        """One matching club is enough."""
        assert club_prefix_matches("0041200007", ["20315", "412"])

    def test_no_clubs_never_matches(self):
        """No assigned clubs means no accounts."""
        assert not club_prefix_matches("2031500042", [])


class TestRoles:
    """Tests for role-based decisions."""

    gate = AuthorizationGate()

    @pytest.mark.parametrize("operation", list(Operation))
    def test_super_admin_allowed_everywhere(self, operation):
        """Empty club scope, any account, any operation."""
        decision = self.gate.authorize(SUPER, operation, account("9999900001"))
        assert decision.allowed
        assert decision.reason is None

    def test_club_admin_in_scope(self):
        """Club admins reach golfers of their own club."""
        assert self.gate.authorize(CLUB, Operation.CREDIT_TOKENS, account("2031500042"))

    def test_club_admin_out_of_scope(self):
        """Other clubs' golfers are denied with the scope reason."""
        decision = self.gate.authorize(CLUB, Operation.CREDIT_TOKENS, account("2031600042"))
        assert not decision.allowed
        assert decision.reason == REASON_ACCOUNT_SCOPE

    def test_club_admin_missing_feature(self):
        """The operation's feature must be enabled."""
        admin = CLUB.model_copy(update={"features": [Feature.NOTIFICATIONS]})
        decision = self.gate.authorize(admin, Operation.DEBIT_TOKENS, account("2031500042"))
        assert decision.reason == REASON_FEATURE

    @pytest.mark.parametrize("operation", [Operation.VIEW_AUDIT_LOG, Operation.RECONCILE_AUDIT])
    def test_super_admin_only_operations(self, operation):
        """Audit operations are reserved for super admins."""
        decision = self.gate.authorize(CLUB, operation)
        assert decision.reason == REASON_SUPER_ADMIN_ONLY

    def test_club_scope_context(self):
        """Every club in the context must be assigned."""
        inside = AuthorizationContext(club_ids=("20315",))
        outside = AuthorizationContext(club_ids=("20315", "10001"))
        assert self.gate.authorize(CLUB, Operation.MANAGE_ADMIN_USERS, inside)
        assert self.gate.authorize(CLUB, Operation.MANAGE_ADMIN_USERS, outside).reason == REASON_CLUB_SCOPE

    def test_club_admin_cannot_manage_super_admin(self):
        """Super admin records are out of reach for club admins."""
        context = AuthorizationContext(target_role=Role.SUPER_ADMIN)
        decision = self.gate.authorize(CLUB, Operation.MANAGE_ADMIN_USERS, context)
        assert decision.reason == REASON_SUPER_ADMIN_TARGET


class TestAdminManagement:
    """Limits on club admins managing other administrators."""

    gate = AuthorizationGate()

    def test_unscoped_target_denied(self):
        """An administrator record without clubs is outside every club admin's scope."""
        context = AuthorizationContext(target_role=Role.CLUB_ADMIN)
        decision = self.gate.authorize(CLUB, Operation.MANAGE_ADMIN_USERS, context)
        assert decision.reason == REASON_UNSCOPED_TARGET

    def test_own_record_denied(self):
        """Club admins cannot edit their own access."""
        context = AuthorizationContext(club_ids=("20315",), target_role=Role.CLUB_ADMIN, target_admin_id=CLUB.id)
        decision = self.gate.authorize(CLUB, Operation.MANAGE_ADMIN_USERS, context)
        assert decision.reason == REASON_SELF_MANAGEMENT

    def test_grant_limited_to_held_features(self):
        """Features can only be handed out by someone who holds them."""
        held = AuthorizationContext(
            club_ids=("20315",), target_role=Role.CLUB_ADMIN, granted_features=(Feature.NOTIFICATIONS,),
        )
        not_held = AuthorizationContext(
            club_ids=("20315",), target_role=Role.CLUB_ADMIN,
            granted_features=(Feature.NOTIFICATIONS, Feature.ROUNDS),
        )
        assert self.gate.authorize(CLUB, Operation.MANAGE_ADMIN_USERS, held)
        assert self.gate.authorize(CLUB, Operation.MANAGE_ADMIN_USERS, not_held).reason == REASON_FEATURE_GRANT

    def test_super_admin_unrestricted(self):
        """None of these limits apply to super admins."""
        context = AuthorizationContext(
            target_role=Role.CLUB_ADMIN, target_admin_id=SUPER.id, granted_features=tuple(Feature),
        )
        assert self.gate.authorize(SUPER, Operation.MANAGE_ADMIN_USERS, context)


class TestInactive:
    """Deactivated administrators are denied everything."""

    gate = AuthorizationGate()

    @pytest.mark.parametrize("admin", [SUPER, CLUB])
    @pytest.mark.parametrize("operation", list(Operation))
    def test_inactive_denied(self, admin, operation):
        """Inactivity wins over role and features."""
        inactive = admin.model_copy(update={"is_active": False, "features": list(Feature)})
        decision = self.gate.authorize(inactive, operation, account("2031500042"))
        assert not decision.allowed
        assert decision.reason == REASON_INACTIVE


class TestGateContract:
    """Tests for the gate's general behaviour."""

    def test_deterministic(self):
        """Same inputs, same decision."""
        gate = AuthorizationGate()
        decisions = {gate.authorize(CLUB, Operation.CREDIT_TOKENS, account("2031600042")) for _ in range(5)}
        assert len(decisions) == 1

    def test_operation_without_rule_is_denied(self):
        """The operation set is closed."""
        gate = AuthorizationGate(rules={Operation.LOOKUP_ACCOUNT: OperationRule(required_feature=Feature.GOLFER_LOOKUP)})
        decision = gate.authorize(CLUB, Operation.SEND_NOTIFICATION, account("2031500042"))
        assert decision.reason == REASON_UNKNOWN_OPERATION

    def test_require_raises_with_reason(self):
        """require raises with the denial reason."""
        with pytest.raises(AuthorizationDenied) as exc_info:
            AuthorizationGate().require(CLUB, Operation.LOOKUP_ACCOUNT, account("2031600042"))
        assert exc_info.value.reason == REASON_ACCOUNT_SCOPE

    def test_require_without_admin_record(self):
        """No record means no admin access."""
        with pytest.raises(AuthorizationDenied) as exc_info:
            AuthorizationGate().require(None, Operation.LOOKUP_ACCOUNT)
        assert exc_info.value.reason == REASON_NO_ADMIN

    def test_require_returns_admin(self):
        """An allowed admin is returned unchanged."""
        assert AuthorizationGate().require(SUPER, Operation.VIEW_AUDIT_LOG) is SUPER
