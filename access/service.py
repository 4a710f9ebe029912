import logging
from typing import Any, Optional

from audit.models import Actor, AuditAction, AuditTarget
from audit.service import AuditTrailService

from .directory import AdminDirectory, InMemoryAdminDirectory
from .gate import AuthorizationContext, AuthorizationDenied, AuthorizationGate, Operation, pad_club_id
from .models import Administrator, AdminUserCreate, AdminUserUpdate

logger = logging.getLogger(__name__)

REASON_SELF_DEACTIVATION = "administrators cannot deactivate themselves"


class AdminUserServiceError(Exception):
    pass


class AdminUserNotFoundError(AdminUserServiceError):
    pass


class AdminUserConflictError(AdminUserServiceError):
    pass


class SelfDeactivationError(AuthorizationDenied):
    def __init__(self):
        super().__init__(REASON_SELF_DEACTIVATION)


def actor_for(admin: Administrator) -> Actor:
    return Actor(id=admin.id, email=admin.email, name=admin.name)


def target_for(admin: Administrator) -> AuditTarget:
    return AuditTarget(type="adminUser", id=admin.id, name=admin.name, email=admin.email)


async def resolve_acting_admin(
    directory: AdminDirectory,
    gate: AuthorizationGate,
    email: str,
    operation: Operation,
    context: Optional[AuthorizationContext] = None,
) -> Administrator:
    """Fetch the caller's directory record fresh and authorize ``operation``."""
    admin = await directory.get_by_email(email) if email else None
    return gate.require(admin, operation, context)


class AdminUserService:
    """Administrator lifecycle: create -> active <-> inactive, never deleted."""

    def __init__(
        self,
        directory: Optional[AdminDirectory] = None,
        audit: Optional[AuditTrailService] = None,
        gate: Optional[AuthorizationGate] = None,
        allow_self_deactivation: bool = False,
    ):
        self.directory = directory or InMemoryAdminDirectory()
        self.audit = audit or AuditTrailService()
        self.gate = gate or AuthorizationGate()
        self.allow_self_deactivation = allow_self_deactivation

    async def me(self, email: str) -> Optional[Administrator]:
        return await self.directory.get_by_email(email)

    async def acting_admin(self, email: str, operation: Operation,
                           context: Optional[AuthorizationContext] = None) -> Administrator:
        return await resolve_acting_admin(self.directory, self.gate, email, operation, context)

    async def _require_target(self, admin_id: str) -> Administrator:
        target = await self.directory.get_by_id(admin_id)
        if target is None:
            raise AdminUserNotFoundError(f"Administrator {admin_id} not found")
        return target

    async def list_users(self, requesting_email: str) -> list[Administrator]:
        actor = await self.acting_admin(requesting_email, Operation.MANAGE_ADMIN_USERS)
        admins = await self.directory.list_all()
        if actor.is_super_admin:
            return admins
        own = {pad_club_id(c) for c in actor.club_ids}
        return [
            a for a in admins
            if not a.is_super_admin and a.club_ids and {pad_club_id(c) for c in a.club_ids} <= own
        ]

    async def create(self, requesting_email: str, data: AdminUserCreate) -> Administrator:
        actor = await self.acting_admin(
            requesting_email, Operation.MANAGE_ADMIN_USERS,
            AuthorizationContext(
                club_ids=tuple(data.club_ids), target_role=data.role, granted_features=tuple(data.features),
            ),
        )
        if await self.directory.get_by_email(data.email):
            raise AdminUserConflictError(f"An administrator with email {data.email} already exists")

        result = await self.audit.audited(
            AuditAction.ADMIN_USER_CREATED,
            actor_for(actor),
            AuditTarget(type="adminUser", id=data.email.strip().lower(), name=data.name, email=data.email),
            {"role": data.role.value, "clubIds": data.club_ids, "features": [f.value for f in data.features]},
            lambda: self.directory.create(data),
            describe=lambda created: {"adminUserId": created.id},
        )
        logger.info("Administrator %s created by %s", result.value.email, actor.email)
        return result.value

    async def update(self, requesting_email: str, admin_id: str, data: AdminUserUpdate) -> Administrator:
        target = await self._require_target(admin_id)
        changes = data.model_dump(exclude_unset=True)
        club_ids = set(target.club_ids) | set(changes.get("club_ids") or [])
        role = target.role if target.is_super_admin else changes.get("role") or target.role
        granted = [f for f in changes.get("features") or [] if f not in target.features]
        actor = await self.acting_admin(
            requesting_email, Operation.MANAGE_ADMIN_USERS,
            AuthorizationContext(
                club_ids=tuple(sorted(club_ids)), target_role=role,
                target_admin_id=target.id, granted_features=tuple(granted),
            ),
        )
        details = {"changes": data.model_dump(mode="json", by_alias=True, exclude_unset=True)}
        return await self._apply(actor, target, changes, details, AuditAction.ADMIN_USER_UPDATED)

    async def deactivate(self, requesting_email: str, admin_id: str) -> Administrator:
        target = await self._require_target(admin_id)
        actor = await self.acting_admin(
            requesting_email, Operation.MANAGE_ADMIN_USERS,
            AuthorizationContext(club_ids=tuple(target.club_ids), target_role=target.role),
        )
        if actor.id == target.id and not self.allow_self_deactivation:
            logger.warning("Self-deactivation refused for %s", actor.email)
            raise SelfDeactivationError()
        if not target.is_active:
            return target
        return await self._apply(actor, target, {"is_active": False}, {"changes": {"isActive": False}},
                                 AuditAction.ADMIN_USER_DEACTIVATED)

    async def reactivate(self, requesting_email: str, admin_id: str) -> Administrator:
        target = await self._require_target(admin_id)
        actor = await self.acting_admin(
            requesting_email, Operation.MANAGE_ADMIN_USERS,
            AuthorizationContext(club_ids=tuple(target.club_ids), target_role=target.role),
        )
        if target.is_active:
            return target
        return await self._apply(actor, target, {"is_active": True}, {"changes": {"isActive": True}},
                                 AuditAction.ADMIN_USER_REACTIVATED)

    async def _apply(self, actor: Administrator, target: Administrator,
                     changes: dict[str, Any], details: dict[str, Any],
                     action: AuditAction) -> Administrator:
        result = await self.audit.audited(
            action, actor_for(actor), target_for(target), details,
            lambda: self.directory.update(target.id, changes),
            definite_failures=(LookupError,),
        )
        logger.info("Administrator %s: %s by %s", target.email, action.value, actor.email)
        return result.value
