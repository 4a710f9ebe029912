import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from access.directory import AdminDirectory
from access.gate import AuthorizationContext, AuthorizationGate, Operation
from access.service import actor_for, resolve_acting_admin
from audit.models import AuditAction, AuditTarget
from audit.service import AuditTrailService

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    pass


class AudienceType(str, Enum):
    ALL = "all"
    CLUB = "club"
    STATE = "state"
    SINGLE = "single"


class NotificationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    audience_type: AudienceType
    club_id: Optional[str] = None
    state: Optional[str] = None
    gender: Optional[str] = None
    golflink_no: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="after")
    def check_audience(self) -> "NotificationRequest":
        required = {
            AudienceType.CLUB: "club_id",
            AudienceType.STATE: "state",
            AudienceType.SINGLE: "golflink_no",
        }.get(self.audience_type)
        if required and not getattr(self, required):
            raise ValueError(f"{to_camel(required)} is required for audience {self.audience_type.value}")
        return self


class NotificationResult(BaseModel):
    success: bool
    recipient_count: int = 0
    message: str = ""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationProvider(ABC):
    """External push provider; delivery mechanics live on its side."""

    @abstractmethod
    async def send(self, request: NotificationRequest, club_ids: list[str]) -> NotificationResult: ...


class RecordingNotificationProvider(NotificationProvider):
    """Accepts every send and keeps it; stands in for the push provider locally."""

    def __init__(self, recipients_per_send: int = 1):
        self.sent: list[tuple[NotificationRequest, list[str]]] = []
        self.recipients_per_send = recipients_per_send

    async def send(self, request: NotificationRequest, club_ids: list[str]) -> NotificationResult:
        self.sent.append((request, club_ids))
        count = 1 if request.audience_type == AudienceType.SINGLE else self.recipients_per_send
        return NotificationResult(success=True, recipient_count=count, message="queued")


class NotificationService:
    def __init__(
        self,
        provider: NotificationProvider,
        audit: AuditTrailService,
        directory: AdminDirectory,
        gate: AuthorizationGate,
    ):
        self.provider = provider
        self.audit = audit
        self.directory = directory
        self.gate = gate

    def _context(self, request: NotificationRequest) -> AuthorizationContext:
        if request.audience_type == AudienceType.SINGLE:
            return AuthorizationContext(account_identifier=request.golflink_no)
        if request.audience_type == AudienceType.CLUB:
            return AuthorizationContext(club_ids=(request.club_id,))
        return AuthorizationContext()

    async def send(self, requesting_email: str, request: NotificationRequest) -> NotificationResult:
        admin = await resolve_acting_admin(
            self.directory, self.gate, requesting_email, Operation.SEND_NOTIFICATION, self._context(request),
        )
        # club admins only ever reach their own clubs
        club_ids = [] if admin.is_super_admin else list(admin.club_ids)

        async def deliver() -> NotificationResult:
            result = await self.provider.send(request, club_ids)
            if not result.success:
                raise NotificationDeliveryError(result.message or "Notification provider rejected the send")
            return result

        target = None
        if request.audience_type == AudienceType.SINGLE:
            target = AuditTarget(type="golfer", id=request.golflink_no)
        elif request.audience_type == AudienceType.CLUB:
            target = AuditTarget(type="club", id=request.club_id)

        audited = await self.audit.audited(
            AuditAction.NOTIFICATION_SENT,
            actor_for(admin),
            target,
            {
                "title": request.title,
                "audienceType": request.audience_type.value,
                "state": request.state,
                "gender": request.gender,
                "clubIds": club_ids,
            },
            deliver,
            describe=lambda r: {"recipientCount": r.recipient_count},
            definite_failures=(NotificationDeliveryError,),
        )
        logger.info(
            "Notification %r sent by %s to %s recipients",
            request.title, admin.email, audited.value.recipient_count,
        )
        return audited.value
