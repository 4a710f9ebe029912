"""
Unit Tests for Notifications

Tests cover:
1. Audience validation
2. Club scoping of single and club audiences
3. Audit entries with the recipient count
4. Provider rejection leaves no audit entry
"""

import pytest
from pydantic import ValidationError

from access.directory import InMemoryAdminDirectory
from access.gate import AuthorizationDenied, AuthorizationGate, REASON_ACCOUNT_SCOPE, REASON_CLUB_SCOPE, REASON_FEATURE
from audit.models import AuditAction
from audit.service import AuditTrailService
from console.notifications import (
    AudienceType,
    NotificationDeliveryError,
    NotificationProvider,
    NotificationRequest,
    NotificationResult,
    NotificationService,
    RecordingNotificationProvider,
)


SUPER_EMAIL = "ops@example.com"
CLUB_EMAIL = "pro@lakeside.example.com"


class RejectingProvider(NotificationProvider):
    async def send(self, request, club_ids):
        return NotificationResult(success=False, message="provider quota exceeded")


def make_service(provider=None) -> NotificationService:
    return NotificationService(
        provider or RecordingNotificationProvider(recipients_per_send=40),
        AuditTrailService(),
        InMemoryAdminDirectory(),
        AuthorizationGate(),
    )


def single(golflink_no: str) -> NotificationRequest:
    return NotificationRequest(
        title="Course update", message="Back nine closed today",
        audience_type=AudienceType.SINGLE, golflink_no=golflink_no,
    )


class TestRequestValidation:
    """Tests for audience validation."""

    def test_club_audience_needs_club_id(self):
        """A club audience must name the club."""
        with pytest.raises(ValidationError):
            NotificationRequest(title="Hi", message="There", audience_type=AudienceType.CLUB)

    def test_single_audience_needs_golflink_no(self):
        """A single-golfer audience must name the golfer."""
        with pytest.raises(ValidationError):
            NotificationRequest(title="Hi", message="There", audience_type=AudienceType.SINGLE)

    def test_camel_case_payload(self):
        """Requests accept the console's camelCase payload."""
        request = NotificationRequest.model_validate({
            "title": "Frost delay", "message": "Tee times pushed 30 minutes",
            "audienceType": "state", "state": "VIC",
        })
        assert request.audience_type == AudienceType.STATE


class TestSend:
    """Tests for authorized, audited sends."""

    @pytest.mark.asyncio
    async def test_single_in_scope_is_audited(self):
        """A send to an in-scope golfer is delivered and audited."""
        provider = RecordingNotificationProvider()
        service = make_service(provider)

        result = await service.send(CLUB_EMAIL, single("2031500042"))

        assert result.success
        assert result.recipient_count == 1
        assert provider.sent[0][1] == ["20315"]
        [entry] = service.audit.store.entries
        assert entry.action == AuditAction.NOTIFICATION_SENT
        assert entry.target.id == "2031500042"
        assert entry.details["recipientCount"] == 1
        assert entry.details["title"] == "Course update"

    @pytest.mark.asyncio
    async def test_single_out_of_scope_denied(self):
        """Golfers of other clubs are out of reach."""
        service = make_service()

        with pytest.raises(AuthorizationDenied) as exc:
            await service.send(CLUB_EMAIL, single("0412300007"))

        assert exc.value.reason == REASON_ACCOUNT_SCOPE
        assert service.audit.store.entries == []

    @pytest.mark.asyncio
    async def test_foreign_club_denied(self):
        """Club audiences outside the caller's clubs are denied."""
        service = make_service()

        with pytest.raises(AuthorizationDenied) as exc:
            await service.send(CLUB_EMAIL, NotificationRequest(
                title="Hi", message="There", audience_type=AudienceType.CLUB, club_id="412",
            ))

        assert exc.value.reason == REASON_CLUB_SCOPE

    @pytest.mark.asyncio
    async def test_own_club_with_short_id(self):
        """Club ids compare after zero-padding to five digits."""
        service = make_service()
        service.directory.admins["admin-0002"] = service.directory.admins["admin-0002"].model_copy(
            update={"club_ids": ["412"]}
        )

        result = await service.send(CLUB_EMAIL, NotificationRequest(
            title="Hi", message="There", audience_type=AudienceType.CLUB, club_id="00412",
        ))

        assert result.recipient_count == 40

    @pytest.mark.asyncio
    async def test_super_admin_broadcast_is_unscoped(self):
        """Super admins can broadcast to everyone."""
        provider = RecordingNotificationProvider(recipients_per_send=1200)
        service = make_service(provider)

        result = await service.send(SUPER_EMAIL, NotificationRequest(
            title="Season opener", message="Welcome back", audience_type=AudienceType.ALL,
        ))

        assert result.recipient_count == 1200
        assert provider.sent[0][1] == []
        assert service.audit.store.entries[0].target is None

    @pytest.mark.asyncio
    async def test_feature_required(self):
        """Sending needs the notifications feature."""
        service = make_service()
        service.directory.admins["admin-0002"] = service.directory.admins["admin-0002"].model_copy(
            update={"features": []}
        )

        with pytest.raises(AuthorizationDenied) as exc:
            await service.send(CLUB_EMAIL, single("2031500042"))

        assert exc.value.reason == REASON_FEATURE

    @pytest.mark.asyncio
    async def test_rejected_send_not_audited(self):
        """A provider rejection leaves neither an entry nor a staged item."""
        service = make_service(RejectingProvider())

        with pytest.raises(NotificationDeliveryError, match="quota"):
            await service.send(SUPER_EMAIL, single("0412300007"))

        assert service.audit.store.entries == []
        assert await service.audit.pending() == []
