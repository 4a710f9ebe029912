from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class AuditAction(str, Enum):
    ADMIN_CREDIT = "ADMIN_CREDIT"
    ADMIN_DEBIT = "ADMIN_DEBIT"
    NOTIFICATION_SENT = "NOTIFICATION_SENT"
    ADMIN_USER_CREATED = "ADMIN_USER_CREATED"
    ADMIN_USER_UPDATED = "ADMIN_USER_UPDATED"
    ADMIN_USER_DEACTIVATED = "ADMIN_USER_DEACTIVATED"
    ADMIN_USER_REACTIVATED = "ADMIN_USER_REACTIVATED"

    @property
    def label(self) -> str:
        return ACTION_LABELS[self]


ACTION_LABELS = {
    AuditAction.ADMIN_CREDIT: "Token Credit",
    AuditAction.ADMIN_DEBIT: "Token Debit",
    AuditAction.NOTIFICATION_SENT: "Notification Sent",
    AuditAction.ADMIN_USER_CREATED: "Admin User Created",
    AuditAction.ADMIN_USER_UPDATED: "Admin User Updated",
    AuditAction.ADMIN_USER_DEACTIVATED: "Admin User Deactivated",
    AuditAction.ADMIN_USER_REACTIVATED: "Admin User Reactivated",
}


class AuditModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Actor(AuditModel):
    id: str
    email: str
    name: str

    model_config = ConfigDict(frozen=True)


class AuditTarget(AuditModel):
    type: str
    id: str
    name: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class AuditEntry(AuditModel):
    id: UUID
    action: AuditAction
    performed_by: Actor
    target: Optional[AuditTarget] = None
    details: dict[str, Any] = Field(default_factory=dict)
    correlation_id: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(frozen=True)


class OutboxItem(AuditModel):
    """An audit entry staged before the mutation it describes is applied."""

    correlation_id: str
    action: AuditAction
    performed_by: Actor
    target: Optional[AuditTarget] = None
    details: dict[str, Any] = Field(default_factory=dict)
    staged_at: datetime


class AuditQuery(AuditModel):
    action: Optional[AuditAction] = None
    actor_email: Optional[str] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    page: int = 1
    page_size: int = 20

    def matches(self, entry: AuditEntry) -> bool:
        if self.action and entry.action != self.action:
            return False
        if self.actor_email and entry.performed_by.email.lower() != self.actor_email.lower():
            return False
        if self.from_date and entry.timestamp < self.from_date:
            return False
        if self.to_date and entry.timestamp > self.to_date:
            return False
        return True


class PaginatedResponse(AuditModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total_count: int
    total_pages: int
