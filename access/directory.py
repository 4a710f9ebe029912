import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from .models import Administrator, AdminUserCreate, Feature, Role


class AdminDirectory(ABC):
    """Source of truth for administrator role, feature and club-scope assignment."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Administrator]: ...

    @abstractmethod
    async def get_by_id(self, admin_id: str) -> Optional[Administrator]: ...

    @abstractmethod
    async def list_all(self) -> list[Administrator]: ...

    @abstractmethod
    async def create(self, data: AdminUserCreate) -> Administrator: ...

    @abstractmethod
    async def update(self, admin_id: str, changes: dict[str, Any]) -> Administrator: ...


class InMemoryAdminDirectory(AdminDirectory):
    def __init__(self, seed: bool = True):
        self.admins: dict[str, Administrator] = {}
        self._lock = asyncio.Lock()
        if seed:
            self._seed_data()

    def _seed_data(self):
        self.add(Administrator(
            id="admin-0001", email="ops@example.com", name="Operations",
            role=Role.SUPER_ADMIN, features=list(Feature),
        ))
        self.add(Administrator(
            id="admin-0002", email="pro@lakeside.example.com", name="Lakeside Pro Shop",
            role=Role.CLUB_ADMIN, club_ids=["20315"],
            features=[Feature.GOLFER_LOOKUP, Feature.GOLFERS, Feature.NOTIFICATIONS],
        ))

    def add(self, admin: Administrator) -> Administrator:
        self.admins[admin.id] = admin
        return admin

    async def get_by_email(self, email: str) -> Optional[Administrator]:
        wanted = email.strip().lower()
        for admin in self.admins.values():
            if admin.email.lower() == wanted:
                return admin
        return None

    async def get_by_id(self, admin_id: str) -> Optional[Administrator]:
        return self.admins.get(admin_id)

    async def list_all(self) -> list[Administrator]:
        return sorted(self.admins.values(), key=lambda a: a.email)

    async def create(self, data: AdminUserCreate) -> Administrator:
        now = datetime.now(timezone.utc)
        admin = Administrator(
            id=str(uuid4()),
            email=data.email.strip().lower(),
            name=data.name,
            role=data.role,
            club_ids=data.club_ids,
            features=data.features,
            logo_url=data.logo_url,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self.admins[admin.id] = admin
        return admin

    async def update(self, admin_id: str, changes: dict[str, Any]) -> Administrator:
        async with self._lock:
            current = self.admins.get(admin_id)
            if current is None:
                raise LookupError(f"Administrator {admin_id} not found")
            updated = current.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
            self.admins[admin_id] = updated
        return updated
