import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from .models import AuditEntry, AuditQuery, OutboxItem


class AuditStore(ABC):
    """Append-only audit entries plus the outbox of staged entries."""

    @abstractmethod
    async def add_entry(self, entry: AuditEntry) -> AuditEntry: ...

    @abstractmethod
    async def query_entries(self, query: AuditQuery) -> tuple[list[AuditEntry], int]:
        """Return the requested page (newest first) and the total match count."""

    @abstractmethod
    async def find_by_correlation_id(self, correlation_id: str) -> Optional[AuditEntry]: ...

    @abstractmethod
    async def stage(self, item: OutboxItem) -> OutboxItem: ...

    @abstractmethod
    async def get_staged(self, correlation_id: str) -> Optional[OutboxItem]: ...

    @abstractmethod
    async def remove_staged(self, correlation_id: str) -> None: ...

    @abstractmethod
    async def list_staged(self) -> list[OutboxItem]: ...


class InMemoryAuditStore(AuditStore):
    def __init__(self):
        self.entries: list[AuditEntry] = []
        self.outbox: dict[str, OutboxItem] = {}
        self._lock = asyncio.Lock()

    async def add_entry(self, entry: AuditEntry) -> AuditEntry:
        async with self._lock:
            self.entries.append(entry)
        return entry

    async def query_entries(self, query: AuditQuery) -> tuple[list[AuditEntry], int]:
        matched = [e for e in reversed(self.entries) if query.matches(e)]
        matched.sort(key=lambda e: e.timestamp, reverse=True)
        start = (query.page - 1) * query.page_size
        return matched[start:start + query.page_size], len(matched)

    async def find_by_correlation_id(self, correlation_id: str) -> Optional[AuditEntry]:
        for entry in self.entries:
            if entry.correlation_id == correlation_id:
                return entry
        return None

    async def stage(self, item: OutboxItem) -> OutboxItem:
        async with self._lock:
            self.outbox[item.correlation_id] = item
        return item

    async def get_staged(self, correlation_id: str) -> Optional[OutboxItem]:
        return self.outbox.get(correlation_id)

    async def remove_staged(self, correlation_id: str) -> None:
        async with self._lock:
            self.outbox.pop(correlation_id, None)

    async def list_staged(self) -> list[OutboxItem]:
        return sorted(self.outbox.values(), key=lambda i: i.staged_at)
