import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar
from uuid import uuid4

from .models import (
    Actor,
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditTarget,
    OutboxItem,
    PaginatedResponse,
)
from .store import AuditStore, InMemoryAuditStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuditServiceError(Exception):
    pass


class InvalidActorError(AuditServiceError):
    pass


class InvalidAuditQueryError(AuditServiceError):
    pass


class OutboxItemNotFoundError(AuditServiceError):
    pass


class OutboxConflictError(AuditServiceError):
    pass


@dataclass(frozen=True)
class AuditedResult(Generic[T]):
    value: T
    entry: Optional[AuditEntry]
    correlation_id: str

    @property
    def recorded(self) -> bool:
        return self.entry is not None


def _validate(action: AuditAction, actor: Actor) -> None:
    if not isinstance(action, AuditAction):
        raise AuditServiceError(f"Unrecognized audit action {action!r}")
    missing = [name for name in ("id", "email", "name") if not (getattr(actor, name) or "").strip()]
    if missing:
        raise InvalidActorError(f"Actor is missing {', '.join(missing)}")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuditTrailService:
    """Immutable record of privileged mutations.

    ``record`` writes an entry immediately. The ``stage``/``commit``/``discard``
    trio is the write-ahead path: the entry is staged in the outbox before the
    mutation runs, committed once the mutation succeeded, and discarded when
    the mutation is known not to have happened.
    """

    def __init__(self, store: Optional[AuditStore] = None, max_page_size: int = 100):
        self.store = store or InMemoryAuditStore()
        self.max_page_size = max_page_size

    async def record(
        self,
        action: AuditAction,
        actor: Actor,
        target: Optional[AuditTarget] = None,
        details: Optional[dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditEntry:
        _validate(action, actor)
        entry = AuditEntry(
            id=uuid4(),
            action=action,
            performed_by=actor,
            target=target,
            details=dict(details or {}),
            correlation_id=correlation_id,
            timestamp=datetime.now(timezone.utc),
        )
        persisted = await self.store.add_entry(entry)
        logger.info("Audit %s by %s (target %s)", action.value, actor.email, target.id if target else "-")
        return persisted

    async def stage(
        self,
        correlation_id: str,
        action: AuditAction,
        actor: Actor,
        target: Optional[AuditTarget] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> OutboxItem:
        _validate(action, actor)
        if await self.store.get_staged(correlation_id) is not None:
            raise OutboxConflictError(f"An audit entry for {correlation_id} is already staged")
        item = OutboxItem(
            correlation_id=correlation_id,
            action=action,
            performed_by=actor,
            target=target,
            details=dict(details or {}),
            staged_at=datetime.now(timezone.utc),
        )
        return await self.store.stage(item)

    async def commit(self, correlation_id: str, extra_details: Optional[dict[str, Any]] = None) -> AuditEntry:
        item = await self.store.get_staged(correlation_id)
        if item is None:
            raise OutboxItemNotFoundError(f"No staged audit entry for {correlation_id}")
        # an earlier commit may have written the entry before failing to unstage
        entry = await self.store.find_by_correlation_id(correlation_id)
        if entry is None:
            entry = await self.record(
                item.action,
                item.performed_by,
                item.target,
                {**item.details, **(extra_details or {})},
                correlation_id=correlation_id,
            )
        await self.store.remove_staged(correlation_id)
        return entry

    async def discard(self, correlation_id: str, reason: str = "") -> None:
        await self.store.remove_staged(correlation_id)
        logger.info("Discarded staged audit entry %s %s", correlation_id, reason)

    async def audited(
        self,
        action: AuditAction,
        actor: Actor,
        target: Optional[AuditTarget],
        details: dict[str, Any],
        mutation: Callable[[], Awaitable[T]],
        describe: Optional[Callable[[T], dict[str, Any]]] = None,
        correlation_id: Optional[str] = None,
        definite_failures: tuple[type[BaseException], ...] = (),
    ) -> AuditedResult[T]:
        """Stage, run ``mutation``, then commit.

        Exceptions listed in ``definite_failures`` mean the mutation did not
        happen and the staged entry is discarded. Any other exception leaves
        the outcome unknown, so the entry stays staged for reconciliation.
        A failed commit does not undo the mutation; it is logged and the
        entry stays staged.
        """
        correlation_id = correlation_id or str(uuid4())
        await self.stage(correlation_id, action, actor, target, details)
        try:
            value = await mutation()
        except definite_failures as e:
            await self.discard(correlation_id, f"({type(e).__name__})")
            raise
        except Exception:
            logger.error("Outcome of %s %s unknown; audit entry left staged", action.value, correlation_id)
            raise

        try:
            entry = await self.commit(correlation_id, describe(value) if describe else None)
        except Exception:
            logger.exception(
                "Audit commit failed for %s %s after the mutation succeeded; entry left staged",
                action.value, correlation_id,
            )
            return AuditedResult(value, None, correlation_id)
        return AuditedResult(value, entry, correlation_id)

    async def pending(self) -> list[OutboxItem]:
        return await self.store.list_staged()

    async def is_staged(self, correlation_id: str) -> bool:
        return await self.store.get_staged(correlation_id) is not None

    async def list(
        self,
        action: Optional[AuditAction] = None,
        actor_email: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> PaginatedResponse[AuditEntry]:
        if page < 1:
            raise InvalidAuditQueryError("page must be 1 or greater")
        if page_size < 1 or page_size > self.max_page_size:
            raise InvalidAuditQueryError(f"pageSize must be between 1 and {self.max_page_size}")
        from_date, to_date = _as_utc(from_date), _as_utc(to_date)
        if from_date and to_date and from_date > to_date:
            raise InvalidAuditQueryError("fromDate must not be after toDate")

        query = AuditQuery(
            action=action, actor_email=actor_email,
            from_date=from_date, to_date=to_date,
            page=page, page_size=page_size,
        )
        items, total_count = await self.store.query_entries(query)
        return PaginatedResponse[AuditEntry](
            items=items,
            page=page,
            page_size=page_size,
            total_count=total_count,
            total_pages=math.ceil(total_count / page_size),
        )
