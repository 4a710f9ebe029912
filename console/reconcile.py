import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from access.directory import AdminDirectory
from audit.models import AuditAction, OutboxItem
from audit.service import AuditTrailService
from ledger.service import LedgerService, find_trace_breaks

logger = logging.getLogger(__name__)

# Resolver result: details to commit with, or None when the mutation never happened.
Resolver = Callable[[OutboxItem], Awaitable[Optional[dict[str, Any]]]]


class ReconciliationReport(BaseModel):
    recorded: list[str] = Field(default_factory=list)
    discarded: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TraceReport(BaseModel):
    identifier: str
    found: bool
    breaks: list[str] = Field(default_factory=list)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuditReconciler:
    """Resolves audit entries left staged by interrupted mutations.

    Only items older than the grace period are touched, so in-flight
    mutations are never raced.
    """

    def __init__(
        self,
        audit: AuditTrailService,
        ledger: LedgerService,
        directory: AdminDirectory,
        grace_seconds: int = 300,
    ):
        self.audit = audit
        self.ledger = ledger
        self.directory = directory
        self.grace = timedelta(seconds=grace_seconds)
        self.resolvers: dict[AuditAction, Resolver] = {
            AuditAction.ADMIN_CREDIT: self._resolve_ledger,
            AuditAction.ADMIN_DEBIT: self._resolve_ledger,
            AuditAction.ADMIN_USER_CREATED: self._resolve_admin_created,
        }

    async def _resolve_ledger(self, item: OutboxItem) -> Optional[dict[str, Any]]:
        transaction = await self.ledger.find_by_idempotency_key(item.correlation_id)
        if transaction is None:
            return None
        return {"transactionId": str(transaction.id), "newBalance": transaction.available_tokens}

    async def _resolve_admin_created(self, item: OutboxItem) -> Optional[dict[str, Any]]:
        email = item.target.email if item.target else None
        admin = await self.directory.get_by_email(email) if email else None
        if admin is None:
            return None
        return {"adminUserId": admin.id}

    async def run(self, now: Optional[datetime] = None) -> ReconciliationReport:
        now = now or datetime.now(timezone.utc)
        report = ReconciliationReport()

        for item in await self.audit.pending():
            if now - item.staged_at < self.grace:
                continue
            resolver = self.resolvers.get(item.action)
            if resolver is None:
                logger.error(
                    "Staged %s %s cannot be verified automatically; needs operator review",
                    item.action.value, item.correlation_id,
                )
                report.pending.append(item.correlation_id)
                continue

            details = await resolver(item)
            if details is None:
                await self.audit.discard(item.correlation_id, "(mutation not found)")
                logger.warning("Discarded staged %s %s: mutation never applied", item.action.value, item.correlation_id)
                report.discarded.append(item.correlation_id)
            else:
                await self.audit.commit(item.correlation_id, {**details, "reconciled": True})
                logger.warning("Recorded missing audit entry %s for %s", item.correlation_id, item.action.value)
                report.recorded.append(item.correlation_id)

        return report

    async def verify_account(self, identifier: str) -> TraceReport:
        account = await self.ledger.get_account(identifier)
        if account is None:
            return TraceReport(identifier=identifier, found=False)
        breaks = find_trace_breaks(await self.ledger.get_transactions(account), account.token_balance)
        for line in breaks:
            logger.error("Balance trace break on %s: %s", identifier, line)
        return TraceReport(identifier=identifier, found=True, breaks=breaks)
