from dataclasses import dataclass
from typing import Optional

import httpx

from access.directory import AdminDirectory, InMemoryAdminDirectory
from access.gate import AuthorizationGate
from access.service import AdminUserService
from adapters.http import HttpAccountStore, HttpAdminDirectory, HttpAuditStore, create_client
from audit.service import AuditTrailService
from audit.store import AuditStore, InMemoryAuditStore
from ledger.service import LedgerService
from ledger.store import AccountStore, InMemoryAccountStore

from .config import Settings
from .notifications import NotificationProvider, NotificationService, RecordingNotificationProvider
from .reconcile import AuditReconciler
from .tokens import TokenService


@dataclass
class ConsoleServices:
    settings: Settings
    gate: AuthorizationGate
    ledger: LedgerService
    audit: AuditTrailService
    tokens: TokenService
    admin_users: AdminUserService
    notifications: NotificationService
    reconciler: AuditReconciler
    client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


def build_services(
    settings: Settings,
    account_store: Optional[AccountStore] = None,
    audit_store: Optional[AuditStore] = None,
    directory: Optional[AdminDirectory] = None,
    provider: Optional[NotificationProvider] = None,
) -> ConsoleServices:
    client = None
    if settings.backend == "http":
        client = create_client(settings.api_base, timeout=settings.http_timeout)
        account_store = account_store or HttpAccountStore(client)
        audit_store = audit_store or HttpAuditStore(client)
        directory = directory or HttpAdminDirectory(client)
    account_store = account_store or InMemoryAccountStore()
    audit_store = audit_store or InMemoryAuditStore()
    directory = directory or InMemoryAdminDirectory()

    gate = AuthorizationGate()
    ledger = LedgerService(account_store)
    audit = AuditTrailService(audit_store, max_page_size=settings.max_page_size)
    return ConsoleServices(
        settings=settings,
        gate=gate,
        ledger=ledger,
        audit=audit,
        tokens=TokenService(ledger, audit, directory, gate, max_append_attempts=settings.max_append_attempts),
        admin_users=AdminUserService(directory, audit, gate, allow_self_deactivation=settings.allow_self_deactivation),
        notifications=NotificationService(provider or RecordingNotificationProvider(), audit, directory, gate),
        reconciler=AuditReconciler(audit, ledger, directory, grace_seconds=settings.outbox_grace_seconds),
        client=client,
    )
