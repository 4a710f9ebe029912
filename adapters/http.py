"""
HTTP adapters for the remote data API.

Each adapter implements one collaborator contract (AccountStore, AuditStore,
AdminDirectory) over a shared ``httpx.AsyncClient``. Transport failures and
5xx responses surface as ``ConnectionError`` / ``TimeoutError`` so callers can
treat them as transient; 404 on a lookup is a normal "not found".
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter
from pydantic.alias_generators import to_camel

from access.directory import AdminDirectory
from access.models import Administrator, AdminUserCreate
from audit.models import AuditEntry, AuditQuery, OutboxItem
from audit.store import AuditStore
from ledger.models import ADMIN_CREDIT, ADMIN_DEBIT, Account, Transaction, TransactionType
from ledger.store import AccountStore, BalanceConflict, IdempotencyKeyReused

logger = logging.getLogger(__name__)

_CHANGES = TypeAdapter(dict[str, Any])


def create_client(base_url: str, timeout: float = 10.0, **kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers={"Content-Type": "application/json"},
        **kwargs,
    )


class RemoteClient:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"{method} {url} timed out") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"{method} {url} failed: {e}") from e
        if response.status_code >= 500:
            logger.warning("%s %s returned %s", method, url, response.status_code)
            raise ConnectionError(f"{method} {url} returned {response.status_code}")
        return response

    async def _get_optional(self, url: str, **kwargs) -> Optional[Any]:
        response = await self._request("GET", url, **kwargs)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json() or None


class HttpAccountStore(RemoteClient, AccountStore):

    async def get_account(self, identifier: str) -> Optional[Account]:
        data = await self._get_optional("/golfers", params={"golflinkNo": identifier})
        return Account.model_validate(data) if data else None

    async def list_transactions(self, account: Account) -> list[Transaction]:
        data = await self._get_optional("/transactions", params={"email": account.email}) or []
        transactions = [Transaction.model_validate(t) for t in data]
        transactions.sort(key=lambda t: t.timestamp, reverse=True)
        return transactions

    async def add_transaction(self, transaction: Transaction, expected_balance: int) -> Transaction:
        body = transaction.model_dump(mode="json", by_alias=True)
        body["expectedAvailableTokens"] = expected_balance
        response = await self._request("POST", "/transactions", json=body)
        if response.status_code == 409:
            conflict = response.json()
            if conflict.get("idempotencyKey"):
                raise IdempotencyKeyReused(conflict["idempotencyKey"])
            raise BalanceConflict(expected_balance, conflict.get("availableTokens", expected_balance))
        response.raise_for_status()
        return Transaction.model_validate(response.json())

    async def find_by_idempotency_key(self, key: str) -> Optional[Transaction]:
        data = await self._get_optional("/transactions", params={"idempotencyKey": key})
        if isinstance(data, list):
            data = data[0] if data else None
        return Transaction.model_validate(data) if data else None

    async def list_transaction_types(self) -> list[TransactionType]:
        # the remote API has no transaction-type endpoint
        return [ADMIN_CREDIT, ADMIN_DEBIT]


class HttpAuditStore(RemoteClient, AuditStore):

    async def add_entry(self, entry: AuditEntry) -> AuditEntry:
        response = await self._request("POST", "/audit-logs", json=entry.model_dump(mode="json", by_alias=True))
        response.raise_for_status()
        return AuditEntry.model_validate(response.json())

    async def query_entries(self, query: AuditQuery) -> tuple[list[AuditEntry], int]:
        params: dict[str, Any] = {"page": query.page, "pageSize": query.page_size}
        if query.action:
            params["action"] = query.action.value
        if query.actor_email:
            params["actorEmail"] = query.actor_email
        if query.from_date:
            params["fromDate"] = query.from_date.isoformat()
        if query.to_date:
            params["toDate"] = query.to_date.isoformat()
        response = await self._request("GET", "/audit-logs", params=params)
        response.raise_for_status()
        data = response.json()
        items = [AuditEntry.model_validate(e) for e in data.get("data", data.get("items", []))]
        return items, data.get("totalCount", len(items))

    async def find_by_correlation_id(self, correlation_id: str) -> Optional[AuditEntry]:
        data = await self._get_optional("/audit-logs", params={"correlationId": correlation_id})
        items = data.get("data", data.get("items", [])) if isinstance(data, dict) else data or []
        return AuditEntry.model_validate(items[0]) if items else None

    async def stage(self, item: OutboxItem) -> OutboxItem:
        response = await self._request("POST", "/audit-outbox", json=item.model_dump(mode="json", by_alias=True))
        response.raise_for_status()
        return item

    async def get_staged(self, correlation_id: str) -> Optional[OutboxItem]:
        data = await self._get_optional(f"/audit-outbox/{correlation_id}")
        return OutboxItem.model_validate(data) if data else None

    async def remove_staged(self, correlation_id: str) -> None:
        response = await self._request("DELETE", f"/audit-outbox/{correlation_id}")
        if response.status_code != 404:
            response.raise_for_status()

    async def list_staged(self) -> list[OutboxItem]:
        data = await self._get_optional("/audit-outbox") or []
        return [OutboxItem.model_validate(i) for i in data]


class HttpAdminDirectory(RemoteClient, AdminDirectory):

    async def get_by_email(self, email: str) -> Optional[Administrator]:
        data = await self._get_optional("/admin/me", params={"email": email})
        return Administrator.model_validate(data) if data else None

    async def get_by_id(self, admin_id: str) -> Optional[Administrator]:
        data = await self._get_optional(f"/admin/users/{admin_id}")
        return Administrator.model_validate(data) if data else None

    async def list_all(self) -> list[Administrator]:
        data = await self._get_optional("/admin/users") or []
        return [Administrator.model_validate(a) for a in data]

    async def create(self, data: AdminUserCreate) -> Administrator:
        response = await self._request("POST", "/admin/users", json=data.model_dump(mode="json", by_alias=True))
        response.raise_for_status()
        return Administrator.model_validate(response.json())

    async def update(self, admin_id: str, changes: dict[str, Any]) -> Administrator:
        body = {to_camel(key): value for key, value in _CHANGES.dump_python(changes, mode="json").items()}
        response = await self._request("PUT", f"/admin/users/{admin_id}", json=body)
        if response.status_code == 404:
            raise LookupError(f"Administrator {admin_id} not found")
        response.raise_for_status()
        return Administrator.model_validate(response.json())
