import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from .models import (
    ADMIN_CREDIT,
    ADMIN_DEBIT,
    Account,
    AccountSummary,
    Direction,
    Transaction,
    TransactionType,
)
from .store import AccountStore, BalanceConflict, IdempotencyKeyReused, InMemoryAccountStore, latest_balance

logger = logging.getLogger(__name__)


class LedgerServiceError(Exception):
    pass


class InvalidAmountError(LedgerServiceError):
    pass


class UnknownTransactionTypeError(LedgerServiceError):
    pass


class IdempotencyConflictError(LedgerServiceError):
    pass


class AccountNotFoundError(LedgerServiceError):
    pass


class StaleBalanceError(LedgerServiceError):
    def __init__(self, account_id: str, expected: int, actual: int):
        super().__init__(
            f"Balance for account {account_id} changed: expected {expected}, found {actual}"
        )
        self.account_id = account_id
        self.expected = expected
        self.actual = actual


def resolve_balance(transactions: list[Transaction], account: Account) -> int:
    """Current balance: the newest snapshot, or the account's fallback balance."""
    return latest_balance(transactions, account)


def check_replay(
    existing: Transaction, account: Account, transaction_type: TransactionType, amount: int,
) -> Transaction:
    """Return ``existing`` if it was applied for the same request, else raise."""
    if (
        existing.account_id != account.id
        or existing.transaction_type.id != transaction_type.id
        or existing.amount != amount
    ):
        raise IdempotencyConflictError(
            f"Idempotency key {existing.idempotency_key!r} was already used for a different adjustment"
        )
    return existing


def find_trace_breaks(transactions: list[Transaction], fallback_balance: int) -> list[str]:
    """Check that each snapshot equals the previous one plus its signed amount.

    ``transactions`` must be ordered newest first; the oldest entry is checked
    against ``fallback_balance``.
    """
    breaks = []
    for index, entry in enumerate(transactions):
        is_oldest = index + 1 == len(transactions)
        previous = fallback_balance if is_oldest else transactions[index + 1].available_tokens
        expected = previous + entry.signed_amount
        if entry.available_tokens != expected:
            breaks.append(
                f"transaction {entry.id}: availableTokens {entry.available_tokens} != {previous} "
                f"{'+' if entry.direction == Direction.CREDIT else '-'} {entry.amount}"
            )
    return breaks


class LedgerService:
    def __init__(self, store: Optional[AccountStore] = None):
        self.store = store or InMemoryAccountStore()
        # entries vanish once no coroutine holds or awaits the lock
        self._account_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._account_locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._account_locks[account_id] = lock
        return lock

    async def append(
        self,
        account: Account,
        transaction_type: TransactionType,
        amount: int,
        current_balance: int,
        idempotency_key: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Transaction:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"Amount must be a positive whole number of tokens, got {amount!r}")
        known_type = await self.get_transaction_type(transaction_type.id)
        if known_type != transaction_type:
            raise UnknownTransactionTypeError(f"Unknown transaction type {transaction_type.id!r}")

        async with self._lock_for(account.id):
            if idempotency_key:
                existing = await self.store.find_by_idempotency_key(idempotency_key)
                if existing:
                    check_replay(existing, account, transaction_type, amount)
                    logger.info("Idempotent replay of %s for account %s", idempotency_key, account.id)
                    return existing

            if transaction_type.direction == Direction.CREDIT:
                new_balance = current_balance + amount
            else:
                new_balance = current_balance - amount

            now = datetime.now(timezone.utc)
            transaction = Transaction(
                id=uuid4(),
                account_id=account.id,
                account_email=account.email,
                amount=amount,
                direction=transaction_type.direction,
                available_tokens=new_balance,
                transaction_type=transaction_type,
                note=note,
                idempotency_key=idempotency_key,
                timestamp=now,
            )
            try:
                persisted = await self.store.add_transaction(transaction, expected_balance=current_balance)
            except BalanceConflict as e:
                raise StaleBalanceError(account.id, e.expected, e.actual) from e
            except IdempotencyKeyReused as e:
                raise IdempotencyConflictError(str(e)) from e

        logger.info(
            "Appended %s of %s tokens to account %s (balance %s -> %s)",
            transaction_type.name, amount, account.id, current_balance, persisted.available_tokens,
        )
        return persisted

    async def get_account(self, identifier: str) -> Optional[Account]:
        return await self.store.get_account(identifier)

    async def require_account(self, identifier: str) -> Account:
        account = await self.store.get_account(identifier)
        if account is None:
            raise AccountNotFoundError(f"Account {identifier} not found")
        return account

    async def get_transactions(self, account: Account) -> list[Transaction]:
        return await self.store.list_transactions(account)

    async def current_balance(self, account: Account) -> int:
        return resolve_balance(await self.store.list_transactions(account), account)

    async def get_summary(self, identifier: str) -> AccountSummary:
        account = await self.store.get_account(identifier)
        if account is None:
            return AccountSummary()
        transactions = await self.store.list_transactions(account)
        return AccountSummary(
            account=account,
            balance=resolve_balance(transactions, account),
            transactions=transactions,
        )

    async def get_transaction_types(self) -> list[TransactionType]:
        return await self.store.list_transaction_types()

    async def admin_types(self) -> list[TransactionType]:
        types = await self.store.list_transaction_types()
        return [t for t in types if t.name in (ADMIN_CREDIT.name, ADMIN_DEBIT.name)]

    async def get_transaction_type(self, type_id: str) -> TransactionType:
        for transaction_type in await self.store.list_transaction_types():
            if transaction_type.id == type_id:
                return transaction_type
        raise UnknownTransactionTypeError(f"Unknown transaction type {type_id!r}")

    async def find_by_idempotency_key(self, key: str) -> Optional[Transaction]:
        return await self.store.find_by_idempotency_key(key)
