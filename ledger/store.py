import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from .models import ADMIN_CREDIT, ADMIN_DEBIT, Account, Transaction, TransactionType


class BalanceConflict(Exception):
    """Raised by a store when the conditional write sees a newer snapshot."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"expected balance {expected}, store has {actual}")
        self.expected = expected
        self.actual = actual


class IdempotencyKeyReused(Exception):
    """Raised by a store when a key already belongs to a different transaction."""

    def __init__(self, key: str):
        super().__init__(f"idempotency key {key!r} already used for another transaction")
        self.key = key


def same_request(existing: Transaction, candidate: Transaction) -> bool:
    return (
        existing.account_id == candidate.account_id
        and existing.transaction_type.id == candidate.transaction_type.id
        and existing.amount == candidate.amount
    )


class AccountStore(ABC):
    """Authoritative account records and their transaction log."""

    @abstractmethod
    async def get_account(self, identifier: str) -> Optional[Account]: ...

    @abstractmethod
    async def list_transactions(self, account: Account) -> list[Transaction]:
        """Transactions for ``account``, newest first."""

    @abstractmethod
    async def add_transaction(self, transaction: Transaction, expected_balance: int) -> Transaction:
        """Persist ``transaction`` only if the latest snapshot equals ``expected_balance``.

        A key already stored for the same request returns the stored
        transaction; a key stored for a different request raises
        ``IdempotencyKeyReused``.
        """

    @abstractmethod
    async def find_by_idempotency_key(self, key: str) -> Optional[Transaction]: ...

    @abstractmethod
    async def list_transaction_types(self) -> list[TransactionType]: ...


def latest_balance(transactions: list[Transaction], account: Account) -> int:
    if transactions:
        return transactions[0].available_tokens
    return account.token_balance or 0


class InMemoryAccountStore(AccountStore):
    def __init__(self, seed: bool = True):
        self.accounts: dict[str, Account] = {}
        self.transactions: dict[str, list[Transaction]] = {}
        self.idempotency_index: dict[str, Transaction] = {}
        self.transaction_types: dict[str, TransactionType] = {
            ADMIN_CREDIT.id: ADMIN_CREDIT,
            ADMIN_DEBIT.id: ADMIN_DEBIT,
        }
        self._write_lock = asyncio.Lock()
        if seed:
            self._seed_data()

    def _seed_data(self):
        self.add_account(Account(
            id="golfer-0001", email="sam.fairway@example.com",
            first_name="Sam", last_name="Fairway",
            golflink_no="2031500042", token_balance=100,
        ))
        self.add_account(Account(
            id="golfer-0002", email="alex.bunker@example.com",
            first_name="Alex", last_name="Bunker",
            golflink_no="0412300007", token_balance=0,
        ))

    def add_account(self, account: Account) -> Account:
        self.accounts[account.golflink_no] = account
        self.transactions.setdefault(account.id, [])
        return account

    def _account_by_id(self, account_id: str) -> Optional[Account]:
        for account in self.accounts.values():
            if account.id == account_id:
                return account
        return None

    def _ordered(self, account_id: str) -> list[Transaction]:
        # newest insertion wins ties on equal timestamps
        entries = list(reversed(self.transactions.get(account_id, [])))
        return sorted(entries, key=lambda t: t.timestamp, reverse=True)

    async def get_account(self, identifier: str) -> Optional[Account]:
        return self.accounts.get(identifier)

    async def list_transactions(self, account: Account) -> list[Transaction]:
        return self._ordered(account.id)

    async def add_transaction(self, transaction: Transaction, expected_balance: int) -> Transaction:
        async with self._write_lock:
            existing = self.idempotency_index.get(transaction.idempotency_key) if transaction.idempotency_key else None
            if existing:
                if not same_request(existing, transaction):
                    raise IdempotencyKeyReused(transaction.idempotency_key)
                return existing

            account = self._account_by_id(transaction.account_id)
            if account is None:
                raise LookupError(f"Account {transaction.account_id} not found")

            actual = latest_balance(self._ordered(account.id), account)
            if actual != expected_balance:
                raise BalanceConflict(expected_balance, actual)

            self.transactions[account.id].append(transaction)
            if transaction.idempotency_key:
                self.idempotency_index[transaction.idempotency_key] = transaction
            return transaction

    async def find_by_idempotency_key(self, key: str) -> Optional[Transaction]:
        return self.idempotency_index.get(key)

    async def list_transaction_types(self) -> list[TransactionType]:
        return list(self.transaction_types.values())
