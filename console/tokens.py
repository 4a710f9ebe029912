import logging
from uuid import uuid4

from access.directory import AdminDirectory
from access.gate import AuthorizationContext, AuthorizationGate, Operation
from access.service import actor_for, resolve_acting_admin
from audit.models import AuditAction, AuditTarget
from audit.service import AuditTrailService
from ledger.models import (
    Account,
    AccountSummary,
    AdjustTokensRequest,
    AdjustTokensResponse,
    Direction,
    Transaction,
    TransactionType,
)
from ledger.service import (
    IdempotencyConflictError,
    InvalidAmountError,
    LedgerService,
    StaleBalanceError,
    UnknownTransactionTypeError,
    check_replay,
)

logger = logging.getLogger(__name__)


class ConcurrentModificationError(Exception):
    def __init__(self, identifier: str, attempts: int):
        super().__init__(
            f"Balance for {identifier} kept changing; gave up after {attempts} attempts. Refresh and retry."
        )
        self.identifier = identifier
        self.attempts = attempts


AUDIT_ACTIONS = {
    Direction.CREDIT: AuditAction.ADMIN_CREDIT,
    Direction.DEBIT: AuditAction.ADMIN_DEBIT,
}
OPERATIONS = {
    Direction.CREDIT: Operation.CREDIT_TOKENS,
    Direction.DEBIT: Operation.DEBIT_TOKENS,
}


def account_target(account: Account) -> AuditTarget:
    return AuditTarget(type="golfer", id=account.id, name=account.display_name, email=account.email)


class TokenService:
    """Authorized, audited token adjustments.

    Flow: authorize -> stage audit entry -> append (optimistic, retried on a
    stale balance) -> commit audit entry.
    """

    def __init__(
        self,
        ledger: LedgerService,
        audit: AuditTrailService,
        directory: AdminDirectory,
        gate: AuthorizationGate,
        max_append_attempts: int = 3,
    ):
        self.ledger = ledger
        self.audit = audit
        self.directory = directory
        self.gate = gate
        self.max_append_attempts = max_append_attempts

    async def lookup(self, requesting_email: str, identifier: str) -> AccountSummary:
        await resolve_acting_admin(
            self.directory, self.gate, requesting_email,
            Operation.LOOKUP_ACCOUNT, AuthorizationContext(account_identifier=identifier),
        )
        return await self.ledger.get_summary(identifier)

    async def transaction_types(self) -> list[TransactionType]:
        return await self.ledger.admin_types()

    async def adjust(self, requesting_email: str, identifier: str, request: AdjustTokensRequest) -> AdjustTokensResponse:
        transaction_type = await self.ledger.get_transaction_type(request.transaction_type_id)
        admin = await resolve_acting_admin(
            self.directory, self.gate, requesting_email,
            OPERATIONS[transaction_type.direction], AuthorizationContext(account_identifier=identifier),
        )
        account = await self.ledger.require_account(identifier)
        key = request.idempotency_key or str(uuid4())

        existing = await self.ledger.find_by_idempotency_key(key)
        if existing:
            check_replay(existing, account, transaction_type, request.amount)
            return AdjustTokensResponse(
                transaction=existing,
                balance=await self.ledger.current_balance(account),
                replayed=True,
                audit_recorded=not await self.audit.is_staged(key),
                message="Adjustment already applied (idempotent return)",
            )

        result = await self.audit.audited(
            AUDIT_ACTIONS[transaction_type.direction],
            actor_for(admin),
            account_target(account),
            {"amount": request.amount, "golflinkNo": account.golflink_no, "transactionType": transaction_type.name},
            lambda: self._append_with_retry(account, transaction_type, request, key),
            describe=lambda tx: {"transactionId": str(tx.id), "newBalance": tx.available_tokens},
            correlation_id=key,
            definite_failures=(
                ConcurrentModificationError, IdempotencyConflictError,
                InvalidAmountError, UnknownTransactionTypeError, LookupError,
            ),
        )
        transaction = result.value
        if not result.recorded:
            logger.error(
                "Ledger write %s for account %s succeeded without an audit entry; reconciliation pending",
                transaction.id, account.id,
            )
        return AdjustTokensResponse(
            transaction=transaction,
            balance=transaction.available_tokens,
            audit_recorded=result.recorded,
            message=f"{transaction_type.name} of {request.amount} tokens applied",
        )

    async def _append_with_retry(
        self, account: Account, transaction_type: TransactionType, request: AdjustTokensRequest, key: str,
    ) -> Transaction:
        for attempt in range(1, self.max_append_attempts + 1):
            balance = await self.ledger.current_balance(account)
            try:
                return await self.ledger.append(
                    account, transaction_type, request.amount, balance,
                    idempotency_key=key, note=request.note,
                )
            except StaleBalanceError as e:
                logger.warning(
                    "Stale balance for account %s (attempt %s/%s): %s",
                    account.id, attempt, self.max_append_attempts, e,
                )
        raise ConcurrentModificationError(account.golflink_no, self.max_append_attempts)
