from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


class Direction(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TransactionType(LedgerModel):
    id: str
    name: str
    short_description: str = ""
    direction: Direction = Field(..., alias="debitOrCredit")

    model_config = ConfigDict(frozen=True)


ADMIN_CREDIT = TransactionType(
    id="admin-credit", name="Admin Credit",
    short_description="Manual credit by admin", direction=Direction.CREDIT,
)
ADMIN_DEBIT = TransactionType(
    id="admin-debit", name="Admin Debit",
    short_description="Manual debit by admin", direction=Direction.DEBIT,
)


class Account(LedgerModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    golflink_no: str
    token_balance: int = 0

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Transaction(LedgerModel):
    id: UUID
    account_id: str
    account_email: str = ""
    amount: int = Field(..., alias="transactionValue")
    direction: Direction
    available_tokens: int
    transaction_type: TransactionType
    note: Optional[str] = Field(default=None, alias="transactionNotes")
    idempotency_key: Optional[str] = None
    timestamp: datetime = Field(..., alias="transactionDate")

    model_config = ConfigDict(frozen=True)

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction == Direction.CREDIT else -self.amount


class AdjustTokensRequest(LedgerModel):
    transaction_type_id: str
    amount: int = Field(..., gt=0, strict=True)
    note: Optional[str] = None
    idempotency_key: Optional[str] = Field(default=None, description="Unique key to prevent double application")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "transactionTypeId": "admin-credit",
            "amount": 25,
            "note": "Course closure compensation",
            "idempotencyKey": "credit-2031500042-2026-10-19",
        }
    })


class AdjustTokensResponse(LedgerModel):
    transaction: Transaction
    balance: int
    replayed: bool = False
    audit_recorded: bool = True
    message: str


class AccountSummary(LedgerModel):
    account: Optional[Account] = None
    balance: Optional[int] = None
    transactions: list[Transaction] = Field(default_factory=list)
