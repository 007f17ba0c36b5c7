"""Pydantic schemas and cursor utilities for the lt_ledger API."""

import base64
import json
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from src.lt_common.enums import BetType, LedgerEntryType, OwnerType, ReferenceType
from src.lt_common.money import money_to_display
from src.lt_ledger.domain.models import (
    Account,
    BalanceSummary,
    EntryCursor,
    LedgerEntry,
    TransferResult,
)

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(cursor: EntryCursor) -> str:
    """Encode a (business_date, id) keyset position into an opaque Base64 string."""
    payload = json.dumps({"d": cursor.business_date.isoformat(), "id": cursor.id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> EntryCursor | None:
    """Decode a cursor string. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return EntryCursor(
            business_date=date.fromisoformat(payload["d"]), id=int(payload["id"])
        )
    except Exception:
        return None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class OpenAccountRequest(BaseModel):
    owner_type: OwnerType
    owner_id: str = Field(..., min_length=1)
    currency: str | None = Field(None, min_length=3, max_length=3)


class AddEntryRequest(BaseModel):
    entry_type: LedgerEntryType
    amount: Decimal = Field(..., description="Signed: positive=credit, negative=debit")
    reference_type: ReferenceType | None = None
    reference_id: str | None = None
    idempotency_key: str | None = Field(None, max_length=128)
    note: str | None = None
    business_date: date | None = None


class ReverseEntryRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    idempotency_key: str | None = Field(None, max_length=128)
    business_date: date | None = None


class TransferRequest(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: Decimal = Field(..., gt=0)
    doc_number: str = Field(..., min_length=1)
    doc_date: date
    idempotency_key: str | None = Field(None, max_length=128)


class MovementRequest(BaseModel):
    movement_type: LedgerEntryType = Field(..., description="PAYMENT or COLLECTION")
    amount: Decimal = Field(..., gt=0)
    reference_id: str | None = None
    idempotency_key: str | None = Field(None, max_length=128)
    note: str | None = None
    business_date: date | None = None


class BankDepositRequest(BaseModel):
    doc_number: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    deposit_date: date
    bank_name: str | None = None
    idempotency_key: str | None = Field(None, max_length=128)


class SaleLineRequest(BaseModel):
    bet_id: str
    lottery_id: str
    bet_type: BetType
    multiplier: Decimal = Field(..., ge=0)
    stake: Decimal = Field(..., gt=0)


class SaleRequest(BaseModel):
    ticket_id: str
    seller_id: str | None = Field(None, description="Loads the seller's policy chain")
    lines: list[SaleLineRequest] = Field(..., min_length=1)
    business_date: date | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    id: str
    owner_type: str
    owner_id: str
    currency: str
    balance: Decimal
    balance_display: str
    is_active: bool

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            owner_type=account.owner_type,
            owner_id=account.owner_id,
            currency=account.currency,
            balance=account.balance,
            balance_display=money_to_display(account.balance, account.currency),
            is_active=account.is_active,
        )


class LedgerEntryItem(BaseModel):
    id: int
    account_id: str
    entry_type: str
    amount: Decimal
    amount_display: str
    business_date: date
    reference_type: str | None
    reference_id: str | None
    idempotency_key: str | None
    reversal_of: int | None
    note: str | None
    created_by: str
    created_at: str  # ISO8601 string

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "LedgerEntryItem":
        return cls(
            id=entry.id,
            account_id=entry.account_id,
            entry_type=entry.entry_type,
            amount=entry.amount,
            amount_display=money_to_display(entry.amount),
            business_date=entry.business_date,
            reference_type=entry.reference_type,
            reference_id=entry.reference_id,
            idempotency_key=entry.idempotency_key,
            reversal_of=entry.reversal_of,
            note=entry.note,
            created_by=entry.created_by,
            created_at=entry.created_at.isoformat() if entry.created_at else "",
        )


class EntryPage(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool


class TransferResponse(BaseModel):
    document_id: str
    doc_number: str
    amount: Decimal
    debit: LedgerEntryItem
    credit: LedgerEntryItem
    replayed: bool

    @classmethod
    def from_result(cls, result: TransferResult) -> "TransferResponse":
        return cls(
            document_id=result.document.id,
            doc_number=result.document.doc_number,
            amount=result.document.amount,
            debit=LedgerEntryItem.from_entry(result.debit),
            credit=LedgerEntryItem.from_entry(result.credit),
            replayed=result.replayed,
        )


class BalanceSummaryResponse(BaseModel):
    account_id: str
    balance: Decimal
    derived_balance: Decimal
    total_debits: Decimal
    total_credits: Decimal
    entry_count: int
    is_consistent: bool

    @classmethod
    def from_summary(cls, summary: BalanceSummary) -> "BalanceSummaryResponse":
        return cls(
            account_id=summary.account_id,
            balance=summary.cached_balance,
            derived_balance=summary.derived_balance,
            total_debits=summary.total_debits,
            total_credits=summary.total_credits,
            entry_count=summary.entry_count,
            is_consistent=summary.is_consistent,
        )
