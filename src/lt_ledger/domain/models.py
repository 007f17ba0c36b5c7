"""Domain models for lt_ledger — pure dataclasses, no SQLAlchemy dependency.

Sign convention: an entry's amount is signed from the owner's side.
Positive = credit (operator owes the owner more), negative = debit.

    SALE          -   owner holds the operator's sale money
    COMMISSION    +   owner earned commission
    PAYOUT        +   owner paid winners on the operator's behalf
    PAYMENT       -   operator paid the owner
    COLLECTION    +   operator collected from the owner
    BANK_DEPOSIT  +   owner deposited into the operator's bank
    TRANSFER      -/+ one leg per account
    REVERSAL      exact negation of the reversed entry
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from src.lt_common.enums import LedgerEntryType, OwnerType
from src.lt_common.money import ZERO


@dataclass
class Account:
    id: str
    owner_type: str                  # OwnerType value
    owner_id: str
    currency: str
    balance: Decimal                 # cached projection of the entries
    is_active: bool = True
    created_at: datetime | None = None

    @property
    def owner(self) -> tuple[OwnerType, str]:
        return OwnerType(self.owner_type), self.owner_id


@dataclass
class LedgerEntry:
    id: int                          # BIGSERIAL
    account_id: str
    entry_type: str                  # LedgerEntryType value
    amount: Decimal                  # signed, see module docstring
    business_date: date
    created_by: str
    reference_type: str | None = None
    reference_id: str | None = None
    idempotency_key: str | None = None
    reversal_of: int | None = None
    note: str | None = None
    created_at: datetime | None = None


@dataclass
class NewEntry:
    """Insert payload; the repository assigns id and created_at."""

    account_id: str
    entry_type: LedgerEntryType
    amount: Decimal
    business_date: date
    created_by: str
    reference_type: str | None = None
    reference_id: str | None = None
    idempotency_key: str | None = None
    reversal_of: int | None = None
    note: str | None = None


@dataclass
class PaymentDocument:
    id: str
    from_account_id: str
    to_account_id: str
    amount: Decimal                  # always positive
    doc_number: str
    doc_date: date
    created_by: str
    idempotency_key: str | None = None
    created_at: datetime | None = None


@dataclass
class BankDeposit:
    id: str
    account_id: str
    doc_number: str
    bank_name: str | None
    amount: Decimal                  # always positive
    deposit_date: date
    created_by: str
    created_at: datetime | None = None


@dataclass
class TransferResult:
    document: PaymentDocument
    debit: LedgerEntry               # negative leg on the source account
    credit: LedgerEntry              # positive leg on the target account
    replayed: bool = False


@dataclass
class EntryFilter:
    entry_types: list[str] | None = None
    date_from: date | None = None
    date_to: date | None = None
    reference_type: str | None = None
    descending: bool = True


@dataclass
class EntryCursor:
    """Keyset position: the last (business_date, id) already returned."""

    business_date: date
    id: int


@dataclass
class BalanceSummary:
    account_id: str
    cached_balance: Decimal
    derived_balance: Decimal         # Σ amount over all entries
    total_debits: Decimal            # Σ |amount| of negative entries
    total_credits: Decimal           # Σ amount of positive entries
    entry_count: int

    @property
    def is_consistent(self) -> bool:
        return self.cached_balance == self.derived_balance


@dataclass
class SaleLine:
    """One bet of a ticket being posted to the ledger."""

    bet_id: str
    lottery_id: str
    bet_type: str                    # BetType value
    multiplier: Decimal
    stake: Decimal


@dataclass
class SaleCommission:
    """Commission resolved for one bet when its ticket was posted."""

    account_id: str
    ticket_id: str
    bet_id: str
    stake: Decimal
    rate: Decimal
    amount: Decimal
    origin: str | None = None        # CommissionOrigin value
    rule_id: str | None = None


@dataclass
class SalePosting:
    sale_entry: LedgerEntry
    commission_entry: LedgerEntry | None
    # bet_id -> (rate, amount, origin, rule_id) snapshot taken at sale
    commission_snapshots: dict[str, tuple[Decimal, Decimal, str | None, str | None]] = field(
        default_factory=dict
    )
    total_commission: Decimal = ZERO
    replayed: bool = False
