"""Repository Protocols — dependency inversion for testability.

Unit tests inject an in-memory implementation that conforms to these
Protocols. The infrastructure layer provides the SQL implementation.

Every method runs on the caller's session; the application service owns
commit/rollback.
"""

from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_common.enums import OwnerType
from src.lt_ledger.domain.models import (
    Account,
    BalanceSummary,
    BankDeposit,
    EntryCursor,
    EntryFilter,
    LedgerEntry,
    NewEntry,
    PaymentDocument,
    SaleCommission,
)


class LedgerRepositoryProtocol(Protocol):
    async def get_or_create_account(
        self, db: AsyncSession, owner_type: str, owner_id: str, currency: str
    ) -> Account: ...

    async def get_account(self, db: AsyncSession, account_id: str) -> Account | None: ...

    async def lock_accounts(
        self, db: AsyncSession, account_ids: list[str]
    ) -> dict[str, Account]:
        """SELECT ... FOR UPDATE in ascending id order. Missing ids are absent."""
        ...

    async def find_entry_by_key(
        self, db: AsyncSession, account_id: str, idempotency_key: str
    ) -> LedgerEntry | None: ...

    async def get_entry(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None: ...

    async def find_reversal_of(
        self, db: AsyncSession, entry_id: int
    ) -> LedgerEntry | None: ...

    async def insert_entry(self, db: AsyncSession, entry: NewEntry) -> LedgerEntry: ...

    async def apply_balance_delta(
        self, db: AsyncSession, account_id: str, delta: Decimal
    ) -> Account: ...

    async def find_payment_document_by_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> PaymentDocument | None: ...

    async def insert_payment_document(
        self, db: AsyncSession, document: PaymentDocument
    ) -> PaymentDocument: ...

    async def list_document_entries(
        self, db: AsyncSession, document_id: str
    ) -> list[LedgerEntry]: ...

    async def insert_bank_deposit(
        self, db: AsyncSession, deposit: BankDeposit
    ) -> BankDeposit: ...

    async def get_bank_deposit(
        self, db: AsyncSession, deposit_id: str
    ) -> BankDeposit | None: ...

    async def insert_sale_commissions(
        self, db: AsyncSession, commissions: list[SaleCommission]
    ) -> None: ...

    async def list_sale_commissions(
        self, db: AsyncSession, account_id: str, ticket_id: str
    ) -> list[SaleCommission]: ...

    async def list_entries(
        self,
        db: AsyncSession,
        account_id: str,
        filters: EntryFilter,
        cursor: EntryCursor | None,
        limit: int,
    ) -> list[LedgerEntry]: ...

    async def summarize(
        self, db: AsyncSession, account: Account
    ) -> BalanceSummary: ...


class BalanceInvalidator(Protocol):
    """Drops cached derived balances for one owner after a ledger mutation."""

    async def invalidate_owner(self, owner_type: OwnerType, owner_id: str) -> None: ...
