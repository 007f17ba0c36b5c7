"""LedgerRepository — SQL implementation of LedgerRepositoryProtocol.

Balance changes are atomic `UPDATE ... RETURNING` statements applied on rows
already locked with `SELECT ... FOR UPDATE` by the application service.
Idempotency is backed by unique constraints: (account_id, idempotency_key)
on ledger_entries, idempotency_key on payment_documents, and reversal_of
on ledger_entries.

Transaction ownership: the CALLER (application service) commits or rolls back.
"""

from decimal import Decimal

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_common.errors import AccountNotFoundError, InternalError
from src.lt_common.money import ZERO
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

_ACCOUNT_COLUMNS = "id, owner_type, owner_id, currency, balance, is_active, created_at"
_ENTRY_COLUMNS = (
    "id, account_id, entry_type, amount, business_date, created_by, "
    "reference_type, reference_id, idempotency_key, reversal_of, note, created_at"
)

# ---------------------------------------------------------------------------
# SQL: accounts
# ---------------------------------------------------------------------------

# Partial unique index accounts_one_active_per_owner backs the ON CONFLICT.
_INSERT_ACCOUNT_IF_ABSENT_SQL = text("""
    INSERT INTO accounts (owner_type, owner_id, currency)
    VALUES (:owner_type, :owner_id, :currency)
    ON CONFLICT (owner_type, owner_id, currency) WHERE is_active
    DO NOTHING
""")

_GET_ACTIVE_ACCOUNT_BY_OWNER_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts
    WHERE owner_type = :owner_type
      AND owner_id = :owner_id
      AND currency = :currency
      AND is_active
""")

_GET_ACCOUNT_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts
    WHERE id = :account_id
""")

_LOCK_ACCOUNTS_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts
    WHERE id IN :account_ids
    ORDER BY id
    FOR UPDATE
""").bindparams(bindparam("account_ids", expanding=True))

_APPLY_BALANCE_DELTA_SQL = text(f"""
    UPDATE accounts
    SET balance = balance + :delta,
        updated_at = NOW()
    WHERE id = :account_id
    RETURNING {_ACCOUNT_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: ledger entries
# ---------------------------------------------------------------------------

_INSERT_ENTRY_SQL = text(f"""
    INSERT INTO ledger_entries
        (account_id, entry_type, amount, business_date, created_by,
         reference_type, reference_id, idempotency_key, reversal_of, note)
    VALUES
        (:account_id, :entry_type, :amount, :business_date, :created_by,
         :reference_type, :reference_id, :idempotency_key, :reversal_of, :note)
    RETURNING {_ENTRY_COLUMNS}
""")

_FIND_ENTRY_BY_KEY_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE account_id = :account_id AND idempotency_key = :idempotency_key
""")

_GET_ENTRY_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE id = :entry_id
""")

_FIND_REVERSAL_OF_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE reversal_of = :entry_id
""")

_LIST_DOCUMENT_ENTRIES_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE reference_type = 'PAYMENT_DOCUMENT' AND reference_id = :document_id
      AND entry_type = 'TRANSFER'
    ORDER BY amount
""")

# Keyset pagination on (business_date, id). NULL filters mean "any".
_LIST_ENTRIES_DESC_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE account_id = :account_id
      AND (CAST(:types AS TEXT[]) IS NULL OR entry_type = ANY(CAST(:types AS TEXT[])))
      AND (CAST(:date_from AS DATE) IS NULL OR business_date >= :date_from)
      AND (CAST(:date_to AS DATE) IS NULL OR business_date <= :date_to)
      AND (CAST(:reference_type AS TEXT) IS NULL OR reference_type = :reference_type)
      AND (CAST(:cursor_date AS DATE) IS NULL
           OR (business_date, id) < (:cursor_date, :cursor_id))
    ORDER BY business_date DESC, id DESC
    LIMIT :limit
""")

_LIST_ENTRIES_ASC_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE account_id = :account_id
      AND (CAST(:types AS TEXT[]) IS NULL OR entry_type = ANY(CAST(:types AS TEXT[])))
      AND (CAST(:date_from AS DATE) IS NULL OR business_date >= :date_from)
      AND (CAST(:date_to AS DATE) IS NULL OR business_date <= :date_to)
      AND (CAST(:reference_type AS TEXT) IS NULL OR reference_type = :reference_type)
      AND (CAST(:cursor_date AS DATE) IS NULL
           OR (business_date, id) > (:cursor_date, :cursor_id))
    ORDER BY business_date ASC, id ASC
    LIMIT :limit
""")

_SUMMARIZE_SQL = text("""
    SELECT COALESCE(SUM(amount), 0)                          AS derived_balance,
           COALESCE(SUM(-amount) FILTER (WHERE amount < 0), 0) AS total_debits,
           COALESCE(SUM(amount) FILTER (WHERE amount > 0), 0)  AS total_credits,
           COUNT(*)                                           AS entry_count
    FROM ledger_entries
    WHERE account_id = :account_id
""")

# ---------------------------------------------------------------------------
# SQL: documents
# ---------------------------------------------------------------------------

_DOCUMENT_COLUMNS = (
    "id, from_account_id, to_account_id, amount, doc_number, doc_date, "
    "created_by, idempotency_key, created_at"
)

_FIND_DOCUMENT_BY_KEY_SQL = text(f"""
    SELECT {_DOCUMENT_COLUMNS}
    FROM payment_documents
    WHERE idempotency_key = :idempotency_key
""")

_INSERT_DOCUMENT_SQL = text(f"""
    INSERT INTO payment_documents
        (id, from_account_id, to_account_id, amount, doc_number, doc_date,
         created_by, idempotency_key)
    VALUES
        (:id, :from_account_id, :to_account_id, :amount, :doc_number, :doc_date,
         :created_by, :idempotency_key)
    RETURNING {_DOCUMENT_COLUMNS}
""")

_DEPOSIT_COLUMNS = (
    "id, account_id, doc_number, bank_name, amount, deposit_date, created_by, created_at"
)

_INSERT_DEPOSIT_SQL = text(f"""
    INSERT INTO bank_deposits
        (id, account_id, doc_number, bank_name, amount, deposit_date, created_by)
    VALUES
        (:id, :account_id, :doc_number, :bank_name, :amount, :deposit_date, :created_by)
    RETURNING {_DEPOSIT_COLUMNS}
""")

_GET_DEPOSIT_SQL = text(f"""
    SELECT {_DEPOSIT_COLUMNS}
    FROM bank_deposits
    WHERE id = :deposit_id
""")

_SALE_COMMISSION_COLUMNS = "account_id, ticket_id, bet_id, stake, rate, amount, origin, rule_id"

_INSERT_SALE_COMMISSION_SQL = text(f"""
    INSERT INTO sale_commissions ({_SALE_COMMISSION_COLUMNS})
    VALUES (:account_id, :ticket_id, :bet_id, :stake, :rate, :amount, :origin, :rule_id)
""")

_LIST_SALE_COMMISSIONS_SQL = text(f"""
    SELECT {_SALE_COMMISSION_COLUMNS}
    FROM sale_commissions
    WHERE account_id = :account_id AND ticket_id = :ticket_id
    ORDER BY bet_id
""")


def _row_to_account(row: object) -> Account:
    return Account(
        id=str(row.id),  # type: ignore[attr-defined]
        owner_type=row.owner_type,  # type: ignore[attr-defined]
        owner_id=row.owner_id,  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        balance=Decimal(row.balance),  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_entry(row: object) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        account_id=str(row.account_id),  # type: ignore[attr-defined]
        entry_type=row.entry_type,  # type: ignore[attr-defined]
        amount=Decimal(row.amount),  # type: ignore[attr-defined]
        business_date=row.business_date,  # type: ignore[attr-defined]
        created_by=row.created_by,  # type: ignore[attr-defined]
        reference_type=row.reference_type,  # type: ignore[attr-defined]
        reference_id=row.reference_id,  # type: ignore[attr-defined]
        idempotency_key=row.idempotency_key,  # type: ignore[attr-defined]
        reversal_of=row.reversal_of,  # type: ignore[attr-defined]
        note=row.note,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_document(row: object) -> PaymentDocument:
    return PaymentDocument(
        id=str(row.id),  # type: ignore[attr-defined]
        from_account_id=str(row.from_account_id),  # type: ignore[attr-defined]
        to_account_id=str(row.to_account_id),  # type: ignore[attr-defined]
        amount=Decimal(row.amount),  # type: ignore[attr-defined]
        doc_number=row.doc_number,  # type: ignore[attr-defined]
        doc_date=row.doc_date,  # type: ignore[attr-defined]
        created_by=row.created_by,  # type: ignore[attr-defined]
        idempotency_key=row.idempotency_key,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_deposit(row: object) -> BankDeposit:
    return BankDeposit(
        id=str(row.id),  # type: ignore[attr-defined]
        account_id=str(row.account_id),  # type: ignore[attr-defined]
        doc_number=row.doc_number,  # type: ignore[attr-defined]
        bank_name=row.bank_name,  # type: ignore[attr-defined]
        amount=Decimal(row.amount),  # type: ignore[attr-defined]
        deposit_date=row.deposit_date,  # type: ignore[attr-defined]
        created_by=row.created_by,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )



def _row_to_sale_commission(row: object) -> SaleCommission:
    return SaleCommission(
        account_id=str(row.account_id),  # type: ignore[attr-defined]
        ticket_id=row.ticket_id,  # type: ignore[attr-defined]
        bet_id=row.bet_id,  # type: ignore[attr-defined]
        stake=Decimal(row.stake),  # type: ignore[attr-defined]
        rate=Decimal(row.rate),  # type: ignore[attr-defined]
        amount=Decimal(row.amount),  # type: ignore[attr-defined]
        origin=row.origin,  # type: ignore[attr-defined]
        rule_id=row.rule_id,  # type: ignore[attr-defined]
    )


class LedgerRepository:
    """Concrete repository; every statement runs on the caller's transaction."""

    async def get_or_create_account(
        self, db: AsyncSession, owner_type: str, owner_id: str, currency: str
    ) -> Account:
        params = {"owner_type": owner_type, "owner_id": owner_id, "currency": currency}
        await db.execute(_INSERT_ACCOUNT_IF_ABSENT_SQL, params)
        result = await db.execute(_GET_ACTIVE_ACCOUNT_BY_OWNER_SQL, params)
        row = result.fetchone()
        if row is None:
            raise InternalError(
                f"Account upsert returned no row for {owner_type}:{owner_id}:{currency}"
            )
        return _row_to_account(row)

    async def get_account(self, db: AsyncSession, account_id: str) -> Account | None:
        result = await db.execute(_GET_ACCOUNT_SQL, {"account_id": account_id})
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def lock_accounts(
        self, db: AsyncSession, account_ids: list[str]
    ) -> dict[str, Account]:
        result = await db.execute(
            _LOCK_ACCOUNTS_SQL, {"account_ids": sorted(set(account_ids))}
        )
        accounts = [_row_to_account(row) for row in result.fetchall()]
        return {account.id: account for account in accounts}

    async def find_entry_by_key(
        self, db: AsyncSession, account_id: str, idempotency_key: str
    ) -> LedgerEntry | None:
        result = await db.execute(
            _FIND_ENTRY_BY_KEY_SQL,
            {"account_id": account_id, "idempotency_key": idempotency_key},
        )
        row = result.fetchone()
        return _row_to_entry(row) if row else None

    async def get_entry(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None:
        result = await db.execute(_GET_ENTRY_SQL, {"entry_id": entry_id})
        row = result.fetchone()
        return _row_to_entry(row) if row else None

    async def find_reversal_of(
        self, db: AsyncSession, entry_id: int
    ) -> LedgerEntry | None:
        result = await db.execute(_FIND_REVERSAL_OF_SQL, {"entry_id": entry_id})
        row = result.fetchone()
        return _row_to_entry(row) if row else None

    async def insert_entry(self, db: AsyncSession, entry: NewEntry) -> LedgerEntry:
        result = await db.execute(
            _INSERT_ENTRY_SQL,
            {
                "account_id": entry.account_id,
                "entry_type": entry.entry_type.value,
                "amount": entry.amount,
                "business_date": entry.business_date,
                "created_by": entry.created_by,
                "reference_type": entry.reference_type,
                "reference_id": entry.reference_id,
                "idempotency_key": entry.idempotency_key,
                "reversal_of": entry.reversal_of,
                "note": entry.note,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Ledger insert returned no rows")
        return _row_to_entry(row)

    async def apply_balance_delta(
        self, db: AsyncSession, account_id: str, delta: Decimal
    ) -> Account:
        result = await db.execute(
            _APPLY_BALANCE_DELTA_SQL, {"account_id": account_id, "delta": delta}
        )
        row = result.fetchone()
        if row is None:
            raise AccountNotFoundError(account_id)
        return _row_to_account(row)

    async def find_payment_document_by_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> PaymentDocument | None:
        result = await db.execute(
            _FIND_DOCUMENT_BY_KEY_SQL, {"idempotency_key": idempotency_key}
        )
        row = result.fetchone()
        return _row_to_document(row) if row else None

    async def insert_payment_document(
        self, db: AsyncSession, document: PaymentDocument
    ) -> PaymentDocument:
        result = await db.execute(
            _INSERT_DOCUMENT_SQL,
            {
                "id": document.id,
                "from_account_id": document.from_account_id,
                "to_account_id": document.to_account_id,
                "amount": document.amount,
                "doc_number": document.doc_number,
                "doc_date": document.doc_date,
                "created_by": document.created_by,
                "idempotency_key": document.idempotency_key,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Payment document insert returned no rows")
        return _row_to_document(row)

    async def list_document_entries(
        self, db: AsyncSession, document_id: str
    ) -> list[LedgerEntry]:
        result = await db.execute(_LIST_DOCUMENT_ENTRIES_SQL, {"document_id": document_id})
        return [_row_to_entry(row) for row in result.fetchall()]

    async def insert_bank_deposit(
        self, db: AsyncSession, deposit: BankDeposit
    ) -> BankDeposit:
        result = await db.execute(
            _INSERT_DEPOSIT_SQL,
            {
                "id": deposit.id,
                "account_id": deposit.account_id,
                "doc_number": deposit.doc_number,
                "bank_name": deposit.bank_name,
                "amount": deposit.amount,
                "deposit_date": deposit.deposit_date,
                "created_by": deposit.created_by,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Bank deposit insert returned no rows")
        return _row_to_deposit(row)

    async def get_bank_deposit(
        self, db: AsyncSession, deposit_id: str
    ) -> BankDeposit | None:
        result = await db.execute(_GET_DEPOSIT_SQL, {"deposit_id": deposit_id})
        row = result.fetchone()
        return _row_to_deposit(row) if row else None

    async def insert_sale_commissions(
        self, db: AsyncSession, commissions: list[SaleCommission]
    ) -> None:
        for c in commissions:
            await db.execute(
                _INSERT_SALE_COMMISSION_SQL,
                {
                    "account_id": c.account_id,
                    "ticket_id": c.ticket_id,
                    "bet_id": c.bet_id,
                    "stake": c.stake,
                    "rate": c.rate,
                    "amount": c.amount,
                    "origin": c.origin,
                    "rule_id": c.rule_id,
                },
            )

    async def list_sale_commissions(
        self, db: AsyncSession, account_id: str, ticket_id: str
    ) -> list[SaleCommission]:
        result = await db.execute(
            _LIST_SALE_COMMISSIONS_SQL, {"account_id": account_id, "ticket_id": ticket_id}
        )
        return [_row_to_sale_commission(row) for row in result.fetchall()]

    async def list_entries(
        self,
        db: AsyncSession,
        account_id: str,
        filters: EntryFilter,
        cursor: EntryCursor | None,
        limit: int,
    ) -> list[LedgerEntry]:
        sql = _LIST_ENTRIES_DESC_SQL if filters.descending else _LIST_ENTRIES_ASC_SQL
        result = await db.execute(
            sql,
            {
                "account_id": account_id,
                "types": filters.entry_types or None,
                "date_from": filters.date_from,
                "date_to": filters.date_to,
                "reference_type": filters.reference_type,
                "cursor_date": cursor.business_date if cursor else None,
                "cursor_id": cursor.id if cursor else None,
                "limit": limit,
            },
        )
        return [_row_to_entry(row) for row in result.fetchall()]

    async def summarize(self, db: AsyncSession, account: Account) -> BalanceSummary:
        result = await db.execute(_SUMMARIZE_SQL, {"account_id": account.id})
        row = result.fetchone()
        if row is None:
            return BalanceSummary(account.id, account.balance, ZERO, ZERO, ZERO, 0)
        return BalanceSummary(
            account_id=account.id,
            cached_balance=account.balance,
            derived_balance=Decimal(row.derived_balance),
            total_debits=Decimal(row.total_debits),
            total_credits=Decimal(row.total_credits),
            entry_count=row.entry_count,
        )
