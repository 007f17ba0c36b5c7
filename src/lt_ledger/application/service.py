"""LedgerService — idempotent postings over locked accounts.

Every mutation follows the same shape inside one transaction:
  1. lock the account row(s) FOR UPDATE (ascending id for transfers)
  2. look up the idempotency key; a replay returns the stored result
  3. insert entry rows and apply the same signed delta to accounts.balance
  4. commit, then best-effort cache invalidation and one audit record

A cash movement dated into an already-closed month discards that owner's
stored closings from the movement's month on, in the same transaction, so
the carry walk never serves a closing that predates the movement.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.lt_balance.domain.repository import StaleClosingStore
from src.lt_balance.infrastructure.persistence import BalanceRepository
from src.lt_commission.domain.models import CommissionContext, CommissionResult, PolicyChain
from src.lt_commission.domain.resolver import (
    resolve_outlet_commission,
    resolve_seller_commission,
)
from src.lt_common.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_safely
from src.lt_common.datetime_utils import month_start, utc_now
from src.lt_common.enums import BetType, LedgerEntryType, OwnerType, ReferenceType
from src.lt_common.errors import (
    AccountInactiveError,
    AccountNotFoundError,
    EntryAlreadyReversedError,
    IdempotencyConflictError,
    InternalError,
    InvalidAmountError,
    InvalidLedgerOperationError,
    LedgerEntryNotFoundError,
)
from src.lt_common.money import ZERO, quantize_money
from src.lt_ledger.application.schemas import (
    EntryPage,
    LedgerEntryItem,
    cursor_decode,
    cursor_encode,
)
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
    SaleLine,
    SalePosting,
    TransferResult,
)
from src.lt_ledger.domain.repository import BalanceInvalidator, LedgerRepositoryProtocol
from src.lt_ledger.infrastructure.persistence import LedgerRepository

logger = logging.getLogger(__name__)

_MOVEMENT_SIGNS = {
    LedgerEntryType.PAYMENT: Decimal(-1),
    LedgerEntryType.COLLECTION: Decimal(1),
}

# Entry types the balance aggregator counts as collected or paid
_CASH_MOVEMENTS = frozenset(
    t.value
    for t in (LedgerEntryType.PAYMENT, LedgerEntryType.COLLECTION, LedgerEntryType.BANK_DEPOSIT)
)


class LedgerService:
    def __init__(
        self,
        repo: LedgerRepositoryProtocol | None = None,
        invalidator: BalanceInvalidator | None = None,
        audit: AuditSink | None = None,
        default_currency: str | None = None,
        closings: StaleClosingStore | None = None,
    ) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository()
        self._invalidator = invalidator
        self._closings: StaleClosingStore = closings or BalanceRepository()
        self._audit: AuditSink = audit or LoggingAuditSink()
        self._default_currency = default_currency or settings.DEFAULT_CURRENCY

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_or_create_account(
        self,
        db: AsyncSession,
        owner_type: OwnerType,
        owner_id: str,
        currency: str | None = None,
    ) -> Account:
        try:
            account = await self._repo.get_or_create_account(
                db, owner_type.value, owner_id, currency or self._default_currency
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return account

    async def get_account(self, db: AsyncSession, account_id: str) -> Account:
        account = await self._repo.get_account(db, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def add_entry(
        self,
        db: AsyncSession,
        account_id: str,
        entry_type: LedgerEntryType,
        amount: Decimal,
        *,
        created_by: str,
        reference_type: str | None = None,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
        note: str | None = None,
        business_date: date | None = None,
    ) -> LedgerEntry:
        if entry_type == LedgerEntryType.REVERSAL:
            raise InvalidLedgerOperationError("Use reverse_entry to post a REVERSAL")
        if entry_type == LedgerEntryType.TRANSFER:
            raise InvalidLedgerOperationError("Use transfer to post a TRANSFER")
        try:
            account = await self._lock_one(db, account_id)
            value = self._money(amount, account.currency)
            if value == ZERO:
                raise InvalidAmountError("ledger entry amount must be non-zero")
            entry, created = await self._post_locked(
                db,
                account,
                NewEntry(
                    account_id=account.id,
                    entry_type=entry_type,
                    amount=value,
                    business_date=business_date or utc_now().date(),
                    created_by=created_by,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    idempotency_key=idempotency_key,
                    note=note,
                ),
            )
            if created and entry.entry_type in _CASH_MOVEMENTS:
                await self._discard_stale_closings(db, account, entry.business_date)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if created:
            await self._after_commit([account], self._entry_record("LEDGER_ENTRY_CREATED", entry))
        return entry

    async def reverse_entry(
        self,
        db: AsyncSession,
        account_id: str,
        entry_id: int,
        *,
        reason: str,
        created_by: str,
        idempotency_key: str | None = None,
        business_date: date | None = None,
    ) -> LedgerEntry:
        try:
            account = await self._lock_one(db, account_id)
            if idempotency_key is not None:
                replay = await self._repo.find_entry_by_key(db, account.id, idempotency_key)
                if replay is not None:
                    if replay.reversal_of != entry_id:
                        raise IdempotencyConflictError(idempotency_key)
                    await db.commit()
                    return replay
            original = await self._repo.get_entry(db, entry_id)
            if original is None or original.account_id != account.id:
                raise LedgerEntryNotFoundError(str(entry_id), account_id)
            if original.entry_type == LedgerEntryType.REVERSAL.value:
                raise InvalidLedgerOperationError(
                    f"Ledger entry {entry_id} is itself a reversal and cannot be reversed"
                )
            if await self._repo.find_reversal_of(db, original.id) is not None:
                raise EntryAlreadyReversedError(str(entry_id))
            reversal, _ = await self._post_locked(
                db,
                account,
                NewEntry(
                    account_id=account.id,
                    entry_type=LedgerEntryType.REVERSAL,
                    amount=-original.amount,
                    business_date=business_date or utc_now().date(),
                    created_by=created_by,
                    reference_type=ReferenceType.LEDGER_ENTRY.value,
                    reference_id=str(original.id),
                    idempotency_key=idempotency_key,
                    reversal_of=original.id,
                    note=reason,
                ),
            )
            if original.entry_type in _CASH_MOVEMENTS:
                await self._discard_stale_closings(db, account, reversal.business_date)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._after_commit(
            [account], self._entry_record("LEDGER_ENTRY_REVERSED", reversal)
        )
        return reversal

    async def transfer(
        self,
        db: AsyncSession,
        from_account_id: str,
        to_account_id: str,
        amount: Decimal,
        *,
        doc_number: str,
        doc_date: date,
        created_by: str,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        if from_account_id == to_account_id:
            raise InvalidLedgerOperationError("Transfer source and target must differ")
        try:
            locked = await self._repo.lock_accounts(db, [from_account_id, to_account_id])
            source = locked.get(from_account_id)
            target = locked.get(to_account_id)
            if source is None:
                raise AccountNotFoundError(from_account_id)
            if target is None:
                raise AccountNotFoundError(to_account_id)
            if source.currency != target.currency:
                raise InvalidLedgerOperationError(
                    f"Currency mismatch: {source.currency} -> {target.currency}"
                )
            value = self._money(amount, source.currency)
            if value <= ZERO:
                raise InvalidAmountError("transfer amount must be positive")

            if idempotency_key is not None:
                existing = await self._repo.find_payment_document_by_key(db, idempotency_key)
                if existing is not None:
                    result = await self._replayed_transfer(
                        db, existing, source.id, target.id, value, idempotency_key
                    )
                    await db.commit()
                    return result

            for account in (source, target):
                if not account.is_active:
                    raise AccountInactiveError(account.id)

            document = await self._repo.insert_payment_document(
                db,
                PaymentDocument(
                    id=str(uuid.uuid4()),
                    from_account_id=source.id,
                    to_account_id=target.id,
                    amount=value,
                    doc_number=doc_number,
                    doc_date=doc_date,
                    created_by=created_by,
                    idempotency_key=idempotency_key,
                ),
            )
            legs: list[LedgerEntry] = []
            for account, signed in ((source, -value), (target, value)):
                entry, _ = await self._post_locked(
                    db,
                    account,
                    NewEntry(
                        account_id=account.id,
                        entry_type=LedgerEntryType.TRANSFER,
                        amount=signed,
                        business_date=doc_date,
                        created_by=created_by,
                        reference_type=ReferenceType.PAYMENT_DOCUMENT.value,
                        reference_id=document.id,
                        note=f"Transfer doc {doc_number}",
                    ),
                )
                legs.append(entry)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._after_commit(
            [source, target],
            AuditRecord(
                action="LEDGER_TRANSFER",
                target_type="PAYMENT_DOCUMENT",
                target_id=document.id,
                actor=created_by,
                details={
                    "from": source.id,
                    "to": target.id,
                    "amount": str(value),
                    "doc_number": doc_number,
                },
            ),
        )
        return TransferResult(document=document, debit=legs[0], credit=legs[1])

    async def record_movement(
        self,
        db: AsyncSession,
        account_id: str,
        movement_type: LedgerEntryType,
        amount: Decimal,
        *,
        created_by: str,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
        note: str | None = None,
        business_date: date | None = None,
    ) -> LedgerEntry:
        """Post an operator PAYMENT to, or COLLECTION from, the owner.

        `amount` is the positive cash amount; the sign follows the movement.
        """
        sign = _MOVEMENT_SIGNS.get(movement_type)
        if sign is None:
            raise InvalidLedgerOperationError(
                f"Movement type must be PAYMENT or COLLECTION, got {movement_type.value}"
            )
        if amount <= ZERO:
            raise InvalidAmountError("movement amount must be positive")
        return await self.add_entry(
            db,
            account_id,
            movement_type,
            sign * amount,
            created_by=created_by,
            reference_type=ReferenceType.RECEIPT.value,
            reference_id=reference_id,
            idempotency_key=idempotency_key,
            note=note,
            business_date=business_date,
        )

    async def create_bank_deposit(
        self,
        db: AsyncSession,
        account_id: str,
        *,
        doc_number: str,
        amount: Decimal,
        deposit_date: date,
        created_by: str,
        bank_name: str | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[BankDeposit, LedgerEntry]:
        try:
            account = await self._lock_one(db, account_id)
            value = self._money(amount, account.currency)
            if value <= ZERO:
                raise InvalidAmountError("deposit amount must be positive")
            if idempotency_key is not None:
                replay = await self._repo.find_entry_by_key(db, account.id, idempotency_key)
                if replay is not None:
                    deposit = await self._repo.get_bank_deposit(db, replay.reference_id or "")
                    if deposit is None:
                        raise InternalError(
                            f"Deposit entry {replay.id} has no deposit record"
                        )
                    await db.commit()
                    return deposit, replay
            if not account.is_active:
                raise AccountInactiveError(account.id)
            deposit = await self._repo.insert_bank_deposit(
                db,
                BankDeposit(
                    id=str(uuid.uuid4()),
                    account_id=account.id,
                    doc_number=doc_number,
                    bank_name=bank_name,
                    amount=value,
                    deposit_date=deposit_date,
                    created_by=created_by,
                ),
            )
            entry, _ = await self._post_locked(
                db,
                account,
                NewEntry(
                    account_id=account.id,
                    entry_type=LedgerEntryType.BANK_DEPOSIT,
                    amount=value,
                    business_date=deposit_date,
                    created_by=created_by,
                    reference_type=ReferenceType.DEPOSIT_RECEIPT.value,
                    reference_id=deposit.id,
                    idempotency_key=idempotency_key,
                    note=f"Deposit {doc_number}" + (f" at {bank_name}" if bank_name else ""),
                ),
            )
            await self._discard_stale_closings(db, account, deposit_date)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._after_commit([account], self._entry_record("BANK_DEPOSIT_CREATED", entry))
        return deposit, entry

    async def post_sale(
        self,
        db: AsyncSession,
        account_id: str,
        *,
        ticket_id: str,
        lines: Sequence[SaleLine],
        chain: PolicyChain,
        created_by: str,
        business_date: date | None = None,
    ) -> SalePosting:
        """Post one ticket's SALE debit and COMMISSION credit exactly once.

        Commission is resolved per bet: the seller tier for SELLER accounts,
        the outlet tier for OUTLET accounts. The returned snapshots are what
        the caller stores on the bets.

        A retry for an already posted ticket returns the stored entries and
        per-bet snapshots; commission is never re-resolved, so a policy that
        changed in between cannot add or alter a COMMISSION entry. A retry
        whose bets or stakes differ from the posted ones is a conflict.
        """
        if not lines:
            raise InvalidLedgerOperationError(f"Ticket {ticket_id} has no bets")
        sale_key = f"sale:{ticket_id}"
        try:
            account = await self._lock_one(db, account_id)
            stakes = {line.bet_id: self._money(line.stake, account.currency) for line in lines}
            total_sale = sum(stakes.values(), ZERO)
            if total_sale <= ZERO:
                raise InvalidAmountError(f"ticket {ticket_id} has no stake")

            posted = await self._repo.find_entry_by_key(db, account.id, sale_key)
            if posted is not None:
                replay = await self._replayed_sale(db, account, ticket_id, posted, stakes)
                await db.commit()
                return replay

            snapshots = {
                line.bet_id: self._commission_for(account, chain, line) for line in lines
            }
            total_commission = sum((r.amount for r in snapshots.values()), ZERO)
            day = business_date or utc_now().date()

            sale_entry, sale_created = await self._post_locked(
                db,
                account,
                NewEntry(
                    account_id=account.id,
                    entry_type=LedgerEntryType.SALE,
                    amount=-total_sale,
                    business_date=day,
                    created_by=created_by,
                    reference_type=ReferenceType.TICKET.value,
                    reference_id=ticket_id,
                    idempotency_key=sale_key,
                ),
            )
            commission_entry: LedgerEntry | None = None
            if total_commission > ZERO:
                commission_entry, _ = await self._post_locked(
                    db,
                    account,
                    NewEntry(
                        account_id=account.id,
                        entry_type=LedgerEntryType.COMMISSION,
                        amount=total_commission,
                        business_date=day,
                        created_by=created_by,
                        reference_type=ReferenceType.TICKET.value,
                        reference_id=ticket_id,
                        idempotency_key=f"commission:{ticket_id}",
                    ),
                )
            await self._repo.insert_sale_commissions(
                db,
                [
                    SaleCommission(
                        account_id=account.id,
                        ticket_id=ticket_id,
                        bet_id=bet_id,
                        stake=stakes[bet_id],
                        rate=r.rate,
                        amount=r.amount,
                        origin=r.origin.value if r.origin else None,
                        rule_id=r.rule_id,
                    )
                    for bet_id, r in snapshots.items()
                ],
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if sale_created:
            await self._after_commit(
                [account],
                AuditRecord(
                    action="SALE_POSTED",
                    target_type="TICKET",
                    target_id=ticket_id,
                    actor=created_by,
                    details={
                        "account_id": account.id,
                        "sale": str(total_sale),
                        "commission": str(total_commission),
                    },
                ),
            )
        return SalePosting(
            sale_entry=sale_entry,
            commission_entry=commission_entry,
            commission_snapshots={
                bet_id: (r.rate, r.amount, r.origin.value if r.origin else None, r.rule_id)
                for bet_id, r in snapshots.items()
            },
            total_commission=total_commission,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_entries(
        self,
        db: AsyncSession,
        account_id: str,
        filters: EntryFilter | None = None,
        cursor: str | None = None,
        limit: int = 50,
    ) -> EntryPage:
        filters = filters or EntryFilter()
        position = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_entries(db, account_id, filters, position, limit + 1)
        has_more = len(entries) > limit
        page = entries[:limit]
        next_cursor = (
            cursor_encode(EntryCursor(page[-1].business_date, page[-1].id))
            if has_more and page
            else None
        )
        return EntryPage(
            items=[LedgerEntryItem.from_entry(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def balance_summary(self, db: AsyncSession, account_id: str) -> BalanceSummary:
        account = await self.get_account(db, account_id)
        summary = await self._repo.summarize(db, account)
        if not summary.is_consistent:
            logger.error(
                "Ledger drift on account %s: cached=%s derived=%s",
                account_id,
                summary.cached_balance,
                summary.derived_balance,
            )
        return summary

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _money(self, amount: Decimal, currency: str) -> Decimal:
        try:
            return quantize_money(amount, currency)
        except (TypeError, ArithmeticError) as exc:
            raise InvalidAmountError(str(amount)) from exc

    async def _lock_one(self, db: AsyncSession, account_id: str) -> Account:
        locked = await self._repo.lock_accounts(db, [account_id])
        account = locked.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def _post_locked(
        self, db: AsyncSession, account: Account, entry: NewEntry
    ) -> tuple[LedgerEntry, bool]:
        """Insert one entry on an already-locked account.

        Returns (entry, created). A seen idempotency key returns the stored
        entry with created=False and leaves the balance untouched.
        """
        if entry.idempotency_key is not None:
            existing = await self._repo.find_entry_by_key(db, account.id, entry.idempotency_key)
            if existing is not None:
                logger.info(
                    "Idempotent replay: account=%s key=%s entry=%s",
                    account.id,
                    entry.idempotency_key,
                    existing.id,
                )
                return existing, False
        if not account.is_active:
            raise AccountInactiveError(account.id)
        row = await self._repo.insert_entry(db, entry)
        updated = await self._repo.apply_balance_delta(db, account.id, entry.amount)
        account.balance = updated.balance
        return row, True

    async def _replayed_transfer(
        self,
        db: AsyncSession,
        document: PaymentDocument,
        from_account_id: str,
        to_account_id: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> TransferResult:
        if (
            document.from_account_id != from_account_id
            or document.to_account_id != to_account_id
            or document.amount != amount
        ):
            raise IdempotencyConflictError(idempotency_key)
        legs = await self._repo.list_document_entries(db, document.id)
        debit = next((e for e in legs if e.amount < ZERO), None)
        credit = next((e for e in legs if e.amount > ZERO), None)
        if debit is None or credit is None:
            raise InternalError(f"Payment document {document.id} is missing a transfer leg")
        return TransferResult(document=document, debit=debit, credit=credit, replayed=True)

    async def _replayed_sale(
        self,
        db: AsyncSession,
        account: Account,
        ticket_id: str,
        sale_entry: LedgerEntry,
        stakes: dict[str, Decimal],
    ) -> SalePosting:
        stored = await self._repo.list_sale_commissions(db, account.id, ticket_id)
        if -sale_entry.amount != sum(stakes.values(), ZERO) or {
            c.bet_id: c.stake for c in stored
        } != stakes:
            raise IdempotencyConflictError(f"sale:{ticket_id}")
        commission_entry = await self._repo.find_entry_by_key(
            db, account.id, f"commission:{ticket_id}"
        )
        logger.info("Sale replay: account=%s ticket=%s", account.id, ticket_id)
        return SalePosting(
            sale_entry=sale_entry,
            commission_entry=commission_entry,
            commission_snapshots={
                c.bet_id: (c.rate, c.amount, c.origin, c.rule_id) for c in stored
            },
            total_commission=commission_entry.amount if commission_entry else ZERO,
            replayed=True,
        )

    async def _discard_stale_closings(
        self, db: AsyncSession, account: Account, business_date: date
    ) -> None:
        owner_type, owner_id = account.owner
        if owner_type == OwnerType.OTHER:
            return
        discarded = await self._closings.discard_closings_from(
            db, owner_type, owner_id, month_start(business_date)
        )
        if discarded:
            logger.warning(
                "Discarded %d stale closing(s) for %s:%s from %s",
                discarded,
                owner_type.value,
                owner_id,
                month_start(business_date),
            )

    def _commission_for(
        self, account: Account, chain: PolicyChain, line: SaleLine
    ) -> CommissionResult:
        try:
            bet_type = BetType(line.bet_type)
        except ValueError:
            raise InvalidLedgerOperationError(
                f"Unknown bet type {line.bet_type!r} on bet {line.bet_id}"
            ) from None
        ctx = CommissionContext(
            lottery_id=line.lottery_id,
            bet_type=bet_type,
            multiplier=line.multiplier,
            stake=line.stake,
            currency=account.currency,
        )
        if account.owner_type == OwnerType.SELLER.value:
            return resolve_seller_commission(chain, ctx)
        if account.owner_type == OwnerType.OUTLET.value:
            return resolve_outlet_commission(chain, ctx)
        return CommissionResult.none()

    @staticmethod
    def _entry_record(action: str, entry: LedgerEntry) -> AuditRecord:
        return AuditRecord(
            action=action,
            target_type="LEDGER_ENTRY",
            target_id=str(entry.id),
            actor=entry.created_by,
            details={
                "account_id": entry.account_id,
                "entry_type": entry.entry_type,
                "amount": str(entry.amount),
                "reversal_of": entry.reversal_of,
            },
        )

    async def _after_commit(self, accounts: list[Account], record: AuditRecord) -> None:
        if self._invalidator is not None:
            for account in accounts:
                try:
                    await self._invalidator.invalidate_owner(*account.owner)
                except Exception:
                    logger.exception(
                        "Balance cache invalidation failed for %s:%s",
                        account.owner_type,
                        account.owner_id,
                    )
        await emit_safely(self._audit, record)
