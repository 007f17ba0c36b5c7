"""BalanceService — period views, month-to-date, statements and closings.

A period view over [date_from, date_to] reports the totals of that range
plus the accumulated position at date_to:

    accumulated = previous_month_balance(month of date_to)
                  + remaining(month_start(date_to)..date_to)

month_to_date(owner, today) is literally period_balance(owner,
month_start(today), today), so the two can never disagree.
"""

import logging
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_balance.application.carry import CarryResolver, Owner
from src.lt_balance.domain.models import (
    BalanceView,
    DailyAggregate,
    DailyStatement,
    DailyStatementRow,
    MonthlyClosing,
    PeriodTotals,
)
from src.lt_balance.domain.repository import BalanceCacheProtocol, BalanceRepositoryProtocol
from src.lt_balance.infrastructure.persistence import BalanceRepository
from src.lt_common.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_safely
from src.lt_common.datetime_utils import month_end, month_key, month_start, utc_now
from src.lt_common.enums import OwnerType
from src.lt_common.errors import InvalidPeriodError

logger = logging.getLogger(__name__)

_BALANCE_OWNERS = (OwnerType.SELLER, OwnerType.OUTLET)
MAX_STATEMENT_DAYS = 366


def _check_owner(owner_type: OwnerType) -> None:
    if owner_type not in _BALANCE_OWNERS:
        raise InvalidPeriodError(
            f"balances are only derived for SELLER and OUTLET, not {owner_type.value}"
        )


def _check_range(date_from: date, date_to: date) -> None:
    if date_from > date_to:
        raise InvalidPeriodError(f"date_from {date_from} is after date_to {date_to}")


class BalanceService:
    def __init__(
        self,
        repo: BalanceRepositoryProtocol | None = None,
        cache: BalanceCacheProtocol | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self._repo: BalanceRepositoryProtocol = repo or BalanceRepository()
        self._cache = cache
        self._audit: AuditSink = audit or LoggingAuditSink()

    def carry_resolver(self, db: AsyncSession) -> CarryResolver:
        return CarryResolver(self._repo, db)

    # ------------------------------------------------------------------
    # Period views
    # ------------------------------------------------------------------

    async def period_balance(
        self,
        db: AsyncSession,
        owner_type: OwnerType,
        owner_id: str,
        date_from: date,
        date_to: date,
        resolver: CarryResolver | None = None,
    ) -> BalanceView:
        _check_owner(owner_type)
        _check_range(date_from, date_to)

        if self._cache is not None:
            cached = await self._cache.get_view(owner_type, owner_id, date_from, date_to)
            if cached is not None:
                return cached

        resolver = resolver or self.carry_resolver(db)
        anchor = month_start(date_to)
        # One query covers both the requested range and the month-to-date tail
        days = await self._repo.aggregate_by_day(
            db, owner_type, owner_id, min(date_from, anchor), date_to
        )
        totals = PeriodTotals.from_days([d for d in days if d.day >= date_from], owner_type)
        month_tail = PeriodTotals.from_days([d for d in days if d.day >= anchor], owner_type)
        carry = await resolver.previous_month_balance((owner_type, owner_id), anchor)

        view = BalanceView(
            owner_type=owner_type.value,
            owner_id=owner_id,
            date_from=date_from,
            date_to=date_to,
            totals=totals,
            previous_month_balance=carry,
            accumulated_balance=carry + month_tail.remaining,
        )
        if self._cache is not None:
            await self._cache.set_view(view)
        return view

    async def month_to_date(
        self,
        db: AsyncSession,
        owner_type: OwnerType,
        owner_id: str,
        today: date,
        resolver: CarryResolver | None = None,
    ) -> BalanceView:
        return await self.period_balance(
            db, owner_type, owner_id, month_start(today), today, resolver
        )

    # ------------------------------------------------------------------
    # Carry
    # ------------------------------------------------------------------

    async def previous_month_balance(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str, month: date
    ) -> Decimal:
        """Closing balance of the month before `month`."""
        _check_owner(owner_type)
        return await self.carry_resolver(db).previous_month_balance((owner_type, owner_id), month)

    async def previous_month_balances(
        self, db: AsyncSession, owners: Iterable[Owner], month: date
    ) -> dict[Owner, Decimal]:
        """Batch form of previous_month_balance sharing one memo."""
        resolver = self.carry_resolver(db)
        balances: dict[Owner, Decimal] = {}
        for owner in owners:
            _check_owner(owner[0])
            balances[owner] = await resolver.previous_month_balance(owner, month)
        return balances

    # ------------------------------------------------------------------
    # Statements and closings
    # ------------------------------------------------------------------

    async def daily_statement(
        self,
        db: AsyncSession,
        owner_type: OwnerType,
        owner_id: str,
        date_from: date,
        date_to: date,
    ) -> DailyStatement:
        """One row per calendar day with a running accumulated balance.

        The opening balance is the accumulated position at the end of the
        day before date_from, so the previous-month carry enters the running
        total exactly once no matter how many rows or months follow.
        """
        _check_owner(owner_type)
        _check_range(date_from, date_to)
        if (date_to - date_from).days >= MAX_STATEMENT_DAYS:
            raise InvalidPeriodError(f"statement spans more than {MAX_STATEMENT_DAYS} days")

        anchor = month_start(date_from)
        resolver = self.carry_resolver(db)
        carry = await resolver.previous_month_balance((owner_type, owner_id), anchor)
        days = await self._repo.aggregate_by_day(db, owner_type, owner_id, anchor, date_to)
        by_day: dict[date, DailyAggregate] = {d.day: d for d in days}

        lead_in = PeriodTotals.from_days([d for d in days if d.day < date_from], owner_type)
        running = carry + lead_in.remaining
        statement = DailyStatement(
            owner_type=owner_type.value, owner_id=owner_id, opening_balance=running
        )

        day = date_from
        while day <= date_to:
            aggregate = by_day.get(day)
            totals = PeriodTotals.from_days([aggregate] if aggregate else [], owner_type)
            running += totals.remaining
            statement.rows.append(
                DailyStatementRow(day=day, totals=totals, accumulated_balance=running)
            )
            day += timedelta(days=1)
        return statement

    async def close_month(
        self,
        db: AsyncSession,
        owner_type: OwnerType,
        owner_id: str,
        month: date,
        closed_by: str,
        today: date | None = None,
    ) -> MonthlyClosing:
        """Persist the closing balance of a finished month (re-closing overwrites)."""
        _check_owner(owner_type)
        month = month_start(month)
        today = today or utc_now().date()
        if month_end(month) >= today:
            raise InvalidPeriodError(f"month {month_key(month)} has not finished yet")

        try:
            carry = await self.carry_resolver(db).previous_month_balance(
                (owner_type, owner_id), month
            )
            days = await self._repo.aggregate_by_day(
                db, owner_type, owner_id, month, month_end(month)
            )
            totals = PeriodTotals.from_days(days, owner_type)
            closing = await self._repo.upsert_closing(
                db,
                MonthlyClosing(
                    owner_type=owner_type.value,
                    owner_id=owner_id,
                    month=month,
                    closing_balance=carry + totals.remaining,
                    totals=totals,
                    closed_by=closed_by,
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Closed %s %s:%s balance=%s",
            month_key(month),
            owner_type.value,
            owner_id,
            closing.closing_balance,
        )
        if self._cache is not None:
            await self._cache.invalidate_owner(owner_type, owner_id)
        await emit_safely(
            self._audit,
            AuditRecord(
                action="MONTH_CLOSED",
                target_type=owner_type.value,
                target_id=owner_id,
                actor=closed_by,
                details={
                    "month": month_key(month),
                    "closing_balance": str(closing.closing_balance),
                    "previous_month_balance": str(carry),
                },
            ),
        )
        return closing

    async def invalidate_cached_views(self, actor: str, reason: str | None = None) -> bool:
        """Orphan every cached view at once.

        Exclusion lists and seller/outlet activation are maintained outside
        this service and change balances for many owners without a per-owner
        signal; operators flush after editing them. Returns False when no
        cache is configured.
        """
        if self._cache is None:
            return False
        await self._cache.invalidate_all()
        logger.info("Balance cache flushed by %s", actor)
        details: dict[str, object] = {}
        if reason:
            details["reason"] = reason
        await emit_safely(
            self._audit,
            AuditRecord(
                action="BALANCE_CACHE_FLUSHED",
                target_type="BALANCE_CACHE",
                target_id="*",
                actor=actor,
                details=details,
            ),
        )
        return True
