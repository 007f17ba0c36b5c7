"""BalanceRepository — day-level aggregates over tickets, bets and ledger movements.

Ticket eligibility matches settlement: active, not cancelled, not soft
deleted, seller and outlet active and not soft deleted, not under an active
exclusion row for its drawing. Only tickets of EVALUATED or CLOSED drawings
count, since payouts are unknown before evaluation.

Ledger movements are PAYMENT, COLLECTION and BANK_DEPOSIT entries on the
owner's accounts, plus REVERSAL entries of those types (their negated
amounts net the original out).
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_balance.domain.models import DailyAggregate, MonthlyClosing, PeriodTotals
from src.lt_common.enums import OwnerType
from src.lt_common.errors import InternalError, InvalidPeriodError

_OWNER_COLUMNS = {
    OwnerType.SELLER: "seller_id",
    OwnerType.OUTLET: "outlet_id",
}


def _eligible_tickets_cte(owner_column: str, bounded: bool) -> str:
    date_filter = "AND t.business_date BETWEEN :date_from AND :date_to" if bounded else ""
    return f"""
    eligible AS (
        SELECT t.id, t.business_date
        FROM tickets t
        JOIN drawings d ON d.id = t.drawing_id
        JOIN sellers s ON s.id = t.seller_id
        JOIN outlets o ON o.id = t.outlet_id
        WHERE t.{owner_column} = :owner_id
          {date_filter}
          AND t.deleted_at IS NULL
          AND t.is_active
          AND t.status <> 'CANCELLED'
          AND d.status IN ('EVALUATED', 'CLOSED')
          AND s.is_active AND s.deleted_at IS NULL
          AND o.is_active AND o.deleted_at IS NULL
          AND NOT EXISTS (
              SELECT 1 FROM drawing_exclusions x
              WHERE x.drawing_id = t.drawing_id
                AND x.is_active
                AND x.outlet_id = t.outlet_id
                AND (x.seller_id IS NULL OR x.seller_id = t.seller_id)
          )
    )"""


_MOVEMENT_TYPES = "('PAYMENT', 'COLLECTION', 'BANK_DEPOSIT')"


def _movements_cte(bounded: bool) -> str:
    date_filter = "AND le.business_date BETWEEN :date_from AND :date_to" if bounded else ""
    return f"""
    movements AS (
        SELECT le.business_date AS day,
               SUM(CASE WHEN COALESCE(orig.entry_type, le.entry_type)
                             IN ('COLLECTION', 'BANK_DEPOSIT')
                        THEN le.amount ELSE 0 END) AS collected,
               SUM(CASE WHEN COALESCE(orig.entry_type, le.entry_type) = 'PAYMENT'
                        THEN -le.amount ELSE 0 END) AS paid
        FROM ledger_entries le
        JOIN accounts a ON a.id = le.account_id
        LEFT JOIN ledger_entries orig ON orig.id = le.reversal_of
        WHERE a.owner_type = :owner_type
          AND a.owner_id = :owner_id
          {date_filter}
          AND (le.entry_type IN {_MOVEMENT_TYPES}
               OR (le.entry_type = 'REVERSAL' AND orig.entry_type IN {_MOVEMENT_TYPES}))
        GROUP BY le.business_date
    )"""


def _aggregate_sql(owner_column: str) -> str:
    return f"""
    WITH {_eligible_tickets_cte(owner_column, bounded=True)},
    ticket_days AS (
        SELECT e.business_date AS day,
               COALESCE(SUM(b.stake), 0) AS sales,
               COALESCE(SUM(b.payout), 0) AS payouts,
               COALESCE(SUM(b.seller_commission_amount), 0) AS seller_commission,
               COALESCE(SUM(b.outlet_commission_amount), 0) AS outlet_commission,
               COUNT(DISTINCT e.id) AS ticket_count
        FROM eligible e
        LEFT JOIN bets b ON b.ticket_id = e.id AND b.deleted_at IS NULL
        GROUP BY e.business_date
    ),
    {_movements_cte(bounded=True)}
    SELECT COALESCE(td.day, m.day)               AS day,
           COALESCE(td.sales, 0)                 AS sales,
           COALESCE(td.payouts, 0)               AS payouts,
           COALESCE(td.seller_commission, 0)     AS seller_commission,
           COALESCE(td.outlet_commission, 0)     AS outlet_commission,
           COALESCE(m.collected, 0)              AS collected,
           COALESCE(m.paid, 0)                   AS paid,
           COALESCE(td.ticket_count, 0)          AS ticket_count
    FROM ticket_days td
    FULL OUTER JOIN movements m ON m.day = td.day
    ORDER BY 1
    """


def _first_activity_sql(owner_column: str) -> str:
    return f"""
    WITH {_eligible_tickets_cte(owner_column, bounded=False)},
    {_movements_cte(bounded=False)}
    SELECT LEAST(
        (SELECT MIN(business_date) FROM eligible),
        (SELECT MIN(day) FROM movements)
    ) AS first_day
    """


_AGGREGATE_SQL = {owner: text(_aggregate_sql(col)) for owner, col in _OWNER_COLUMNS.items()}
_FIRST_ACTIVITY_SQL = {
    owner: text(_first_activity_sql(col)) for owner, col in _OWNER_COLUMNS.items()
}

_CLOSING_COLUMNS = (
    "owner_type, owner_id, month, closing_balance, sales, payouts, commission, "
    "collected, paid, ticket_count, closed_by, closed_at"
)

_LATEST_CLOSING_BEFORE_SQL = text(f"""
    SELECT {_CLOSING_COLUMNS}
    FROM monthly_closing_balances
    WHERE owner_type = :owner_type AND owner_id = :owner_id AND month < :month
    ORDER BY month DESC
    LIMIT 1
""")

_UPSERT_CLOSING_SQL = text(f"""
    INSERT INTO monthly_closing_balances
        (owner_type, owner_id, month, closing_balance, sales, payouts, commission,
         collected, paid, ticket_count, closed_by)
    VALUES
        (:owner_type, :owner_id, :month, :closing_balance, :sales, :payouts, :commission,
         :collected, :paid, :ticket_count, :closed_by)
    ON CONFLICT (owner_type, owner_id, month) DO UPDATE
        SET closing_balance = EXCLUDED.closing_balance,
            sales = EXCLUDED.sales,
            payouts = EXCLUDED.payouts,
            commission = EXCLUDED.commission,
            collected = EXCLUDED.collected,
            paid = EXCLUDED.paid,
            ticket_count = EXCLUDED.ticket_count,
            closed_by = EXCLUDED.closed_by,
            closed_at = NOW()
    RETURNING {_CLOSING_COLUMNS}
""")

_DISCARD_CLOSINGS_FROM_SQL = text("""
    DELETE FROM monthly_closing_balances
    WHERE owner_type = :owner_type AND owner_id = :owner_id AND month >= :month
""")


def _owner_sql(table: dict[OwnerType, object], owner_type: OwnerType) -> object:
    sql = table.get(owner_type)
    if sql is None:
        raise InvalidPeriodError(
            f"balances are only derived for SELLER and OUTLET, not {owner_type.value}"
        )
    return sql


def _row_to_closing(row: object) -> MonthlyClosing:
    return MonthlyClosing(
        owner_type=row.owner_type,  # type: ignore[attr-defined]
        owner_id=row.owner_id,  # type: ignore[attr-defined]
        month=row.month,  # type: ignore[attr-defined]
        closing_balance=Decimal(row.closing_balance),  # type: ignore[attr-defined]
        totals=PeriodTotals(
            sales=Decimal(row.sales),  # type: ignore[attr-defined]
            payouts=Decimal(row.payouts),  # type: ignore[attr-defined]
            commission=Decimal(row.commission),  # type: ignore[attr-defined]
            collected=Decimal(row.collected),  # type: ignore[attr-defined]
            paid=Decimal(row.paid),  # type: ignore[attr-defined]
            ticket_count=row.ticket_count,  # type: ignore[attr-defined]
        ),
        closed_by=row.closed_by,  # type: ignore[attr-defined]
        closed_at=row.closed_at,  # type: ignore[attr-defined]
    )


class BalanceRepository:
    async def aggregate_by_day(
        self,
        db: AsyncSession,
        owner_type: OwnerType,
        owner_id: str,
        date_from: date,
        date_to: date,
    ) -> list[DailyAggregate]:
        result = await db.execute(
            _owner_sql(_AGGREGATE_SQL, owner_type),  # type: ignore[arg-type]
            {
                "owner_type": owner_type.value,
                "owner_id": owner_id,
                "date_from": date_from,
                "date_to": date_to,
            },
        )
        return [
            DailyAggregate(
                day=row.day,
                sales=Decimal(row.sales),
                payouts=Decimal(row.payouts),
                seller_commission=Decimal(row.seller_commission),
                outlet_commission=Decimal(row.outlet_commission),
                collected=Decimal(row.collected),
                paid=Decimal(row.paid),
                ticket_count=row.ticket_count,
            )
            for row in result.fetchall()
        ]

    async def first_activity_date(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str
    ) -> date | None:
        result = await db.execute(
            _owner_sql(_FIRST_ACTIVITY_SQL, owner_type),  # type: ignore[arg-type]
            {"owner_type": owner_type.value, "owner_id": owner_id},
        )
        row = result.fetchone()
        return row.first_day if row else None

    async def latest_closing_before(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str, month: date
    ) -> MonthlyClosing | None:
        result = await db.execute(
            _LATEST_CLOSING_BEFORE_SQL,
            {"owner_type": owner_type.value, "owner_id": owner_id, "month": month},
        )
        row = result.fetchone()
        return _row_to_closing(row) if row else None

    async def upsert_closing(
        self, db: AsyncSession, closing: MonthlyClosing
    ) -> MonthlyClosing:
        result = await db.execute(
            _UPSERT_CLOSING_SQL,
            {
                "owner_type": closing.owner_type,
                "owner_id": closing.owner_id,
                "month": closing.month,
                "closing_balance": closing.closing_balance,
                "sales": closing.totals.sales,
                "payouts": closing.totals.payouts,
                "commission": closing.totals.commission,
                "collected": closing.totals.collected,
                "paid": closing.totals.paid,
                "ticket_count": closing.totals.ticket_count,
                "closed_by": closing.closed_by,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Monthly closing upsert returned no rows")
        return _row_to_closing(row)

    async def discard_closings_from(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str, month: date
    ) -> int:
        """Delete stored closings for `month` and every later month.

        Runs on the caller's session so the discard commits or rolls back
        with the posting that made those closings stale.
        """
        if owner_type not in _OWNER_COLUMNS:
            return 0
        result = await db.execute(
            _DISCARD_CLOSINGS_FROM_SQL,
            {"owner_type": owner_type.value, "owner_id": owner_id, "month": month},
        )
        return result.rowcount or 0  # type: ignore[attr-defined]
