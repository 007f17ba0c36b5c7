"""Pydantic schemas for the lt_balance API."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from src.lt_balance.domain.models import (
    BalanceView,
    DailyStatement,
    MonthlyClosing,
    PeriodTotals,
)
from src.lt_common.datetime_utils import month_key, parse_month_key
from src.lt_common.enums import OwnerType

_MONTH_PATTERN = r"^\d{4}-\d{2}$"


def _check_month(value: str) -> str:
    try:
        parse_month_key(value)
    except ValueError as exc:
        raise ValueError(f"invalid month {value!r}, expected YYYY-MM") from exc
    return value


class OwnerRef(BaseModel):
    owner_type: OwnerType
    owner_id: str = Field(..., min_length=1)


class PreviousMonthBalancesRequest(BaseModel):
    month: str = Field(..., pattern=_MONTH_PATTERN)
    owners: list[OwnerRef] = Field(..., min_length=1, max_length=500)

    @field_validator("month")
    @classmethod
    def check_month(cls, v: str) -> str:
        return _check_month(v)


class CloseMonthRequest(BaseModel):
    month: str = Field(..., pattern=_MONTH_PATTERN)

    @field_validator("month")
    @classmethod
    def check_month(cls, v: str) -> str:
        return _check_month(v)


class TotalsResponse(BaseModel):
    sales: Decimal
    payouts: Decimal
    commission: Decimal
    collected: Decimal
    paid: Decimal
    ticket_count: int
    balance: Decimal

    @classmethod
    def from_totals(cls, t: PeriodTotals) -> "TotalsResponse":
        return cls(
            sales=t.sales,
            payouts=t.payouts,
            commission=t.commission,
            collected=t.collected,
            paid=t.paid,
            ticket_count=t.ticket_count,
            balance=t.remaining,
        )


class BalanceViewResponse(BaseModel):
    owner_type: str
    owner_id: str
    date_from: date
    date_to: date
    totals: TotalsResponse
    previous_month_balance: Decimal
    accumulated_balance: Decimal

    @classmethod
    def from_view(cls, v: BalanceView) -> "BalanceViewResponse":
        return cls(
            owner_type=v.owner_type,
            owner_id=v.owner_id,
            date_from=v.date_from,
            date_to=v.date_to,
            totals=TotalsResponse.from_totals(v.totals),
            previous_month_balance=v.previous_month_balance,
            accumulated_balance=v.accumulated_balance,
        )


class StatementRowResponse(BaseModel):
    day: date
    totals: TotalsResponse
    accumulated_balance: Decimal


class DailyStatementResponse(BaseModel):
    owner_type: str
    owner_id: str
    opening_balance: Decimal
    closing_balance: Decimal
    rows: list[StatementRowResponse]

    @classmethod
    def from_statement(cls, s: DailyStatement) -> "DailyStatementResponse":
        return cls(
            owner_type=s.owner_type,
            owner_id=s.owner_id,
            opening_balance=s.opening_balance,
            closing_balance=s.closing_balance,
            rows=[
                StatementRowResponse(
                    day=r.day,
                    totals=TotalsResponse.from_totals(r.totals),
                    accumulated_balance=r.accumulated_balance,
                )
                for r in s.rows
            ],
        )


class MonthlyClosingResponse(BaseModel):
    owner_type: str
    owner_id: str
    month: str
    closing_balance: Decimal
    totals: TotalsResponse
    closed_by: str
    closed_at: str | None

    @classmethod
    def from_closing(cls, c: MonthlyClosing) -> "MonthlyClosingResponse":
        return cls(
            owner_type=c.owner_type,
            owner_id=c.owner_id,
            month=month_key(c.month),
            closing_balance=c.closing_balance,
            totals=TotalsResponse.from_totals(c.totals),
            closed_by=c.closed_by,
            closed_at=c.closed_at.isoformat() if c.closed_at else None,
        )


class PreviousMonthBalanceItem(BaseModel):
    owner_type: OwnerType
    owner_id: str
    month: str
    previous_month_balance: Decimal


class CacheFlushRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)
