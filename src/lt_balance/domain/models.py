"""Domain models for lt_balance — derived views, pure dataclasses.

remaining = sales - payouts - commission - collected + paid

Positive remaining means the owner owes the operator (CXC), negative means
the operator owes the owner (CXP). `commission` is the seller tier for
SELLER owners and the outlet tier for OUTLET owners.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from src.lt_common.enums import OwnerType
from src.lt_common.money import ZERO


@dataclass
class DailyAggregate:
    day: date
    sales: Decimal = ZERO
    payouts: Decimal = ZERO
    seller_commission: Decimal = ZERO
    outlet_commission: Decimal = ZERO
    collected: Decimal = ZERO
    paid: Decimal = ZERO
    ticket_count: int = 0


@dataclass
class PeriodTotals:
    sales: Decimal = ZERO
    payouts: Decimal = ZERO
    commission: Decimal = ZERO
    collected: Decimal = ZERO
    paid: Decimal = ZERO
    ticket_count: int = 0

    @property
    def remaining(self) -> Decimal:
        return self.sales - self.payouts - self.commission - self.collected + self.paid

    @classmethod
    def from_days(cls, days: list[DailyAggregate], owner_type: OwnerType) -> "PeriodTotals":
        totals = cls()
        for d in days:
            totals.sales += d.sales
            totals.payouts += d.payouts
            totals.commission += (
                d.seller_commission if owner_type == OwnerType.SELLER else d.outlet_commission
            )
            totals.collected += d.collected
            totals.paid += d.paid
            totals.ticket_count += d.ticket_count
        return totals


@dataclass
class BalanceView:
    owner_type: str
    owner_id: str
    date_from: date
    date_to: date
    totals: PeriodTotals
    # Closing of the month before month_start(date_to); folded in once.
    previous_month_balance: Decimal = ZERO
    # previous_month_balance + remaining(month_start(date_to)..date_to)
    accumulated_balance: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.totals.remaining


@dataclass
class DailyStatementRow:
    day: date
    totals: PeriodTotals
    accumulated_balance: Decimal

    @property
    def balance(self) -> Decimal:
        return self.totals.remaining


@dataclass
class DailyStatement:
    owner_type: str
    owner_id: str
    opening_balance: Decimal             # accumulated balance just before date_from
    rows: list[DailyStatementRow] = field(default_factory=list)

    @property
    def closing_balance(self) -> Decimal:
        return self.rows[-1].accumulated_balance if self.rows else self.opening_balance


@dataclass
class MonthlyClosing:
    owner_type: str
    owner_id: str
    month: date                          # first day of the closed month
    closing_balance: Decimal             # carry + remaining for the month
    totals: PeriodTotals
    closed_by: str
    closed_at: datetime | None = None
