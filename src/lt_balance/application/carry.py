"""Previous-month carry resolution.

closing(M) = closing(M - 1) + remaining(M), starting from 0 at the owner's
first active month. A stored monthly closing is authoritative and stops the
walk; writers that back-date a change into a closed month discard the
owner's closings from that month on, so a stored one is never stale.
The walk is iterative over a single day-level aggregate query and is
memoized per (owner, month), so a report that needs the carry for many
rows or many owners computes each month once.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_balance.domain.models import DailyAggregate, PeriodTotals
from src.lt_balance.domain.repository import BalanceRepositoryProtocol
from src.lt_common.datetime_utils import month_end, month_start, next_month, previous_month
from src.lt_common.enums import OwnerType
from src.lt_common.money import ZERO

logger = logging.getLogger(__name__)

Owner = tuple[OwnerType, str]


class CarryResolver:
    """Memoized closing balances, one instance per request or batch."""

    def __init__(self, repo: BalanceRepositoryProtocol, db: AsyncSession) -> None:
        self._repo = repo
        self._db = db
        self._closings: dict[tuple[OwnerType, str, date], Decimal] = {}

    async def previous_month_balance(self, owner: Owner, month: date) -> Decimal:
        """Closing balance of the month before `month` (0 before first activity)."""
        target = month_start(month)
        return await self.closing_balance(owner, previous_month(target))

    async def closing_balance(self, owner: Owner, month: date) -> Decimal:
        """Accumulated balance at the end of `month` for `owner`."""
        owner_type, owner_id = owner
        month = month_start(month)
        cached = self._closings.get((owner_type, owner_id, month))
        if cached is not None:
            return cached

        first = await self._repo.first_activity_date(self._db, owner_type, owner_id)
        if first is None or month < month_start(first):
            return ZERO

        carry = ZERO
        walk_from = month_start(first)
        stored = await self._repo.latest_closing_before(
            self._db, owner_type, owner_id, next_month(month)
        )
        if stored is not None and stored.month >= walk_from:
            carry = stored.closing_balance
            self._closings[(owner_type, owner_id, stored.month)] = carry
            if stored.month == month:
                return carry
            walk_from = next_month(stored.month)

        # Reuse any memoized month already on the path
        back = month
        while back >= walk_from:
            memo = self._closings.get((owner_type, owner_id, back))
            if memo is not None:
                carry, walk_from = memo, next_month(back)
                break
            back = previous_month(back)

        if walk_from > month:
            return carry

        days = await self._repo.aggregate_by_day(
            self._db, owner_type, owner_id, walk_from, month_end(month)
        )
        by_month: dict[date, list[DailyAggregate]] = {}
        for d in days:
            by_month.setdefault(month_start(d.day), []).append(d)

        cursor = walk_from
        while cursor <= month:
            carry += PeriodTotals.from_days(by_month.get(cursor, []), owner_type).remaining
            self._closings[(owner_type, owner_id, cursor)] = carry
            cursor = next_month(cursor)
        logger.debug(
            "Carry walk %s:%s %s..%s -> %s", owner_type.value, owner_id, walk_from, month, carry
        )
        return carry
