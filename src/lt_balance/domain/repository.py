"""Repository Protocol for the balance aggregator. Read-mostly."""

from datetime import date
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_balance.domain.models import BalanceView, DailyAggregate, MonthlyClosing
from src.lt_common.enums import OwnerType


class BalanceRepositoryProtocol(Protocol):
    async def aggregate_by_day(
        self,
        db: AsyncSession,
        owner_type: OwnerType,
        owner_id: str,
        date_from: date,
        date_to: date,
    ) -> list[DailyAggregate]:
        """One row per business date with activity, ascending."""
        ...

    async def first_activity_date(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str
    ) -> date | None: ...

    async def latest_closing_before(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str, month: date
    ) -> MonthlyClosing | None:
        """Most recent stored closing for a month strictly before `month`."""
        ...

    async def upsert_closing(
        self, db: AsyncSession, closing: MonthlyClosing
    ) -> MonthlyClosing: ...

    async def discard_closings_from(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str, month: date
    ) -> int: ...


class StaleClosingStore(Protocol):
    """Drops stored closings a back-dated change has made stale.

    Writers call it inside their own transaction with the first month the
    change touches; the carry walk then recomputes those months.
    """

    async def discard_closings_from(
        self, db: AsyncSession, owner_type: OwnerType, owner_id: str, month: date
    ) -> int: ...


class BalanceCacheProtocol(Protocol):
    async def get_view(
        self, owner_type: OwnerType, owner_id: str, date_from: date, date_to: date
    ) -> BalanceView | None: ...

    async def set_view(self, view: BalanceView) -> None: ...

    async def invalidate_owner(self, owner_type: OwnerType, owner_id: str) -> None: ...

    async def invalidate_all(self) -> None: ...
