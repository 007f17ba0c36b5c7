"""Post-settlement balance refresh.

Runs outside the request that triggered it, so it opens its own session.
Each owner's cached views are invalidated first, then the month-to-date view
for every affected business date is recomputed and put back in the cache.
"""

import logging
from collections.abc import Callable
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_balance.application.service import BalanceService
from src.lt_balance.domain.repository import BalanceCacheProtocol
from src.lt_common.enums import OwnerType

logger = logging.getLogger(__name__)


class PeriodBalanceRefresher:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        cache: BalanceCacheProtocol,
        service: BalanceService | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._service = service or BalanceService(cache=cache)

    async def refresh(
        self, owners: set[tuple[OwnerType, str]], business_dates: set[date]
    ) -> None:
        for owner_type, owner_id in sorted(owners):
            await self._cache.invalidate_owner(owner_type, owner_id)

        if not business_dates:
            return
        days = sorted(business_dates)
        async with self._session_factory() as db:
            for owner_type, owner_id in sorted(owners):
                resolver = self._service.carry_resolver(db)
                for day in days:
                    await self._service.month_to_date(db, owner_type, owner_id, day, resolver)
        logger.info(
            "Refreshed balances for %d owners over %d business dates", len(owners), len(days)
        )
