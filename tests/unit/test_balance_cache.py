"""Tests for the Redis balance cache and the post-settlement refresher."""

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

from src.lt_balance.application.refresher import PeriodBalanceRefresher
from src.lt_balance.application.service import BalanceService
from src.lt_balance.domain.models import BalanceView, PeriodTotals
from src.lt_balance.infrastructure.cache import BalanceCache
from src.lt_common.enums import OwnerType
from tests.unit.fakes import DictBalanceCache, FakeBalanceRepository, make_db


class MemoryRedis:
    """Just the commands BalanceCache uses."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def mget(self, *keys):
        return [self.data.get(k) for k in keys]

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex

    async def incr(self, key):
        self.data[key] = str(int(self.data.get(key, "0")) + 1)
        return int(self.data[key])


def _view(owner_id: str = "s-1") -> BalanceView:
    return BalanceView(
        owner_type="SELLER",
        owner_id=owner_id,
        date_from=date(2026, 3, 1),
        date_to=date(2026, 3, 5),
        totals=PeriodTotals(
            sales=Decimal("500.00"), payouts=Decimal("70.00"), commission=Decimal("50.00"),
            collected=Decimal("0"), paid=Decimal("20.00"), ticket_count=2,
        ),
        previous_month_balance=Decimal("400.00"),
        accumulated_balance=Decimal("800.00"),
    )


def _cache(redis) -> BalanceCache:
    async def factory():
        return redis

    return BalanceCache(factory, ttl_seconds=60)


async def _get(cache: BalanceCache, owner_id: str = "s-1"):
    return await cache.get_view(OwnerType.SELLER, owner_id, date(2026, 3, 1), date(2026, 3, 5))


class TestBalanceCache:
    async def test_stores_and_restores_decimals(self) -> None:
        redis = MemoryRedis()
        cache = _cache(redis)
        await cache.set_view(_view())

        restored = await _get(cache)

        assert restored == _view()
        assert isinstance(restored.totals.sales, Decimal)
        assert set(redis.ttls.values()) == {60}

    async def test_owner_invalidation_only_hits_that_owner(self) -> None:
        cache = _cache(MemoryRedis())
        await cache.set_view(_view("s-1"))
        await cache.set_view(_view("s-2"))

        await cache.invalidate_owner(OwnerType.SELLER, "s-1")

        assert await _get(cache, "s-1") is None
        assert await _get(cache, "s-2") is not None

    async def test_global_invalidation(self) -> None:
        cache = _cache(MemoryRedis())
        await cache.set_view(_view("s-1"))
        await cache.invalidate_all()
        assert await _get(cache, "s-1") is None

    async def test_redis_faults_degrade_to_miss(self) -> None:
        broken = AsyncMock()
        broken.mget.side_effect = ConnectionError("down")
        broken.incr.side_effect = ConnectionError("down")
        cache = _cache(broken)

        assert await _get(cache) is None
        await cache.set_view(_view())
        await cache.invalidate_owner(OwnerType.SELLER, "s-1")
        await cache.invalidate_all()

    async def test_malformed_payload_is_a_miss(self) -> None:
        redis = MemoryRedis()
        cache = _cache(redis)
        await cache.set_view(_view())
        for key in list(redis.data):
            if key.startswith("lt:bal:view:"):
                redis.data[key] = "{not json"
        assert await _get(cache) is None

    async def test_service_falls_back_to_repository_when_redis_is_down(self) -> None:
        broken = AsyncMock()
        broken.mget.side_effect = ConnectionError("down")
        repo = FakeBalanceRepository()
        repo.add_day(OwnerType.SELLER, "s-1", date(2026, 3, 2), sales=Decimal("10"))
        svc = BalanceService(repo=repo, cache=_cache(broken))

        view = await svc.month_to_date(make_db(), OwnerType.SELLER, "s-1", date(2026, 3, 5))

        assert view.accumulated_balance == Decimal("10")


class TestPeriodBalanceRefresher:
    async def test_invalidates_then_warms_each_owner_and_date(self) -> None:
        repo = FakeBalanceRepository()
        repo.add_day(OwnerType.SELLER, "s-1", date(2026, 3, 2), sales=Decimal("10"))
        cache = DictBalanceCache()
        sessions = []

        @asynccontextmanager
        async def session_factory():
            db = make_db()
            sessions.append(db)
            yield db

        refresher = PeriodBalanceRefresher(
            session_factory, cache, BalanceService(repo=repo, cache=cache)
        )
        owners = {(OwnerType.SELLER, "s-1"), (OwnerType.OUTLET, "o-1")}
        await refresher.refresh(owners, {date(2026, 3, 2), date(2026, 3, 5)})

        assert set(cache.invalidated) == owners
        assert len(sessions) == 1
        warmed = cache.views[("SELLER", "s-1", date(2026, 3, 1), date(2026, 3, 5))]
        assert warmed.accumulated_balance == Decimal("10")
        assert ("OUTLET", "o-1", date(2026, 3, 1), date(2026, 3, 2)) in cache.views
