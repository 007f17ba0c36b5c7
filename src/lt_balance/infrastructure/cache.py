"""Redis-backed cache of period balance views.

Invalidation is generation based: view keys embed a global generation and a
per-owner generation, so bumping either counter orphans every older view and
the TTL reclaims them. A Redis fault on any path is logged and treated as a
miss; the database stays the only source of truth.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from decimal import Decimal
from typing import Any

import redis.asyncio as aioredis

from src.lt_balance.domain.models import BalanceView, PeriodTotals
from src.lt_common.enums import OwnerType

logger = logging.getLogger(__name__)

_GLOBAL_GEN_KEY = "lt:bal:gen"


def _owner_gen_key(owner_type: str, owner_id: str) -> str:
    return f"lt:bal:gen:{owner_type}:{owner_id}"


def _view_key(
    owner_type: str, owner_id: str, date_from: date, date_to: date, gen: int, owner_gen: int
) -> str:
    return (
        f"lt:bal:view:{owner_type}:{owner_id}:"
        f"{date_from.isoformat()}:{date_to.isoformat()}:{gen}:{owner_gen}"
    )


def _view_to_json(view: BalanceView) -> str:
    t = view.totals
    return json.dumps(
        {
            "owner_type": view.owner_type,
            "owner_id": view.owner_id,
            "date_from": view.date_from.isoformat(),
            "date_to": view.date_to.isoformat(),
            "sales": str(t.sales),
            "payouts": str(t.payouts),
            "commission": str(t.commission),
            "collected": str(t.collected),
            "paid": str(t.paid),
            "ticket_count": t.ticket_count,
            "previous_month_balance": str(view.previous_month_balance),
            "accumulated_balance": str(view.accumulated_balance),
        }
    )


def _view_from_json(raw: str) -> BalanceView:
    data: dict[str, Any] = json.loads(raw)
    return BalanceView(
        owner_type=data["owner_type"],
        owner_id=data["owner_id"],
        date_from=date.fromisoformat(data["date_from"]),
        date_to=date.fromisoformat(data["date_to"]),
        totals=PeriodTotals(
            sales=Decimal(data["sales"]),
            payouts=Decimal(data["payouts"]),
            commission=Decimal(data["commission"]),
            collected=Decimal(data["collected"]),
            paid=Decimal(data["paid"]),
            ticket_count=int(data["ticket_count"]),
        ),
        previous_month_balance=Decimal(data["previous_month_balance"]),
        accumulated_balance=Decimal(data["accumulated_balance"]),
    )


class BalanceCache:
    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]],
        ttl_seconds: int,
    ) -> None:
        self._redis_factory = redis_factory
        self._ttl = ttl_seconds

    async def _generations(
        self, redis: aioredis.Redis, owner_type: str, owner_id: str
    ) -> tuple[int, int]:
        gen, owner_gen = await redis.mget(_GLOBAL_GEN_KEY, _owner_gen_key(owner_type, owner_id))
        return int(gen or 0), int(owner_gen or 0)

    async def get_view(
        self, owner_type: OwnerType, owner_id: str, date_from: date, date_to: date
    ) -> BalanceView | None:
        try:
            redis = await self._redis_factory()
            gen, owner_gen = await self._generations(redis, owner_type.value, owner_id)
            raw = await redis.get(
                _view_key(owner_type.value, owner_id, date_from, date_to, gen, owner_gen)
            )
        except Exception:
            logger.warning(
                "Balance cache read failed for %s:%s, treating as miss",
                owner_type.value,
                owner_id,
                exc_info=True,
            )
            return None
        if raw is None:
            return None
        try:
            return _view_from_json(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed cached view for %s:%s", owner_type.value, owner_id)
            return None

    async def set_view(self, view: BalanceView) -> None:
        try:
            redis = await self._redis_factory()
            gen, owner_gen = await self._generations(redis, view.owner_type, view.owner_id)
            key = _view_key(
                view.owner_type, view.owner_id, view.date_from, view.date_to, gen, owner_gen
            )
            await redis.set(key, _view_to_json(view), ex=self._ttl)
        except Exception:
            logger.warning(
                "Balance cache write failed for %s:%s",
                view.owner_type,
                view.owner_id,
                exc_info=True,
            )

    async def invalidate_owner(self, owner_type: OwnerType, owner_id: str) -> None:
        try:
            redis = await self._redis_factory()
            await redis.incr(_owner_gen_key(owner_type.value, owner_id))
        except Exception:
            logger.warning(
                "Balance cache invalidation failed for %s:%s",
                owner_type.value,
                owner_id,
                exc_info=True,
            )

    async def invalidate_all(self) -> None:
        try:
            redis = await self._redis_factory()
            await redis.incr(_GLOBAL_GEN_KEY)
        except Exception:
            logger.warning("Global balance cache invalidation failed", exc_info=True)
