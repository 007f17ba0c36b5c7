"""lt_balance REST API — read-only views plus the month-closing mutation."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.lt_balance.application.schemas import (
    BalanceViewResponse,
    CacheFlushRequest,
    CloseMonthRequest,
    DailyStatementResponse,
    MonthlyClosingResponse,
    PreviousMonthBalanceItem,
    PreviousMonthBalancesRequest,
)
from src.lt_balance.application.service import BalanceService
from src.lt_balance.infrastructure.cache import BalanceCache
from src.lt_common.database import get_db_session
from src.lt_common.datetime_utils import month_key, parse_month_key, utc_now
from src.lt_common.enums import OwnerType
from src.lt_common.redis_client import get_redis
from src.lt_common.response import ApiResponse, success_response
from src.lt_gateway.auth.dependencies import get_actor

router = APIRouter(prefix="/balances", tags=["balances"])

balance_cache = BalanceCache(get_redis, settings.BALANCE_CACHE_TTL_SECONDS)
_service = BalanceService(cache=balance_cache)


@router.get("/{owner_type}/{owner_id}")
async def period_balance(
    owner_type: OwnerType,
    owner_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    date_from: date = Query(...),
    date_to: date = Query(...),
) -> ApiResponse:
    view = await _service.period_balance(db, owner_type, owner_id, date_from, date_to)
    return success_response(BalanceViewResponse.from_view(view).model_dump(mode="json"), request)


@router.get("/{owner_type}/{owner_id}/month-to-date")
async def month_to_date(
    owner_type: OwnerType,
    owner_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    today: date | None = Query(None, description="Defaults to the current UTC date"),
) -> ApiResponse:
    view = await _service.month_to_date(db, owner_type, owner_id, today or utc_now().date())
    return success_response(BalanceViewResponse.from_view(view).model_dump(mode="json"), request)


@router.get("/{owner_type}/{owner_id}/previous-month")
async def previous_month_balance(
    owner_type: OwnerType,
    owner_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    month: str = Query(..., pattern=r"^\d{4}-\d{2}$"),
) -> ApiResponse:
    value = await _service.previous_month_balance(
        db, owner_type, owner_id, parse_month_key(month)
    )
    item = PreviousMonthBalanceItem(
        owner_type=owner_type, owner_id=owner_id, month=month, previous_month_balance=value
    )
    return success_response(item.model_dump(mode="json"), request)


@router.post("/previous-month")
async def previous_month_balances(
    body: PreviousMonthBalancesRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    month = parse_month_key(body.month)
    balances = await _service.previous_month_balances(
        db, [(o.owner_type, o.owner_id) for o in body.owners], month
    )
    items = [
        PreviousMonthBalanceItem(
            owner_type=owner_type,
            owner_id=owner_id,
            month=month_key(month),
            previous_month_balance=value,
        ).model_dump(mode="json")
        for (owner_type, owner_id), value in balances.items()
    ]
    return success_response({"items": items}, request)


@router.get("/{owner_type}/{owner_id}/statement")
async def daily_statement(
    owner_type: OwnerType,
    owner_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    date_from: date = Query(...),
    date_to: date = Query(...),
) -> ApiResponse:
    statement = await _service.daily_statement(db, owner_type, owner_id, date_from, date_to)
    return success_response(
        DailyStatementResponse.from_statement(statement).model_dump(mode="json"), request
    )


@router.post("/{owner_type}/{owner_id}/closings")
async def close_month(
    owner_type: OwnerType,
    owner_id: str,
    body: CloseMonthRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    closing = await _service.close_month(
        db, owner_type, owner_id, parse_month_key(body.month), closed_by=actor
    )
    return success_response(
        MonthlyClosingResponse.from_closing(closing).model_dump(mode="json"), request
    )


@router.post("/cache/invalidate")
async def invalidate_cache(
    body: CacheFlushRequest,
    actor: Annotated[str, Depends(get_actor)],
    request: Request,
) -> ApiResponse:
    flushed = await _service.invalidate_cached_views(actor, body.reason)
    return success_response({"flushed": flushed}, request)
