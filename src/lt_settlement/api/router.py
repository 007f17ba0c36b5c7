"""lt_settlement REST API — drawing lifecycle and evaluation."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.lt_balance.application.refresher import PeriodBalanceRefresher
from src.lt_balance.infrastructure.cache import BalanceCache
from src.lt_common.database import async_session_factory, get_db_session
from src.lt_common.redis_client import get_redis
from src.lt_common.response import ApiResponse, success_response
from src.lt_gateway.auth.dependencies import get_actor
from src.lt_settlement.application.schemas import (
    DrawingResponse,
    EvaluateRequest,
    EvaluationResponse,
    ReasonRequest,
)
from src.lt_settlement.application.service import DrawingSettlementService

router = APIRouter(prefix="/drawings", tags=["drawings"])

settlement_service = DrawingSettlementService(
    refresher=PeriodBalanceRefresher(
        async_session_factory,
        BalanceCache(get_redis, settings.BALANCE_CACHE_TTL_SECONDS),
    )
)


@router.get("/{drawing_id}")
async def get_drawing(
    drawing_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    drawing = await settlement_service.get_drawing(db, drawing_id)
    return success_response(DrawingResponse.from_drawing(drawing).model_dump(mode="json"), request)


@router.post("/{drawing_id}/open")
async def open_drawing(
    drawing_id: str,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    drawing = await settlement_service.open(db, drawing_id, actor)
    return success_response(DrawingResponse.from_drawing(drawing).model_dump(mode="json"), request)


@router.post("/{drawing_id}/evaluate")
async def evaluate_drawing(
    drawing_id: str,
    body: EvaluateRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await settlement_service.evaluate(
        db,
        drawing_id,
        body.winning_number,
        actor,
        bonus_multiplier_id=body.bonus_multiplier_id,
        bonus_outcome=body.bonus_outcome,
    )
    return success_response(EvaluationResponse.from_result(result).model_dump(mode="json"), request)


@router.post("/{drawing_id}/revert")
async def revert_evaluation(
    drawing_id: str,
    body: ReasonRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    drawing = await settlement_service.revert_evaluation(db, drawing_id, actor, body.reason)
    return success_response(DrawingResponse.from_drawing(drawing).model_dump(mode="json"), request)


@router.post("/{drawing_id}/close")
async def close_drawing(
    drawing_id: str,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    drawing = await settlement_service.close(db, drawing_id, actor)
    return success_response(DrawingResponse.from_drawing(drawing).model_dump(mode="json"), request)


@router.post("/{drawing_id}/force-reopen")
async def force_reopen(
    drawing_id: str,
    body: ReasonRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    drawing = await settlement_service.force_reopen(db, drawing_id, actor, body.reason)
    return success_response(DrawingResponse.from_drawing(drawing).model_dump(mode="json"), request)
