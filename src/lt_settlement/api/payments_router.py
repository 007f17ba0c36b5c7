"""Ticket prize payments. Mutations take the principal from X-Actor-Id."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_common.database import get_db_session
from src.lt_common.response import ApiResponse, success_response
from src.lt_gateway.auth.dependencies import get_actor
from src.lt_settlement.application.payments import TicketPaymentService
from src.lt_settlement.application.schemas import (
    PaymentResponse,
    PayTicketRequest,
    ReasonRequest,
    TicketPaymentItem,
)

router = APIRouter(prefix="/tickets", tags=["ticket-payments"])

payment_service = TicketPaymentService()


@router.post("/{ticket_id}/payments")
async def pay_ticket(
    ticket_id: str,
    body: PayTicketRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await payment_service.pay(
        db,
        ticket_id,
        body.amount,
        actor,
        is_final=body.is_final,
        method=body.method,
        notes=body.notes,
        idempotency_key=body.idempotency_key,
    )
    return success_response(PaymentResponse.from_result(result).model_dump(mode="json"), request)


@router.get("/{ticket_id}/payments")
async def list_payments(
    ticket_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    payments = await payment_service.list_payments(db, ticket_id)
    items = [TicketPaymentItem.from_payment(p).model_dump(mode="json") for p in payments]
    return success_response({"items": items}, request)


@router.post("/payments/{payment_id}/reverse")
async def reverse_payment(
    payment_id: str,
    body: ReasonRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await payment_service.reverse(db, payment_id, actor, body.reason)
    return success_response(PaymentResponse.from_result(result).model_dump(mode="json"), request)
