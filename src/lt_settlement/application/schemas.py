"""Pydantic schemas for the lt_settlement API."""

from decimal import Decimal

from pydantic import BaseModel, Field

from src.lt_settlement.domain.models import (
    Drawing,
    EvaluationResult,
    PayableTicket,
    PaymentResult,
    TicketPayment,
)


class EvaluateRequest(BaseModel):
    winning_number: str = Field(..., min_length=1, max_length=8)
    bonus_multiplier_id: str | None = None
    bonus_outcome: str | None = Field(None, max_length=64)


class ReasonRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class DrawingResponse(BaseModel):
    id: str
    lottery_id: str
    scheduled_at: str
    digits: int
    status: str
    winning_number: str | None
    bonus_multiplier_id: str | None
    bonus_multiplier: Decimal | None
    bonus_outcome: str | None
    has_winner: bool

    @classmethod
    def from_drawing(cls, d: Drawing) -> "DrawingResponse":
        return cls(
            id=d.id,
            lottery_id=d.lottery_id,
            scheduled_at=d.scheduled_at.isoformat(),
            digits=d.digits,
            status=d.status,
            winning_number=d.winning_number,
            bonus_multiplier_id=d.bonus_multiplier_id,
            bonus_multiplier=d.bonus_multiplier,
            bonus_outcome=d.bonus_outcome,
            has_winner=d.has_winner,
        )


class EvaluationResponse(BaseModel):
    drawing: DrawingResponse
    tickets_evaluated: int
    winning_bets: int
    winning_tickets: int
    total_payout: Decimal
    excluded_tickets: int

    @classmethod
    def from_result(cls, r: EvaluationResult) -> "EvaluationResponse":
        return cls(
            drawing=DrawingResponse.from_drawing(r.drawing),
            tickets_evaluated=r.tickets_evaluated,
            winning_bets=r.winning_bets,
            winning_tickets=r.winning_tickets,
            total_payout=r.total_payout,
            excluded_tickets=r.excluded_tickets,
        )


class PayTicketRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    is_final: bool = Field(False, description="Marks the ticket PAID even if partially paid")
    method: str = Field("cash", min_length=1, max_length=32)
    notes: str | None = Field(None, max_length=500)
    idempotency_key: str | None = Field(None, max_length=128)


class TicketPaymentItem(BaseModel):
    id: str
    ticket_id: str
    amount: Decimal
    remaining_after: Decimal
    is_partial: bool
    is_final: bool
    method: str
    notes: str | None
    paid_by: str
    paid_at: str | None
    is_reversed: bool
    reversed_by: str | None
    reversal_reason: str | None

    @classmethod
    def from_payment(cls, p: TicketPayment) -> "TicketPaymentItem":
        return cls(
            id=p.id,
            ticket_id=p.ticket_id,
            amount=p.amount,
            remaining_after=p.remaining_after,
            is_partial=p.is_partial,
            is_final=p.is_final,
            method=p.method,
            notes=p.notes,
            paid_by=p.paid_by,
            paid_at=p.paid_at.isoformat() if p.paid_at else None,
            is_reversed=p.is_reversed,
            reversed_by=p.reversed_by,
            reversal_reason=p.reversal_reason,
        )


class TicketPrizeState(BaseModel):
    id: str
    status: str
    total_payout: Decimal
    total_paid: Decimal
    remaining_amount: Decimal

    @classmethod
    def from_ticket(cls, t: PayableTicket) -> "TicketPrizeState":
        return cls(
            id=t.id,
            status=t.status,
            total_payout=t.total_payout,
            total_paid=t.total_paid,
            remaining_amount=t.remaining_amount,
        )


class PaymentResponse(BaseModel):
    payment: TicketPaymentItem
    ticket: TicketPrizeState
    replayed: bool

    @classmethod
    def from_result(cls, r: PaymentResult) -> "PaymentResponse":
        return cls(
            payment=TicketPaymentItem.from_payment(r.payment),
            ticket=TicketPrizeState.from_ticket(r.ticket),
            replayed=r.replayed,
        )
