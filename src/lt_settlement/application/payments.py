"""TicketPaymentService — paying out winning tickets, in one or more parts.

A winning ticket is EVALUATED with remaining_amount = total_payout. Each
payment raises total_paid and lowers remaining_amount by the same amount
under the ticket row lock; the ticket turns PAID when nothing remains or
the payment is marked final. Reversing a payment gives the amount back and
returns the ticket to EVALUATED. A ticket with any unreversed payment keeps
its drawing from being reverted.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.lt_common.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_safely
from src.lt_common.enums import TicketStatus
from src.lt_common.errors import (
    IdempotencyConflictError,
    PaymentAlreadyReversedError,
    PaymentAmountError,
    TicketNotFoundError,
    TicketNotPayableError,
    TicketPaymentNotFoundError,
)
from src.lt_common.money import ZERO, quantize_money
from src.lt_settlement.domain.models import PayableTicket, PaymentResult, TicketPayment
from src.lt_settlement.domain.repository import TicketPaymentRepositoryProtocol
from src.lt_settlement.infrastructure.payments import TicketPaymentRepository

logger = logging.getLogger(__name__)


class TicketPaymentService:
    def __init__(
        self,
        repo: TicketPaymentRepositoryProtocol | None = None,
        audit: AuditSink | None = None,
        currency: str | None = None,
    ) -> None:
        self._repo: TicketPaymentRepositoryProtocol = repo or TicketPaymentRepository()
        self._audit: AuditSink = audit or LoggingAuditSink()
        self._currency = currency or settings.DEFAULT_CURRENCY

    async def pay(
        self,
        db: AsyncSession,
        ticket_id: str,
        amount: Decimal,
        actor: str,
        *,
        is_final: bool = False,
        method: str = "cash",
        notes: str | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentResult:
        try:
            value = quantize_money(amount, self._currency)
        except (TypeError, ArithmeticError) as exc:
            raise PaymentAmountError(str(amount)) from exc
        if value <= ZERO:
            raise PaymentAmountError("amount must be positive")

        try:
            ticket = await self._lock(db, ticket_id)
            if idempotency_key is not None:
                existing = await self._repo.find_payment_by_key(db, idempotency_key)
                if existing is not None:
                    if existing.ticket_id != ticket_id or existing.amount != value:
                        raise IdempotencyConflictError(idempotency_key)
                    await db.commit()
                    return PaymentResult(payment=existing, ticket=ticket, replayed=True)

            self._check_payable(ticket)
            total_paid = ticket.total_paid + value
            if total_paid > ticket.total_payout:
                raise PaymentAmountError(
                    f"{value} exceeds the {ticket.remaining_amount} still owed on {ticket_id}"
                )
            remaining = ticket.total_payout - total_paid
            settled = remaining == ZERO or is_final

            payment = await self._repo.insert_payment(
                db,
                TicketPayment(
                    id=str(uuid.uuid4()),
                    ticket_id=ticket_id,
                    amount=value,
                    remaining_after=remaining,
                    paid_by=actor,
                    is_partial=remaining > ZERO,
                    is_final=is_final,
                    method=method,
                    notes=notes,
                    idempotency_key=idempotency_key,
                ),
            )
            ticket = await self._repo.update_ticket_paid(
                db,
                ticket_id,
                total_paid,
                remaining,
                TicketStatus.PAID if settled else TicketStatus.EVALUATED,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Ticket %s paid %s by %s, remaining=%s status=%s",
            ticket_id,
            value,
            actor,
            remaining,
            ticket.status,
        )
        await emit_safely(
            self._audit,
            AuditRecord(
                action="TICKET_PAYMENT_CREATED",
                target_type="TICKET",
                target_id=ticket_id,
                actor=actor,
                details={
                    "payment_id": payment.id,
                    "amount": str(value),
                    "remaining": str(remaining),
                    "is_final": is_final,
                },
            ),
        )
        return PaymentResult(payment=payment, ticket=ticket)

    async def reverse(
        self, db: AsyncSession, payment_id: str, actor: str, reason: str | None = None
    ) -> PaymentResult:
        try:
            found = await self._repo.get_payment(db, payment_id)
            if found is None:
                raise TicketPaymentNotFoundError(payment_id)
            ticket = await self._lock(db, found.ticket_id)
            payment = await self._repo.mark_payment_reversed(db, payment_id, actor, reason)
            if payment is None:
                raise PaymentAlreadyReversedError(payment_id)
            total_paid = ticket.total_paid - payment.amount
            ticket = await self._repo.update_ticket_paid(
                db,
                ticket.id,
                total_paid,
                ticket.total_payout - total_paid,
                TicketStatus.EVALUATED,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Ticket payment %s reversed by %s", payment_id, actor)
        await emit_safely(
            self._audit,
            AuditRecord(
                action="TICKET_PAYMENT_REVERSED",
                target_type="TICKET",
                target_id=ticket.id,
                actor=actor,
                details={
                    "payment_id": payment_id,
                    "amount": str(payment.amount),
                    "reason": reason,
                },
            ),
        )
        return PaymentResult(payment=payment, ticket=ticket)

    async def list_payments(self, db: AsyncSession, ticket_id: str) -> list[TicketPayment]:
        return await self._repo.list_payments(db, ticket_id)

    async def _lock(self, db: AsyncSession, ticket_id: str) -> PayableTicket:
        ticket = await self._repo.lock_ticket(db, ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    @staticmethod
    def _check_payable(ticket: PayableTicket) -> None:
        if not ticket.is_winner:
            raise TicketNotPayableError(ticket.id, "ticket is not a winner")
        if ticket.status == TicketStatus.PAID.value:
            raise TicketNotPayableError(ticket.id, "ticket is already paid")
        if ticket.status != TicketStatus.EVALUATED.value:
            raise TicketNotPayableError(ticket.id, f"ticket status is {ticket.status}")
