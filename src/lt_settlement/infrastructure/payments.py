"""TicketPaymentRepository — prize payments against evaluated tickets.

The ticket row lock taken by lock_ticket serializes every payment write for
that ticket, so total_paid and remaining_amount are read and rewritten
without a lost update. Reversal is a conditional UPDATE gated on
is_reversed, mirroring the drawing status gates.
"""

from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_common.enums import TicketStatus
from src.lt_common.errors import InternalError, TicketNotFoundError
from src.lt_settlement.domain.models import PayableTicket, TicketPayment

_TICKET_COLUMNS = (
    "id, drawing_id, status, is_winner, total_payout, total_paid, remaining_amount"
)
_PAYMENT_COLUMNS = (
    "id, ticket_id, amount, remaining_after, is_partial, is_final, method, notes, "
    "idempotency_key, paid_by, paid_at, is_reversed, reversed_at, reversed_by, "
    "reversal_reason"
)

_LOCK_TICKET_SQL = text(f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE id = :ticket_id AND deleted_at IS NULL
    FOR UPDATE
""")

_UPDATE_TICKET_PAID_SQL = text(f"""
    UPDATE tickets
    SET total_paid = :total_paid,
        remaining_amount = :remaining_amount,
        status = :status,
        updated_at = NOW()
    WHERE id = :ticket_id
    RETURNING {_TICKET_COLUMNS}
""")

_FIND_PAYMENT_BY_KEY_SQL = text(f"""
    SELECT {_PAYMENT_COLUMNS}
    FROM ticket_payments
    WHERE idempotency_key = :idempotency_key
""")

_GET_PAYMENT_SQL = text(f"""
    SELECT {_PAYMENT_COLUMNS}
    FROM ticket_payments
    WHERE id = :payment_id
""")

_INSERT_PAYMENT_SQL = text(f"""
    INSERT INTO ticket_payments
        (id, ticket_id, amount, remaining_after, is_partial, is_final, method, notes,
         idempotency_key, paid_by)
    VALUES
        (:id, :ticket_id, :amount, :remaining_after, :is_partial, :is_final, :method, :notes,
         :idempotency_key, :paid_by)
    RETURNING {_PAYMENT_COLUMNS}
""")

_MARK_REVERSED_SQL = text(f"""
    UPDATE ticket_payments
    SET is_reversed = TRUE,
        reversed_at = NOW(),
        reversed_by = :actor,
        reversal_reason = :reason
    WHERE id = :payment_id AND NOT is_reversed
    RETURNING {_PAYMENT_COLUMNS}
""")

_LIST_PAYMENTS_SQL = text(f"""
    SELECT {_PAYMENT_COLUMNS}
    FROM ticket_payments
    WHERE ticket_id = :ticket_id
    ORDER BY paid_at, id
""")


def _row_to_ticket(row: object) -> PayableTicket:
    return PayableTicket(
        id=str(row.id),  # type: ignore[attr-defined]
        drawing_id=str(row.drawing_id),  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        is_winner=row.is_winner,  # type: ignore[attr-defined]
        total_payout=Decimal(row.total_payout),  # type: ignore[attr-defined]
        total_paid=Decimal(row.total_paid),  # type: ignore[attr-defined]
        remaining_amount=Decimal(row.remaining_amount),  # type: ignore[attr-defined]
    )


def _row_to_payment(row: object) -> TicketPayment:
    return TicketPayment(
        id=str(row.id),  # type: ignore[attr-defined]
        ticket_id=str(row.ticket_id),  # type: ignore[attr-defined]
        amount=Decimal(row.amount),  # type: ignore[attr-defined]
        remaining_after=Decimal(row.remaining_after),  # type: ignore[attr-defined]
        is_partial=row.is_partial,  # type: ignore[attr-defined]
        is_final=row.is_final,  # type: ignore[attr-defined]
        method=row.method,  # type: ignore[attr-defined]
        notes=row.notes,  # type: ignore[attr-defined]
        idempotency_key=row.idempotency_key,  # type: ignore[attr-defined]
        paid_by=row.paid_by,  # type: ignore[attr-defined]
        paid_at=row.paid_at,  # type: ignore[attr-defined]
        is_reversed=row.is_reversed,  # type: ignore[attr-defined]
        reversed_at=row.reversed_at,  # type: ignore[attr-defined]
        reversed_by=row.reversed_by,  # type: ignore[attr-defined]
        reversal_reason=row.reversal_reason,  # type: ignore[attr-defined]
    )


class TicketPaymentRepository:
    async def lock_ticket(self, db: AsyncSession, ticket_id: str) -> PayableTicket | None:
        result = await db.execute(_LOCK_TICKET_SQL, {"ticket_id": ticket_id})
        row = result.fetchone()
        return _row_to_ticket(row) if row else None

    async def update_ticket_paid(
        self,
        db: AsyncSession,
        ticket_id: str,
        total_paid: Decimal,
        remaining_amount: Decimal,
        status: TicketStatus,
    ) -> PayableTicket:
        result = await db.execute(
            _UPDATE_TICKET_PAID_SQL,
            {
                "ticket_id": ticket_id,
                "total_paid": total_paid,
                "remaining_amount": remaining_amount,
                "status": status.value,
            },
        )
        row = result.fetchone()
        if row is None:
            raise TicketNotFoundError(ticket_id)
        return _row_to_ticket(row)

    async def find_payment_by_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> TicketPayment | None:
        result = await db.execute(
            _FIND_PAYMENT_BY_KEY_SQL, {"idempotency_key": idempotency_key}
        )
        row = result.fetchone()
        return _row_to_payment(row) if row else None

    async def get_payment(self, db: AsyncSession, payment_id: str) -> TicketPayment | None:
        result = await db.execute(_GET_PAYMENT_SQL, {"payment_id": payment_id})
        row = result.fetchone()
        return _row_to_payment(row) if row else None

    async def insert_payment(
        self, db: AsyncSession, payment: TicketPayment
    ) -> TicketPayment:
        result = await db.execute(
            _INSERT_PAYMENT_SQL,
            {
                "id": payment.id,
                "ticket_id": payment.ticket_id,
                "amount": payment.amount,
                "remaining_after": payment.remaining_after,
                "is_partial": payment.is_partial,
                "is_final": payment.is_final,
                "method": payment.method,
                "notes": payment.notes,
                "idempotency_key": payment.idempotency_key,
                "paid_by": payment.paid_by,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Ticket payment insert returned no rows")
        return _row_to_payment(row)

    async def mark_payment_reversed(
        self, db: AsyncSession, payment_id: str, actor: str, reason: str | None
    ) -> TicketPayment | None:
        result = await db.execute(
            _MARK_REVERSED_SQL, {"payment_id": payment_id, "actor": actor, "reason": reason}
        )
        row = result.fetchone()
        return _row_to_payment(row) if row else None

    async def list_payments(self, db: AsyncSession, ticket_id: str) -> list[TicketPayment]:
        result = await db.execute(_LIST_PAYMENTS_SQL, {"ticket_id": ticket_id})
        return [_row_to_payment(row) for row in result.fetchall()]
