"""Repository and collaborator Protocols for drawing settlement."""

from datetime import date
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_common.enums import DrawingStatus, OwnerType, TicketStatus
from src.lt_settlement.domain.models import (
    Drawing,
    EligibleBet,
    EligibleTicket,
    LotteryMultiplier,
    PayableTicket,
    TicketPayment,
    WinningBet,
)


class DrawingRepositoryProtocol(Protocol):
    async def get_drawing(self, db: AsyncSession, drawing_id: str) -> Drawing | None: ...

    async def get_multiplier(
        self, db: AsyncSession, multiplier_id: str
    ) -> LotteryMultiplier | None: ...

    async def transition(
        self,
        db: AsyncSession,
        drawing_id: str,
        expected: DrawingStatus,
        target: DrawingStatus,
    ) -> Drawing | None:
        """Conditional UPDATE ... WHERE status = expected. None if it lost."""
        ...

    async def claim_evaluation(
        self,
        db: AsyncSession,
        drawing_id: str,
        winning_number: str,
        bonus_multiplier_id: str | None,
        bonus_multiplier: Decimal,
        bonus_outcome: str | None,
        actor: str,
    ) -> Drawing | None:
        """OPEN -> EVALUATED with the outcome fields, as one conditional UPDATE."""
        ...

    async def list_eligible_tickets(
        self, db: AsyncSession, drawing_id: str
    ) -> list[EligibleTicket]: ...

    async def list_eligible_bets(
        self, db: AsyncSession, drawing_id: str
    ) -> list[EligibleBet]: ...

    async def mark_winning_bets(
        self, db: AsyncSession, winners: list[WinningBet]
    ) -> None: ...

    async def mark_tickets_evaluated(
        self, db: AsyncSession, payouts: dict[str, Decimal]
    ) -> None: ...

    async def set_has_winner(
        self, db: AsyncSession, drawing_id: str, has_winner: bool
    ) -> Drawing: ...

    async def count_paid_tickets(self, db: AsyncSession, drawing_id: str) -> int: ...

    async def clear_evaluation(self, db: AsyncSession, drawing_id: str) -> None:
        """Reset bets, tickets and drawing outcome fields to pre-settlement shape."""
        ...


class ExclusionProvider(Protocol):
    async def excluded_ticket_ids(self, db: AsyncSession, drawing_id: str) -> set[str]: ...


class BalanceRefresher(Protocol):
    """Recomputes derived period balances after settlement changes."""

    async def refresh(
        self, owners: set[tuple[OwnerType, str]], business_dates: set[date]
    ) -> None: ...


class TicketPaymentRepositoryProtocol(Protocol):
    async def lock_ticket(self, db: AsyncSession, ticket_id: str) -> PayableTicket | None:
        """SELECT ... FOR UPDATE on the ticket row; every payment write holds it."""
        ...

    async def update_ticket_paid(
        self,
        db: AsyncSession,
        ticket_id: str,
        total_paid: Decimal,
        remaining_amount: Decimal,
        status: TicketStatus,
    ) -> PayableTicket: ...

    async def find_payment_by_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> TicketPayment | None: ...

    async def get_payment(self, db: AsyncSession, payment_id: str) -> TicketPayment | None: ...

    async def insert_payment(
        self, db: AsyncSession, payment: TicketPayment
    ) -> TicketPayment: ...

    async def mark_payment_reversed(
        self, db: AsyncSession, payment_id: str, actor: str, reason: str | None
    ) -> TicketPayment | None:
        """Conditional UPDATE ... WHERE NOT is_reversed. None if already reversed."""
        ...

    async def list_payments(self, db: AsyncSession, ticket_id: str) -> list[TicketPayment]: ...
