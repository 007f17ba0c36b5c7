"""Domain models for lt_settlement — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from src.lt_common.enums import OwnerType
from src.lt_common.money import ZERO


@dataclass
class Drawing:
    id: str
    lottery_id: str
    scheduled_at: datetime
    digits: int                          # required winning-number length
    status: str                          # DrawingStatus value
    winning_number: str | None = None
    bonus_multiplier_id: str | None = None
    bonus_multiplier: Decimal | None = None
    bonus_outcome: str | None = None     # label shown for the bonus result
    has_winner: bool = False
    evaluated_at: datetime | None = None
    evaluated_by: str | None = None


@dataclass
class LotteryMultiplier:
    id: str
    lottery_id: str
    name: str
    value: Decimal
    kind: str                            # MultiplierKind value
    is_active: bool = True
    drawing_id: str | None = None        # None = applies to every drawing


@dataclass
class EligibleTicket:
    id: str
    seller_id: str
    outlet_id: str
    business_date: date


@dataclass
class EligibleBet:
    id: str
    ticket_id: str
    bet_type: str                        # BetType value
    number: str
    stake: Decimal
    multiplier: Decimal                  # snapshotted at sale; 0 for unsettled BONUS bets
    bonus_number: str | None = None


@dataclass
class WinningBet:
    bet_id: str
    ticket_id: str
    bet_type: str
    multiplier: Decimal                  # multiplier the payout was computed with
    payout: Decimal


@dataclass
class EvaluationOutcome:
    winners: list[WinningBet] = field(default_factory=list)
    # ticket_id -> Σ winning payouts; every evaluated ticket is present
    ticket_payouts: dict[str, Decimal] = field(default_factory=dict)

    @property
    def has_winner(self) -> bool:
        return bool(self.winners)

    @property
    def total_payout(self) -> Decimal:
        return sum((w.payout for w in self.winners), ZERO)


@dataclass
class EvaluationResult:
    drawing: Drawing
    tickets_evaluated: int
    winning_bets: int
    winning_tickets: int
    total_payout: Decimal
    excluded_tickets: int
    affected_owners: set[tuple[OwnerType, str]] = field(default_factory=set)
    affected_dates: set[date] = field(default_factory=set)


@dataclass
class PayableTicket:
    """Prize state of one ticket, read under its row lock."""

    id: str
    drawing_id: str
    status: str                          # TicketStatus value
    is_winner: bool
    total_payout: Decimal
    total_paid: Decimal
    remaining_amount: Decimal


@dataclass
class TicketPayment:
    id: str
    ticket_id: str
    amount: Decimal                      # always positive
    remaining_after: Decimal             # payout still owed after this payment
    paid_by: str
    is_partial: bool = False
    is_final: bool = False               # closes the ticket even if partial
    method: str = "cash"
    notes: str | None = None
    idempotency_key: str | None = None
    paid_at: datetime | None = None
    is_reversed: bool = False
    reversed_at: datetime | None = None
    reversed_by: str | None = None
    reversal_reason: str | None = None


@dataclass
class PaymentResult:
    payment: TicketPayment
    ticket: PayableTicket
    replayed: bool = False
