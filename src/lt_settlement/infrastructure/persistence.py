"""DrawingRepository and DrawingExclusionProvider — raw SQL.

Status changes are conditional `UPDATE ... WHERE status = :expected
RETURNING`; zero rows returned means a concurrent caller won the gate.

Ticket eligibility (shared by settlement and the balance aggregator):
not soft-deleted, active, not cancelled, and both the seller and the
outlet active and not soft-deleted. Exclusion-list filtering happens in
the service with the set returned by the ExclusionProvider.
"""

from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_common.enums import DrawingStatus
from src.lt_common.errors import DrawingNotFoundError
from src.lt_settlement.domain.models import (
    Drawing,
    EligibleBet,
    EligibleTicket,
    LotteryMultiplier,
    WinningBet,
)

_DRAWING_COLUMNS = (
    "id, lottery_id, scheduled_at, digits, status, winning_number, "
    "bonus_multiplier_id, bonus_multiplier, bonus_outcome, has_winner, "
    "evaluated_at, evaluated_by"
)

_GET_DRAWING_SQL = text(f"""
    SELECT {_DRAWING_COLUMNS}
    FROM drawings
    WHERE id = :drawing_id
""")

_GET_MULTIPLIER_SQL = text("""
    SELECT id, lottery_id, name, value, kind, is_active, drawing_id
    FROM lottery_multipliers
    WHERE id = :multiplier_id
""")

_TRANSITION_SQL = text(f"""
    UPDATE drawings
    SET status = :target,
        updated_at = NOW()
    WHERE id = :drawing_id AND status = :expected
    RETURNING {_DRAWING_COLUMNS}
""")

_CLAIM_EVALUATION_SQL = text(f"""
    UPDATE drawings
    SET status = 'EVALUATED',
        winning_number = :winning_number,
        bonus_multiplier_id = :bonus_multiplier_id,
        bonus_multiplier = :bonus_multiplier,
        bonus_outcome = :bonus_outcome,
        has_winner = FALSE,
        evaluated_at = NOW(),
        evaluated_by = :actor,
        updated_at = NOW()
    WHERE id = :drawing_id AND status = 'OPEN'
    RETURNING {_DRAWING_COLUMNS}
""")

_SET_HAS_WINNER_SQL = text(f"""
    UPDATE drawings
    SET has_winner = :has_winner,
        updated_at = NOW()
    WHERE id = :drawing_id
    RETURNING {_DRAWING_COLUMNS}
""")

_ELIGIBLE_TICKETS_CTE = """
    SELECT t.id, t.seller_id, t.outlet_id, t.business_date
    FROM tickets t
    JOIN sellers s ON s.id = t.seller_id
    JOIN outlets o ON o.id = t.outlet_id
    WHERE t.drawing_id = :drawing_id
      AND t.deleted_at IS NULL
      AND t.is_active
      AND t.status <> 'CANCELLED'
      AND s.is_active AND s.deleted_at IS NULL
      AND o.is_active AND o.deleted_at IS NULL
"""

_LIST_ELIGIBLE_TICKETS_SQL = text(_ELIGIBLE_TICKETS_CTE + " ORDER BY t.id")

_LIST_ELIGIBLE_BETS_SQL = text(f"""
    WITH eligible AS ({_ELIGIBLE_TICKETS_CTE})
    SELECT b.id, b.ticket_id, b.bet_type, b.number, b.bonus_number,
           b.stake, b.multiplier
    FROM bets b
    JOIN eligible e ON e.id = b.ticket_id
    WHERE b.deleted_at IS NULL
    ORDER BY b.ticket_id, b.id
""")

_MARK_WINNING_BET_SQL = text("""
    UPDATE bets
    SET is_winner = TRUE,
        multiplier = :multiplier,
        payout = :payout,
        updated_at = NOW()
    WHERE id = :bet_id
""")

_MARK_TICKET_EVALUATED_SQL = text("""
    UPDATE tickets
    SET status = 'EVALUATED',
        is_winner = :is_winner,
        total_payout = :total_payout,
        total_paid = 0,
        remaining_amount = :total_payout,
        updated_at = NOW()
    WHERE id = :ticket_id
""")

_COUNT_PAID_TICKETS_SQL = text("""
    SELECT COUNT(*) AS paid
    FROM tickets
    WHERE drawing_id = :drawing_id
      AND (status = 'PAID' OR total_paid > 0)
""")

_CLEAR_BETS_SQL = text("""
    UPDATE bets b
    SET is_winner = FALSE,
        payout = 0,
        multiplier = CASE WHEN b.bet_type = 'BONUS' THEN 0 ELSE b.multiplier END,
        updated_at = NOW()
    FROM tickets t
    WHERE t.id = b.ticket_id AND t.drawing_id = :drawing_id
""")

_CLEAR_TICKETS_SQL = text("""
    UPDATE tickets
    SET status = 'ACTIVE',
        is_winner = FALSE,
        total_payout = 0,
        total_paid = 0,
        remaining_amount = 0,
        updated_at = NOW()
    WHERE drawing_id = :drawing_id AND status = 'EVALUATED'
""")

_CLEAR_DRAWING_SQL = text("""
    UPDATE drawings
    SET winning_number = NULL,
        bonus_multiplier_id = NULL,
        bonus_multiplier = NULL,
        bonus_outcome = NULL,
        has_winner = FALSE,
        evaluated_at = NULL,
        evaluated_by = NULL,
        updated_at = NOW()
    WHERE id = :drawing_id
""")

# A row without seller_id excludes every ticket of the outlet.
_EXCLUDED_TICKETS_SQL = text("""
    SELECT DISTINCT t.id
    FROM tickets t
    JOIN drawing_exclusions x
      ON x.drawing_id = t.drawing_id
     AND x.outlet_id = t.outlet_id
     AND (x.seller_id IS NULL OR x.seller_id = t.seller_id)
    WHERE t.drawing_id = :drawing_id
      AND x.is_active
""")


def _row_to_drawing(row: object) -> Drawing:
    return Drawing(
        id=str(row.id),  # type: ignore[attr-defined]
        lottery_id=str(row.lottery_id),  # type: ignore[attr-defined]
        scheduled_at=row.scheduled_at,  # type: ignore[attr-defined]
        digits=row.digits,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        winning_number=row.winning_number,  # type: ignore[attr-defined]
        bonus_multiplier_id=row.bonus_multiplier_id,  # type: ignore[attr-defined]
        bonus_multiplier=row.bonus_multiplier,  # type: ignore[attr-defined]
        bonus_outcome=row.bonus_outcome,  # type: ignore[attr-defined]
        has_winner=row.has_winner,  # type: ignore[attr-defined]
        evaluated_at=row.evaluated_at,  # type: ignore[attr-defined]
        evaluated_by=row.evaluated_by,  # type: ignore[attr-defined]
    )


def _row_to_multiplier(row: object) -> LotteryMultiplier:
    return LotteryMultiplier(
        id=str(row.id),  # type: ignore[attr-defined]
        lottery_id=str(row.lottery_id),  # type: ignore[attr-defined]
        name=row.name,  # type: ignore[attr-defined]
        value=Decimal(row.value),  # type: ignore[attr-defined]
        kind=row.kind,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        drawing_id=row.drawing_id,  # type: ignore[attr-defined]
    )


class DrawingRepository:
    async def get_drawing(self, db: AsyncSession, drawing_id: str) -> Drawing | None:
        result = await db.execute(_GET_DRAWING_SQL, {"drawing_id": drawing_id})
        row = result.fetchone()
        return _row_to_drawing(row) if row else None

    async def get_multiplier(
        self, db: AsyncSession, multiplier_id: str
    ) -> LotteryMultiplier | None:
        result = await db.execute(_GET_MULTIPLIER_SQL, {"multiplier_id": multiplier_id})
        row = result.fetchone()
        return _row_to_multiplier(row) if row else None

    async def transition(
        self,
        db: AsyncSession,
        drawing_id: str,
        expected: DrawingStatus,
        target: DrawingStatus,
    ) -> Drawing | None:
        result = await db.execute(
            _TRANSITION_SQL,
            {"drawing_id": drawing_id, "expected": expected.value, "target": target.value},
        )
        row = result.fetchone()
        return _row_to_drawing(row) if row else None

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
        result = await db.execute(
            _CLAIM_EVALUATION_SQL,
            {
                "drawing_id": drawing_id,
                "winning_number": winning_number,
                "bonus_multiplier_id": bonus_multiplier_id,
                "bonus_multiplier": bonus_multiplier,
                "bonus_outcome": bonus_outcome,
                "actor": actor,
            },
        )
        row = result.fetchone()
        return _row_to_drawing(row) if row else None

    async def list_eligible_tickets(
        self, db: AsyncSession, drawing_id: str
    ) -> list[EligibleTicket]:
        result = await db.execute(_LIST_ELIGIBLE_TICKETS_SQL, {"drawing_id": drawing_id})
        return [
            EligibleTicket(
                id=str(row.id),
                seller_id=str(row.seller_id),
                outlet_id=str(row.outlet_id),
                business_date=row.business_date,
            )
            for row in result.fetchall()
        ]

    async def list_eligible_bets(
        self, db: AsyncSession, drawing_id: str
    ) -> list[EligibleBet]:
        result = await db.execute(_LIST_ELIGIBLE_BETS_SQL, {"drawing_id": drawing_id})
        return [
            EligibleBet(
                id=str(row.id),
                ticket_id=str(row.ticket_id),
                bet_type=row.bet_type,
                number=row.number,
                bonus_number=row.bonus_number,
                stake=Decimal(row.stake),
                multiplier=Decimal(row.multiplier),
            )
            for row in result.fetchall()
        ]

    async def mark_winning_bets(
        self, db: AsyncSession, winners: list[WinningBet]
    ) -> None:
        for w in winners:
            await db.execute(
                _MARK_WINNING_BET_SQL,
                {"bet_id": w.bet_id, "multiplier": w.multiplier, "payout": w.payout},
            )

    async def mark_tickets_evaluated(
        self, db: AsyncSession, payouts: dict[str, Decimal]
    ) -> None:
        for ticket_id, total in payouts.items():
            await db.execute(
                _MARK_TICKET_EVALUATED_SQL,
                {"ticket_id": ticket_id, "is_winner": total > 0, "total_payout": total},
            )

    async def set_has_winner(
        self, db: AsyncSession, drawing_id: str, has_winner: bool
    ) -> Drawing:
        result = await db.execute(
            _SET_HAS_WINNER_SQL, {"drawing_id": drawing_id, "has_winner": has_winner}
        )
        row = result.fetchone()
        if row is None:
            raise DrawingNotFoundError(drawing_id)
        return _row_to_drawing(row)

    async def count_paid_tickets(self, db: AsyncSession, drawing_id: str) -> int:
        result = await db.execute(_COUNT_PAID_TICKETS_SQL, {"drawing_id": drawing_id})
        row = result.fetchone()
        return int(row.paid) if row else 0

    async def clear_evaluation(self, db: AsyncSession, drawing_id: str) -> None:
        params = {"drawing_id": drawing_id}
        await db.execute(_CLEAR_BETS_SQL, params)
        await db.execute(_CLEAR_TICKETS_SQL, params)
        await db.execute(_CLEAR_DRAWING_SQL, params)


class DrawingExclusionProvider:
    """Reads the drawing_exclusions block-list."""

    async def excluded_ticket_ids(self, db: AsyncSession, drawing_id: str) -> set[str]:
        result = await db.execute(_EXCLUDED_TICKETS_SQL, {"drawing_id": drawing_id})
        return {str(row.id) for row in result.fetchall()}
