"""Drawing evaluation rules — pure functions, no I/O.

Straight bets win when their number equals the winning number and pay
stake x the multiplier snapshotted at sale. Bonus bets win only when the
drawing resolved a positive bonus multiplier and their bonus number equals
the winning number; they pay stake x the bonus multiplier, which replaces
their snapshot.
"""

from collections.abc import Iterable
from decimal import Decimal

from src.lt_common.enums import BetType, DrawingStatus
from src.lt_common.errors import WinningNumberError
from src.lt_common.money import ZERO, quantize_money
from src.lt_settlement.domain.models import EligibleBet, EvaluationOutcome, WinningBet

# action -> (required current status, target status)
TRANSITIONS: dict[str, tuple[DrawingStatus, DrawingStatus]] = {
    "open": (DrawingStatus.SCHEDULED, DrawingStatus.OPEN),
    "evaluate": (DrawingStatus.OPEN, DrawingStatus.EVALUATED),
    "revert": (DrawingStatus.EVALUATED, DrawingStatus.OPEN),
    "close": (DrawingStatus.EVALUATED, DrawingStatus.CLOSED),
    "force_reopen": (DrawingStatus.CLOSED, DrawingStatus.OPEN),
}


def validate_winning_number(winning_number: str, digits: int) -> str:
    """Return the number unchanged if it is exactly `digits` ASCII digits."""
    if (
        len(winning_number) != digits
        or not winning_number.isascii()
        or not winning_number.isdigit()
    ):
        raise WinningNumberError(winning_number, digits)
    return winning_number


def compute_outcomes(
    bets: Iterable[EligibleBet],
    ticket_ids: Iterable[str],
    winning_number: str,
    bonus_multiplier: Decimal,
    currency: str = "CRC",
) -> EvaluationOutcome:
    """Determine winners and per-ticket payouts for one drawing.

    `ticket_ids` lists every eligible ticket so tickets without a winning
    bet still get a zero payout row.
    """
    outcome = EvaluationOutcome(ticket_payouts={tid: ZERO for tid in ticket_ids})
    for bet in bets:
        if bet.bet_type == BetType.NUMBER.value:
            if bet.number != winning_number:
                continue
            multiplier = bet.multiplier
        elif bet.bet_type == BetType.BONUS.value:
            if bonus_multiplier <= ZERO or bet.bonus_number != winning_number:
                continue
            multiplier = bonus_multiplier
        else:
            continue
        payout = quantize_money(bet.stake * multiplier, currency)
        outcome.winners.append(
            WinningBet(
                bet_id=bet.id,
                ticket_id=bet.ticket_id,
                bet_type=bet.bet_type,
                multiplier=multiplier,
                payout=payout,
            )
        )
        outcome.ticket_payouts[bet.ticket_id] = (
            outcome.ticket_payouts.get(bet.ticket_id, ZERO) + payout
        )
    return outcome
