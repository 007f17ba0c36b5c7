"""Tests for the pure evaluation rules in lt_settlement.domain.evaluation."""

from decimal import Decimal

import pytest

from src.lt_common.enums import DrawingStatus
from src.lt_common.errors import WinningNumberError
from src.lt_settlement.domain.evaluation import (
    TRANSITIONS,
    compute_outcomes,
    validate_winning_number,
)
from src.lt_settlement.domain.models import EligibleBet


def _bet(bet_id: str, ticket_id: str = "t-1", **kwargs) -> EligibleBet:
    kwargs.setdefault("bet_type", "NUMBER")
    kwargs.setdefault("number", "47")
    kwargs.setdefault("stake", Decimal("10"))
    kwargs.setdefault("multiplier", Decimal("70"))
    return EligibleBet(id=bet_id, ticket_id=ticket_id, **kwargs)


class TestValidateWinningNumber:
    def test_accepts_exact_digits(self) -> None:
        assert validate_winning_number("07", 2) == "07"
        assert validate_winning_number("123", 3) == "123"

    @pytest.mark.parametrize("value", ["7", "007", "4a", " 7", "٤٧"])
    def test_rejects(self, value: str) -> None:
        with pytest.raises(WinningNumberError):
            validate_winning_number(value, 2)


class TestComputeOutcomes:
    def test_every_ticket_gets_a_payout_row(self) -> None:
        outcome = compute_outcomes([], ["t-1", "t-2"], "47", Decimal("0"))
        assert outcome.ticket_payouts == {"t-1": Decimal("0"), "t-2": Decimal("0")}
        assert not outcome.has_winner

    def test_payouts_sum_per_ticket(self) -> None:
        bets = [
            _bet("b-1"),
            _bet("b-2", stake=Decimal("2.5"), multiplier=Decimal("80")),
            _bet("b-3", ticket_id="t-2", number="12"),
        ]
        outcome = compute_outcomes(bets, ["t-1", "t-2"], "47", Decimal("0"))
        assert [w.bet_id for w in outcome.winners] == ["b-1", "b-2"]
        assert outcome.ticket_payouts["t-1"] == Decimal("900.00")
        assert outcome.ticket_payouts["t-2"] == Decimal("0")
        assert outcome.total_payout == Decimal("900.00")

    def test_bonus_requires_positive_multiplier_and_matching_bonus_number(self) -> None:
        bets = [
            _bet("b-1", bet_type="BONUS", bonus_number="47", stake=Decimal("5"),
                 multiplier=Decimal("0")),
            _bet("b-2", bet_type="BONUS", bonus_number="48", stake=Decimal("5"),
                 multiplier=Decimal("0")),
        ]
        outcome = compute_outcomes(bets, ["t-1"], "47", Decimal("2"))
        assert [w.bet_id for w in outcome.winners] == ["b-1"]
        assert outcome.winners[0].multiplier == Decimal("2")
        assert outcome.winners[0].payout == Decimal("10.00")

        none = compute_outcomes(bets, ["t-1"], "47", Decimal("0"))
        assert none.winners == []

    def test_payout_rounds_half_up(self) -> None:
        outcome = compute_outcomes(
            [_bet("b-1", stake=Decimal("0.15"), multiplier=Decimal("0.5"))],
            ["t-1"], "47", Decimal("0"),
        )
        assert outcome.winners[0].payout == Decimal("0.08")


class TestTransitions:
    def test_table(self) -> None:
        assert TRANSITIONS["evaluate"] == (DrawingStatus.OPEN, DrawingStatus.EVALUATED)
        assert TRANSITIONS["revert"] == (DrawingStatus.EVALUATED, DrawingStatus.OPEN)
        assert TRANSITIONS["force_reopen"] == (DrawingStatus.CLOSED, DrawingStatus.OPEN)
