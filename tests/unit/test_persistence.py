"""Unit tests for the SQL repositories using MagicMock AsyncSession."""

from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.lt_balance.domain.models import MonthlyClosing, PeriodTotals
from src.lt_balance.infrastructure.persistence import BalanceRepository
from src.lt_commission.infrastructure.persistence import PolicyChainLoader
from src.lt_common.enums import DrawingStatus, LedgerEntryType, OwnerType, TicketStatus
from src.lt_common.errors import InternalError, InvalidPeriodError, TicketNotFoundError
from src.lt_ledger.domain.models import NewEntry, SaleCommission
from src.lt_ledger.infrastructure.persistence import LedgerRepository
from src.lt_settlement.domain.models import TicketPayment, WinningBet
from src.lt_settlement.infrastructure.payments import TicketPaymentRepository
from src.lt_settlement.infrastructure.persistence import (
    DrawingExclusionProvider,
    DrawingRepository,
)


def _result(one=None, many=None) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = one
    result.fetchall.return_value = many or []
    return result


def _entry_row(**kwargs):
    row = MagicMock()
    row.id = kwargs.get("id", 1)
    row.account_id = kwargs.get("account_id", "acc-1")
    row.entry_type = kwargs.get("entry_type", "SALE")
    row.amount = kwargs.get("amount", Decimal("-10.00"))
    row.business_date = kwargs.get("business_date", date(2026, 3, 10))
    row.created_by = "u"
    row.reference_type = None
    row.reference_id = None
    row.idempotency_key = kwargs.get("idempotency_key")
    row.reversal_of = None
    row.note = None
    row.created_at = datetime.now(UTC)
    return row


def _drawing_row(**kwargs):
    row = MagicMock()
    row.id = kwargs.get("id", "d-1")
    row.lottery_id = "lot-1"
    row.scheduled_at = datetime(2026, 3, 10, 18, tzinfo=UTC)
    row.digits = 2
    row.status = kwargs.get("status", "OPEN")
    row.winning_number = kwargs.get("winning_number")
    row.bonus_multiplier_id = None
    row.bonus_multiplier = None
    row.bonus_outcome = None
    row.has_winner = False
    row.evaluated_at = None
    row.evaluated_by = None
    return row


@pytest.fixture
def db():
    return MagicMock()


class TestLedgerRepository:
    async def test_insert_entry_binds_enum_value(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=_entry_row(idempotency_key="k")))
        entry = await LedgerRepository().insert_entry(
            db,
            NewEntry(
                account_id="acc-1",
                entry_type=LedgerEntryType.SALE,
                amount=Decimal("-10.00"),
                business_date=date(2026, 3, 10),
                created_by="u",
                idempotency_key="k",
            ),
        )
        params = db.execute.call_args[0][1]
        assert params["entry_type"] == "SALE"
        assert params["idempotency_key"] == "k"
        assert entry.amount == Decimal("-10.00")

    async def test_find_entry_by_key_none(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=None))
        assert await LedgerRepository().find_entry_by_key(db, "acc-1", "k") is None

    async def test_sale_commissions_insert_one_row_per_bet(self, db) -> None:
        db.execute = AsyncMock()
        await LedgerRepository().insert_sale_commissions(
            db,
            [
                SaleCommission(
                    "acc-1", "t-1", "b-1", Decimal("100"), Decimal("10"), Decimal("10.00")
                ),
                SaleCommission("acc-1", "t-1", "b-2", Decimal("50"), Decimal("0"), Decimal("0")),
            ],
        )
        assert db.execute.await_count == 2
        assert db.execute.call_args_list[1][0][1]["bet_id"] == "b-2"

    async def test_list_sale_commissions_maps_rows(self, db) -> None:
        row = MagicMock(
            account_id="acc-1", ticket_id="t-1", bet_id="b-1", stake=Decimal("100"),
            rate=Decimal("10"), amount=Decimal("10.00"), origin="SELLER", rule_id="r1",
        )
        db.execute = AsyncMock(return_value=_result(many=[row]))
        [stored] = await LedgerRepository().list_sale_commissions(db, "acc-1", "t-1")
        assert stored.stake == Decimal("100")
        assert stored.origin == "SELLER"


class TestDrawingRepository:
    async def test_transition_lost_race_returns_none(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=None))
        moved = await DrawingRepository().transition(
            db, "d-1", DrawingStatus.OPEN, DrawingStatus.EVALUATED
        )
        assert moved is None
        params = db.execute.call_args[0][1]
        assert params["expected"] == "OPEN"
        assert params["target"] == "EVALUATED"

    async def test_get_drawing_maps_row(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=_drawing_row(status="EVALUATED")))
        drawing = await DrawingRepository().get_drawing(db, "d-1")
        assert drawing is not None
        assert drawing.status == "EVALUATED"
        assert drawing.digits == 2

    async def test_mark_winning_bets_one_update_per_bet(self, db) -> None:
        db.execute = AsyncMock(return_value=_result())
        await DrawingRepository().mark_winning_bets(
            db,
            [
                WinningBet("b-1", "t-1", "NUMBER", Decimal("70"), Decimal("700.00")),
                WinningBet("b-2", "t-1", "BONUS", Decimal("2"), Decimal("10.00")),
            ],
        )
        assert db.execute.await_count == 2

    async def test_excluded_ticket_ids(self, db) -> None:
        rows = [MagicMock(id="t-1"), MagicMock(id="t-2")]
        db.execute = AsyncMock(return_value=_result(many=rows))
        ids = await DrawingExclusionProvider().excluded_ticket_ids(db, "d-1")
        assert ids == {"t-1", "t-2"}


class TestBalanceRepository:
    async def test_aggregate_by_day_maps_rows(self, db) -> None:
        row = MagicMock(
            day=date(2026, 3, 2), sales=Decimal("500"), payouts=Decimal("0"),
            seller_commission=Decimal("50"), outlet_commission=Decimal("25"),
            collected=Decimal("0"), paid=Decimal("20"), ticket_count=2,
        )
        db.execute = AsyncMock(return_value=_result(many=[row]))
        days = await BalanceRepository().aggregate_by_day(
            db, OwnerType.SELLER, "s-1", date(2026, 3, 1), date(2026, 3, 31)
        )
        assert days[0].seller_commission == Decimal("50")
        params = db.execute.call_args[0][1]
        assert params["owner_type"] == "SELLER"
        sql = str(db.execute.call_args[0][0])
        assert "t.seller_id = :owner_id" in sql

    async def test_outlet_query_filters_on_outlet(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(many=[]))
        await BalanceRepository().aggregate_by_day(
            db, OwnerType.OUTLET, "o-1", date(2026, 3, 1), date(2026, 3, 31)
        )
        assert "t.outlet_id = :owner_id" in str(db.execute.call_args[0][0])

    async def test_other_owner_type_rejected(self, db) -> None:
        db.execute = AsyncMock()
        with pytest.raises(InvalidPeriodError):
            await BalanceRepository().first_activity_date(db, OwnerType.OTHER, "x")
        db.execute.assert_not_awaited()

    async def test_upsert_closing_without_row_raises(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=None))
        with pytest.raises(InternalError):
            await BalanceRepository().upsert_closing(
                db,
                MonthlyClosing(
                    owner_type="SELLER", owner_id="s-1", month=date(2026, 2, 1),
                    closing_balance=Decimal("400"), totals=PeriodTotals(), closed_by="u",
                ),
            )

    async def test_discard_closings_from_month(self, db) -> None:
        result = MagicMock(rowcount=2)
        db.execute = AsyncMock(return_value=result)
        discarded = await BalanceRepository().discard_closings_from(
            db, OwnerType.OUTLET, "o-1", date(2026, 2, 1)
        )
        assert discarded == 2
        params = db.execute.call_args[0][1]
        assert params == {"owner_type": "OUTLET", "owner_id": "o-1", "month": date(2026, 2, 1)}
        assert "month >= :month" in str(db.execute.call_args[0][0])

    async def test_discard_skips_other_owner_type(self, db) -> None:
        db.execute = AsyncMock()
        assert await BalanceRepository().discard_closings_from(
            db, OwnerType.OTHER, "x", date(2026, 2, 1)
        ) == 0
        db.execute.assert_not_awaited()


def _payment_row(**kwargs):
    row = MagicMock()
    row.id = kwargs.get("id", "p-1")
    row.ticket_id = "t-1"
    row.amount = Decimal("250.00")
    row.remaining_after = Decimal("450.00")
    row.is_partial = True
    row.is_final = False
    row.method = "cash"
    row.notes = None
    row.idempotency_key = None
    row.paid_by = "cashier"
    row.paid_at = datetime(2026, 3, 11, 9, tzinfo=UTC)
    row.is_reversed = kwargs.get("is_reversed", False)
    row.reversed_at = None
    row.reversed_by = None
    row.reversal_reason = None
    return row


class TestTicketPaymentRepository:
    async def test_lock_ticket_maps_row(self, db) -> None:
        row = MagicMock(
            id="t-1", drawing_id="d-1", status="EVALUATED", is_winner=True,
            total_payout=Decimal("700"), total_paid=Decimal("0"),
            remaining_amount=Decimal("700"),
        )
        db.execute = AsyncMock(return_value=_result(one=row))
        ticket = await TicketPaymentRepository().lock_ticket(db, "t-1")
        assert ticket is not None and ticket.remaining_amount == Decimal("700")
        assert "FOR UPDATE" in str(db.execute.call_args[0][0])

    async def test_update_missing_ticket_raises(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=None))
        with pytest.raises(TicketNotFoundError):
            await TicketPaymentRepository().update_ticket_paid(
                db, "t-1", Decimal("1"), Decimal("0"), TicketStatus.PAID
            )
        assert db.execute.call_args[0][1]["status"] == "PAID"

    async def test_insert_payment_maps_returned_row(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=_payment_row()))
        stored = await TicketPaymentRepository().insert_payment(
            db,
            TicketPayment(
                id="p-1", ticket_id="t-1", amount=Decimal("250.00"),
                remaining_after=Decimal("450.00"), paid_by="cashier", is_partial=True,
            ),
        )
        assert stored.paid_at is not None
        assert db.execute.call_args[0][1]["is_partial"] is True

    async def test_reversal_already_taken_returns_none(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=None))
        assert await TicketPaymentRepository().mark_payment_reversed(
            db, "p-1", "supervisor", None
        ) is None
        assert "NOT is_reversed" in str(db.execute.call_args[0][0])


class TestPolicyChainLoader:
    async def test_for_seller_parses_documents(self, db) -> None:
        row = MagicMock(
            seller_policy=None,
            outlet_policy={"rules": [{"rate": 5}]},
            org_policy={"rules": "broken"},
        )
        db.execute = AsyncMock(return_value=_result(one=row))
        chain = await PolicyChainLoader().for_seller(db, "s-1", date(2026, 3, 1))
        assert chain is not None
        assert chain.seller is None
        assert chain.outlet is not None
        assert chain.org is None

    async def test_unknown_seller(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(one=None))
        assert await PolicyChainLoader().for_seller(db, "nope") is None
