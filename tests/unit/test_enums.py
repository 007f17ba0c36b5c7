"""Enum values must match the DB CHECK constraints in alembic/versions."""

from src.lt_common.enums import (
    BetType,
    DrawingStatus,
    LedgerEntryType,
    OwnerType,
    TicketStatus,
)


class TestAllEnumsAreStr:
    def test_owner_type_is_str(self) -> None:
        assert isinstance(OwnerType.SELLER, str)
        assert OwnerType.SELLER == "SELLER"

    def test_drawing_status_is_str(self) -> None:
        assert DrawingStatus.EVALUATED == "EVALUATED"


class TestValues:
    def test_ledger_entry_types(self) -> None:
        assert {t.value for t in LedgerEntryType} == {
            "SALE", "COMMISSION", "PAYOUT", "PAYMENT", "COLLECTION",
            "BANK_DEPOSIT", "TRANSFER", "REVERSAL",
        }

    def test_drawing_statuses(self) -> None:
        assert {s.value for s in DrawingStatus} == {"SCHEDULED", "OPEN", "EVALUATED", "CLOSED"}

    def test_bet_types(self) -> None:
        assert {b.value for b in BetType} == {"NUMBER", "BONUS"}

    def test_ticket_statuses(self) -> None:
        assert {s.value for s in TicketStatus} == {"ACTIVE", "EVALUATED", "PAID", "CANCELLED"}
