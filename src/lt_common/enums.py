"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class OwnerType(str, Enum):
    OUTLET = "OUTLET"
    SELLER = "SELLER"
    OTHER = "OTHER"


class LedgerEntryType(str, Enum):
    SALE = "SALE"
    COMMISSION = "COMMISSION"
    PAYOUT = "PAYOUT"
    # Operator pays the owner (debit) / operator collects from the owner (credit)
    PAYMENT = "PAYMENT"
    COLLECTION = "COLLECTION"
    BANK_DEPOSIT = "BANK_DEPOSIT"
    TRANSFER = "TRANSFER"
    REVERSAL = "REVERSAL"


class ReferenceType(str, Enum):
    TICKET = "TICKET"
    RECEIPT = "RECEIPT"
    DEPOSIT_RECEIPT = "DEPOSIT_RECEIPT"
    PAYMENT_DOCUMENT = "PAYMENT_DOCUMENT"
    LEDGER_ENTRY = "LEDGER_ENTRY"


class DrawingStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    OPEN = "OPEN"
    EVALUATED = "EVALUATED"
    CLOSED = "CLOSED"


class BetType(str, Enum):
    """NUMBER = straight number; BONUS = reventado, paid with the drawing bonus."""
    NUMBER = "NUMBER"
    BONUS = "BONUS"


class MultiplierKind(str, Enum):
    NUMBER = "NUMBER"
    BONUS = "BONUS"


class TicketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EVALUATED = "EVALUATED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class CommissionOrigin(str, Enum):
    SELLER = "SELLER"
    OUTLET = "OUTLET"
    ORG = "ORG"
