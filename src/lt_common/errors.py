"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Gateway
  2xxx: Ledger
  3xxx: Drawing settlement
  4xxx: Commission
  5xxx: Balance aggregation
  9xxx: System

Category classes (NotFoundError, InvalidStateError, ValidationError,
ConflictError, InternalError) are what callers branch on; the concrete
subclasses only pin a code and a message.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- Categories ---

class NotFoundError(AppError):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(code, message, 404)


class InvalidStateError(AppError):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(code, message, 409)


class ValidationError(AppError):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(code, message, 422)


class ConflictError(AppError):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(code, message, 409)


class InternalError(AppError):
    """Storage/transport failure. Safe to retry thanks to idempotency keys."""

    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


# --- 2xxx: Ledger ---

class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str) -> None:
        super().__init__(2001, f"Account not found: {account_id}")


class LedgerEntryNotFoundError(NotFoundError):
    def __init__(self, entry_id: str, account_id: str) -> None:
        super().__init__(2002, f"Ledger entry {entry_id} not found in account {account_id}")


class AccountInactiveError(InvalidStateError):
    def __init__(self, account_id: str) -> None:
        super().__init__(2003, f"Account is not active: {account_id}")


class EntryAlreadyReversedError(InvalidStateError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(2004, f"Ledger entry already reversed: {entry_id}")


class InvalidAmountError(ValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(2005, f"Invalid amount: {detail}")


class InvalidLedgerOperationError(ValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(2006, detail)


class IdempotencyConflictError(ConflictError):
    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            2007,
            f"Idempotency key {idempotency_key} was already used for a different request",
        )


# --- 3xxx: Drawing settlement ---

class DrawingNotFoundError(NotFoundError):
    def __init__(self, drawing_id: str) -> None:
        super().__init__(3001, f"Drawing not found: {drawing_id}")


class DrawingStateError(InvalidStateError):
    def __init__(self, drawing_id: str, status: str, action: str) -> None:
        super().__init__(3002, f"Drawing {drawing_id} in status {status} cannot {action}")


class WinningNumberError(ValidationError):
    def __init__(self, winning_number: str, digits: int) -> None:
        super().__init__(
            3003,
            f"Winning number {winning_number!r} must be exactly {digits} digits",
        )


class BonusMultiplierError(ValidationError):
    def __init__(self, multiplier_id: str, detail: str) -> None:
        super().__init__(3004, f"Bonus multiplier {multiplier_id} rejected: {detail}")


class DrawingHasPaymentsError(InvalidStateError):
    def __init__(self, drawing_id: str) -> None:
        super().__init__(
            3005, f"Drawing {drawing_id} has paid tickets and cannot be reverted"
        )


class TicketNotFoundError(NotFoundError):
    def __init__(self, ticket_id: str) -> None:
        super().__init__(3006, f"Ticket not found: {ticket_id}")


class TicketNotPayableError(InvalidStateError):
    def __init__(self, ticket_id: str, detail: str) -> None:
        super().__init__(3007, f"Ticket {ticket_id} cannot be paid: {detail}")


class PaymentAmountError(ValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(3008, f"Invalid payment amount: {detail}")


class TicketPaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id: str) -> None:
        super().__init__(3009, f"Ticket payment not found: {payment_id}")


class PaymentAlreadyReversedError(InvalidStateError):
    def __init__(self, payment_id: str) -> None:
        super().__init__(3010, f"Ticket payment already reversed: {payment_id}")


# --- 4xxx: Commission ---

class CommissionPolicyError(ValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid commission policy: {detail}")


# --- 5xxx: Balance aggregation ---

class InvalidPeriodError(ValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(5001, f"Invalid period: {detail}")
