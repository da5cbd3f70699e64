"""Typed outcomes raised by the ledger core.

Every class here is an expected, caller-recoverable condition. Routers map
each ``code`` to its own HTTP response so a terminal can tell "try a smaller
amount" apart from "this note can never be used again" and "try again".
Store connectivity failures are not wrapped and propagate unchanged.
"""

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    code = "ledger_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        for key, value in self.context.items():
            detail[key] = str(value) if isinstance(value, Decimal) else value
        return detail


class CreditNoteNotFoundError(LedgerError):
    code = "not_found"


class CreditNoteExpiredError(LedgerError):
    code = "expired"


class CreditNoteNotRedeemableError(LedgerError):
    code = "not_redeemable"


class InsufficientBalanceError(LedgerError):
    code = "insufficient_balance"

    def __init__(self, message: str, available: Decimal):
        super().__init__(message, available=available)
        self.available = available


class InvalidAmountError(LedgerError):
    code = "invalid_amount"


class InvalidTransitionError(LedgerError):
    code = "invalid_transition"


class DuplicateRedemptionError(LedgerError):
    code = "duplicate_redemption"

    def __init__(self, message: str, redemption_id: str):
        super().__init__(message, redemption_id=redemption_id)
        self.redemption_id = redemption_id


class GenerationExhaustedError(LedgerError):
    code = "generation_exhausted"


class ConcurrencyConflictError(LedgerError):
    code = "concurrency_conflict"


class LedgerTimeoutError(LedgerError):
    code = "timeout"


class TokenIntegrityError(LedgerError):
    code = "integrity_error"


class MalformedTokenError(TokenIntegrityError):
    code = "malformed_token"


class ExpiredTokenError(LedgerError):
    code = "expired_token"
