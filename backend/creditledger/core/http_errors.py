"""Map ledger outcomes to HTTP responses."""

from fastapi import HTTPException

from creditledger.services.errors import LedgerError

STATUS_BY_CODE = {
    "not_found": 404,
    "expired": 410,
    "not_redeemable": 409,
    "invalid_transition": 409,
    "duplicate_redemption": 409,
    "concurrency_conflict": 409,
    "insufficient_balance": 422,
    "invalid_amount": 422,
    "integrity_error": 422,
    "malformed_token": 422,
    "expired_token": 422,
    "generation_exhausted": 503,
    "timeout": 504,
}

CONCURRENCY_RETRY_AFTER_SECONDS = 1


def ledger_http_error(exc: LedgerError) -> HTTPException:
    """Build the HTTPException for ``exc``; the body carries its stable code."""
    headers = None
    if exc.code == "concurrency_conflict":
        headers = {"Retry-After": str(CONCURRENCY_RETRY_AFTER_SECONDS)}
    return HTTPException(
        status_code=STATUS_BY_CODE.get(exc.code, 400),
        detail=exc.to_dict(),
        headers=headers,
    )
