"""Idempotency support for API endpoints.

Provides a helper that checks for the ``Idempotency-Key`` header. If a
cached response exists for the key, it returns a JSONResponse directly;
otherwise it returns ``None`` (no header) or an ``IdempotencyResult`` so the
endpoint can proceed and later call ``record_idempotency_response``.

While the first request holds the key, repeats of it answer 409. Only
successful responses are recorded; a request that failed (for example on a
concurrency conflict) releases the key with ``release_idempotency_key`` so it
can be retried under the same key.
"""

from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from creditledger.repositories.idempotency_repository import IdempotencyRepository

IDEMPOTENCY_HEADER = "Idempotency-Key"


def _in_progress() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=f"A request with this {IDEMPOTENCY_HEADER} is already in progress",
        headers={"Retry-After": "1"},
    )


@dataclass
class IdempotencyResult:
    """Holds pending idempotency key info for later recording."""

    key: str
    method: str
    path: str


def check_idempotency(
    request: Request,
    db: Session,
    merchant_id: str,
) -> JSONResponse | IdempotencyResult | None:
    """Check the ``Idempotency-Key`` header for a cached response.

    Returns:
        - ``None`` if no ``Idempotency-Key`` header is present.
        - A ``JSONResponse`` with the cached response and an
          ``Idempotency-Replayed: true`` header if a completed record exists.
        - An ``IdempotencyResult`` if this request should be recorded after processing.

    Raises:
        HTTPException: 422 if the key was first used for a different endpoint,
            409 if a request holding the key is still in progress.
    """
    key = request.headers.get(IDEMPOTENCY_HEADER)
    if not key:
        return None
    if len(key) > 255:
        raise HTTPException(status_code=422, detail=f"{IDEMPOTENCY_HEADER} is too long")

    repo = IdempotencyRepository(db)
    existing = repo.get_by_key(merchant_id, key)

    if existing is not None and (
        existing.request_method != request.method or existing.request_path != request.url.path
    ):
        raise HTTPException(
            status_code=422,
            detail=f"{IDEMPOTENCY_HEADER} was already used for a different request",
        )

    if existing is not None and existing.response_status is not None:
        response = JSONResponse(
            content=existing.response_body,
            status_code=int(existing.response_status),
        )
        response.headers["Idempotency-Replayed"] = "true"
        return response

    if existing is not None:
        raise _in_progress()

    try:
        repo.create(
            merchant_id=merchant_id,
            idempotency_key=key,
            request_method=request.method,
            request_path=request.url.path,
        )
    except IntegrityError:
        db.rollback()
        raise _in_progress() from None

    return IdempotencyResult(key=key, method=request.method, path=request.url.path)


def record_idempotency_response(
    db: Session,
    merchant_id: str,
    key: str,
    status: int,
    body: dict[str, Any],
) -> None:
    """Persist the endpoint response so subsequent calls return the cached result."""
    repo = IdempotencyRepository(db)
    record = repo.get_by_key(merchant_id, key)
    if record is not None:
        repo.update_response(record, status, body)


def release_idempotency_key(
    db: Session,
    merchant_id: str,
    idempotency: IdempotencyResult | None,
) -> None:
    """Drop the pending record of a failed request so the key can be retried."""
    if idempotency is None:
        return
    repo = IdempotencyRepository(db)
    record = repo.get_by_key(merchant_id, idempotency.key)
    if record is not None and record.response_status is None:
        repo.delete(record)
