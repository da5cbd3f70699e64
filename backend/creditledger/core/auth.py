"""Caller identity.

The gateway in front of this service authenticates merchants and staff and
forwards the verified identity in headers. Nothing here checks credentials.
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request

MERCHANT_HEADER = "X-Merchant-Id"
ACTOR_HEADER = "X-Actor-Id"


@dataclass(frozen=True)
class CallerIdentity:
    merchant_id: str
    actor_ref: str | None = None


def get_caller(request: Request) -> CallerIdentity:
    """Read the trusted ``(merchant_id, actor_ref)`` pair from the request headers."""
    merchant_id = request.headers.get(MERCHANT_HEADER, "").strip()
    if not merchant_id:
        raise HTTPException(status_code=401, detail=f"{MERCHANT_HEADER} header is required")
    if len(merchant_id) > 255:
        raise HTTPException(status_code=400, detail=f"Invalid {MERCHANT_HEADER} header")

    actor_ref = request.headers.get(ACTOR_HEADER, "").strip() or None
    return CallerIdentity(merchant_id=merchant_id, actor_ref=actor_ref)
