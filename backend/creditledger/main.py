from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from creditledger.core.config import settings
from creditledger.core.database import get_db
from creditledger.routers import (
    credit_notes,
    merchant_settings,
    owners,
    redemptions,
    webhook_endpoints,
)

OPENAPI_TAGS = [
    {"name": "Credit Notes", "description": "Issue, look up, cancel and delete credit notes."},
    {"name": "Redemptions", "description": "Redeem credit notes and pre-check redemptions."},
    {"name": "Owners", "description": "Outstanding balances per credit note owner."},
    {"name": "Settings", "description": "Per-merchant issuance defaults."},
    {"name": "Webhooks", "description": "Manage webhook endpoints for ledger events."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Store-credit ledger API. Issue credit notes, redeem them from any "
        "channel with exact decimal balances, and query outstanding credit."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count", "Idempotency-Replayed", "Retry-After"],
)

app.include_router(credit_notes.router, prefix="/v1/credit_notes", tags=["Credit Notes"])
app.include_router(redemptions.router, prefix="/v1/redemptions", tags=["Redemptions"])
app.include_router(owners.router, prefix="/v1/owners", tags=["Owners"])
app.include_router(merchant_settings.router, prefix="/v1/settings", tags=["Settings"])
app.include_router(
    webhook_endpoints.router,
    prefix="/v1/webhook_endpoints",
    tags=["Webhooks"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }


@app.get("/health")
async def health(db: Session = Depends(get_db)) -> dict[str, str]:
    """Liveness plus a round trip to the database."""
    db.execute(text("SELECT 1"))
    return {"status": "ok"}
