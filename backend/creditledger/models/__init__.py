from creditledger.models.credit_note import (
    CreditNote,
    CreditNoteStatus,
    derive_effective_status,
)
from creditledger.models.idempotency_record import IdempotencyRecord
from creditledger.models.merchant_settings import MerchantSettings
from creditledger.models.redemption import Redemption
from creditledger.models.webhook import Webhook
from creditledger.models.webhook_endpoint import WebhookEndpoint

__all__ = [
    "CreditNote",
    "CreditNoteStatus",
    "IdempotencyRecord",
    "MerchantSettings",
    "Redemption",
    "Webhook",
    "WebhookEndpoint",
    "derive_effective_status",
]
