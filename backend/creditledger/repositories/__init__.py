from creditledger.repositories.credit_note_repository import CreditNoteRepository
from creditledger.repositories.idempotency_repository import IdempotencyRepository
from creditledger.repositories.merchant_settings_repository import MerchantSettingsRepository
from creditledger.repositories.redemption_repository import RedemptionRepository
from creditledger.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from creditledger.repositories.webhook_repository import WebhookRepository

__all__ = [
    "CreditNoteRepository",
    "IdempotencyRepository",
    "MerchantSettingsRepository",
    "RedemptionRepository",
    "WebhookEndpointRepository",
    "WebhookRepository",
]
