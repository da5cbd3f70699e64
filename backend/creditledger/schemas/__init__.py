from creditledger.schemas.credit_note import (
    CreditNoteIssue,
    CreditNotePageResponse,
    CreditNoteResponse,
    CurrencyBalance,
    OwnerBalanceResponse,
)
from creditledger.schemas.merchant_settings import (
    MerchantSettingsResponse,
    MerchantSettingsUpdate,
)
from creditledger.schemas.redemption import (
    RedemptionRequest,
    RedemptionResponse,
    RedemptionResultResponse,
    RedemptionValidateRequest,
    RedemptionValidationResponse,
)
from creditledger.schemas.webhook import (
    WebhookEndpointCreate,
    WebhookEndpointResponse,
    WebhookResponse,
)

__all__ = [
    "CreditNoteIssue",
    "CreditNotePageResponse",
    "CreditNoteResponse",
    "CurrencyBalance",
    "MerchantSettingsResponse",
    "MerchantSettingsUpdate",
    "OwnerBalanceResponse",
    "RedemptionRequest",
    "RedemptionResponse",
    "RedemptionResultResponse",
    "RedemptionValidateRequest",
    "RedemptionValidationResponse",
    "WebhookEndpointCreate",
    "WebhookEndpointResponse",
    "WebhookResponse",
]
