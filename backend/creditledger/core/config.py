from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Credit Ledger"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/creditledger.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Redemption token signing
    TOKEN_SECRET: str = "change-me-token-secret"
    TOKEN_MAX_AGE_HOURS: int = 8760  # 0 disables the age check

    # Note number allocation
    NOTE_NUMBER_PREFIX: str = "CN"
    NOTE_NUMBER_MAX_ATTEMPTS: int = 10

    # Ledger write path
    LEDGER_MAX_RETRIES: int = 5
    LEDGER_DEFAULT_TIMEOUT_SECONDS: float = 5.0
    DEFAULT_CURRENCY: str = "USD"

    # Webhook signing
    webhook_secret: str = "whsec_default_secret"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Rate limiting
    RATE_LIMIT_VALIDATIONS_PER_MINUTE: int = 120

    IDEMPOTENCY_MAX_AGE_HOURS: int = 24


settings = Settings()
