from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "recurring-billing"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/database.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Billing calendar
    BILLING_TIMEZONE: str = "Asia/Seoul"
    BILLING_CURRENCY: str = "KRW"
    SETTLEMENT_HOUR: int = 6
    SETTLEMENT_RUNNER: str = "worker"  # "worker" (arq cron) or "in_process"
    REFUND_FEE_PERCENT: float = 0.2

    # Provider request limits
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    PROVIDER_CUSTOM_DATA_MAX_BYTES: int = 2000

    # I'mport settings
    iamport_api_key: str = ""
    iamport_api_secret: str = ""
    iamport_base_url: str = "https://api.iamport.kr"
    iamport_webhook_secret: str = ""  # optional HMAC check on notifications

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def in_process_settlement(self) -> bool:
        return self.SETTLEMENT_RUNNER == "in_process"


settings = Settings()
