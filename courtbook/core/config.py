from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Courtbook API"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "courtbook_db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""
    CREATE_DATABASE_ON_STARTUP: bool = True

    # Booking defaults, used when neither the organization nor app_settings
    # provide a value
    DEFAULT_TIMEZONE: str = "Asia/Singapore"
    DEFAULT_CURRENCY: str = "SGD"
    DEFAULT_BOOKING_WINDOW_DAYS: int = 7
    DEFAULT_PAYMENT_TIMEOUT_MINUTES: int = 10
    DEFAULT_MAX_CONSECUTIVE_SLOTS: int = 3
    DEFAULT_SLOT_DURATION_MINUTES: int = 60

    # Rate limiting (per principal)
    BOOKING_RATE_LIMIT: int = 10
    BOOKING_RATE_WINDOW_SECONDS: int = 60

    # Expiry sweep
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 60
    CRON_SECRET: str = ""

    # Payment gateway (HitPay)
    HITPAY_API_URL: str = "https://api.sandbox.hit-pay.com"
    HITPAY_API_KEY: str = ""
    PAYMENT_REDIRECT_URL: str = "http://localhost:3000/bookings/confirmation"
    PAYMENT_WEBHOOK_SECRET: str = ""
    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # "transactional" (default) or "compensating" for stores without
    # multi-statement transactions
    RESERVATION_STRATEGY: str = "transactional"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
