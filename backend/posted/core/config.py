from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Database
    RAW_DATABASE_URL: str

    # Supabase
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str

    # Stripe
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    STRIPE_PRICE_ID: str
    STRIPE_WEBHOOK_TOLERANCE: int = 300
    TRIAL_PERIOD_DAYS: int = 3
    TRIAL_FEE_AMOUNT: int = 100 # In cents, 1 EUR
    TRIAL_FEE_CURRENCY: str = "eur"

    # AI Services
    FAL_KEY: str
    FAL_QUEUE_URL: str = "https://queue.fal.run"
    FAL_MODEL_ID: str = "fal-ai/nano-banana-pro"
    FAL_MODEL_ENDPOINT: str = "edit"
    GENERATION_POLL_INTERVAL: float = 2.0
    GENERATION_MAX_ATTEMPTS: int = 60
    OPENROUTER_API_KEY: str

    # Email
    SENDGRID_API_KEY: str | None = None
    EMAIL_FROM: str = "Posted App <posted@tasy.ai>"
    FEEDBACK_RECIPIENT: str = "hi@tasy.ai"

    # Celery
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    # App
    APP_ORIGIN: str = "http://localhost:3000"
    DEFAULT_MAX_SEATS: int = 2
    GATE_STATUS_TTL: float = 300.0 # Seconds a session keeps its cached subscription status
    GATE_CACHE_MAX_ENTRIES: int = 10000
    LOG_LEVEL: str = "INFO"

    @field_validator("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "STRIPE_PRICE_ID")
    @classmethod
    def billing_keys_not_blank(cls, value: str) -> str:
        # Billing must be fully configured before the app serves anything.
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @property
    def DATABASE_URL(self) -> str:
        # SQLAlchemy 2.0 requires the asyncpg driver for async operations
        if self.RAW_DATABASE_URL.startswith("postgresql://"):
            return self.RAW_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.RAW_DATABASE_URL

    @property
    def SYNC_DATABASE_URL(self) -> str:
        # Alembic needs a synchronous driver
        if self.RAW_DATABASE_URL.startswith("postgresql://"):
            return self.RAW_DATABASE_URL.replace("postgresql://", "postgresql+psycopg2://", 1)
        return self.RAW_DATABASE_URL

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
