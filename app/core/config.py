from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Tour Booking API"
    # Comma-separated origins for CORS (e.g. https://tours.example.com,https://admin.tours.example.com). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v

    # Logging (loguru)
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TO_FILES: bool = True

    # Razorpay (refunds only). Both key id and secret must be set for the gateway to be considered configured.
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_HOST: str = "api.razorpay.com"
    RAZORPAY_TIMEOUT: int = 25
    RAZORPAY_REFUND_SPEED: str = "normal"  # normal|optimum
    CURRENCY: str = "INR"
    # A refund left in "processing" longer than this may be re-attempted
    REFUND_PROCESSING_TIMEOUT_MINUTES: int = 15


settings = Settings()
