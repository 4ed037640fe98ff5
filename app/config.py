import os
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    """Application settings."""
    # Base settings
    DEBUG: bool = False

    # CORS settings
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",  # Vite dev server
        "http://localhost:8000",  # Backend server
    ]

    # Firebase settings
    FIREBASE_PROJECT_ID: str = ""
    # Explicit Firebase Admin SDK credentials JSON path
    FIREBASE_SERVICE_ACCOUNT_JSON: str = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON", "./firebase-service-account.json")
    # Custom claim that marks an administrator in Firebase ID tokens
    ADMIN_CLAIM: str = os.getenv("ADMIN_CLAIM", "admin")
    # Trust the X-User-ID header without a token; development and tests only
    ALLOW_HEADER_AUTH: bool = os.getenv("ALLOW_HEADER_AUTH", os.getenv("DEBUG", "false")).lower() == "true"

    # Database settings
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: str = os.getenv("DB_PORT", "5432")
    DB_USER: str = os.getenv("DB_USER", "postgres")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "postgres")
    DB_NAME: str = os.getenv("DB_NAME", "tradeya")
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )

    # Redis settings (rate limiting storage)
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

    # Trade lifecycle
    TRADE_AUTO_COMPLETE_DAYS: int = int(os.getenv("TRADE_AUTO_COMPLETE_DAYS", "3"))
    # Days-remaining marks at which a confirmation reminder is sent
    TRADE_REMINDER_DAYS: List[int] = [2, 1]
    QUICK_RESPONSE_HOURS: int = int(os.getenv("QUICK_RESPONSE_HOURS", "24"))

    # Side-effect outbox
    OUTBOX_BATCH_SIZE: int = int(os.getenv("OUTBOX_BATCH_SIZE", "50"))
    OUTBOX_MAX_ATTEMPTS: int = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
    # A claimed event not finished within this window is handed to another dispatcher
    OUTBOX_CLAIM_TIMEOUT_SECONDS: int = int(os.getenv("OUTBOX_CLAIM_TIMEOUT_SECONDS", "300"))

    # Connection reconciliation
    RECONCILE_BATCH_SIZE: int = int(os.getenv("RECONCILE_BATCH_SIZE", "200"))

    # Portfolio items generated from completed trades/challenges
    PORTFOLIO_DEFAULT_VISIBLE: bool = os.getenv("PORTFOLIO_DEFAULT_VISIBLE", "true").lower() == "true"

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()
