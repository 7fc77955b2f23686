"""
Configuration settings for the application.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    STORE_NAME: str = os.getenv("STORE_NAME", "Storefront")

    # MongoDB
    MONGO_URL: str = os.getenv("MONGO_URL", "mongodb://localhost:27017")
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "storefront")

    # Redis / cache settings
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CACHE_ENABLED: bool = os.getenv("CACHE_ENABLED", "true").lower() == "true"
    CACHE_NAMESPACE: str = os.getenv("CACHE_NAMESPACE", "catalog")
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "300"))
    CACHE_RETRY_INTERVAL_SECONDS: float = float(
        os.getenv("CACHE_RETRY_INTERVAL_SECONDS", "30")
    )
    CACHE_CONNECT_TIMEOUT_SECONDS: float = float(
        os.getenv("CACHE_CONNECT_TIMEOUT_SECONDS", "3")
    )
    REDIS_CONNECT_TIMEOUT_SECONDS: float = float(
        os.getenv("REDIS_CONNECT_TIMEOUT_SECONDS", "3")
    )

    # Invoice queue settings
    INVOICE_STREAM_KEY: str = os.getenv("INVOICE_STREAM_KEY", "invoices:jobs")
    INVOICE_ENQUEUE_TIMEOUT_SECONDS: float = float(
        os.getenv("INVOICE_ENQUEUE_TIMEOUT_SECONDS", "2")
    )
    INVOICE_CONSUMER_GROUP: str = os.getenv(
        "INVOICE_CONSUMER_GROUP",
        "invoice-workers",
    )
    INVOICE_DLQ_STREAM_KEY: str = os.getenv("INVOICE_DLQ_STREAM_KEY", "invoices:dlq")
    INVOICE_RETRY_KEY: str = os.getenv("INVOICE_RETRY_KEY", "invoices:retry")
    INVOICE_MAX_ATTEMPTS: int = int(os.getenv("INVOICE_MAX_ATTEMPTS", "5"))
    INVOICE_BACKOFF_BASE_MS: int = int(os.getenv("INVOICE_BACKOFF_BASE_MS", "3000"))
    INVOICE_CLAIM_IDLE_MS: int = int(os.getenv("INVOICE_CLAIM_IDLE_MS", "60000"))
    BATCH_MAX_MESSAGES: int = int(os.getenv("BATCH_MAX_MESSAGES", "16"))
    BATCH_MAX_WAIT_MS: int = int(os.getenv("BATCH_MAX_WAIT_MS", "1000"))
    WORKER_CONCURRENCY: int = int(os.getenv("WORKER_CONCURRENCY", "1"))

    # Payment gateway
    PAYMENT_GATEWAY_KEY_SECRET: str | None = os.getenv("PAYMENT_GATEWAY_KEY_SECRET")

    # Pricing policy
    TAX_RATE: float = float(os.getenv("TAX_RATE", "0.08"))
    FREE_SHIPPING_THRESHOLD: float = float(os.getenv("FREE_SHIPPING_THRESHOLD", "100"))
    SHIPPING_FLAT_RATE: float = float(os.getenv("SHIPPING_FLAT_RATE", "10"))

    # Mail transport
    SMTP_HOST: str | None = os.getenv("SMTP_HOST")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: str | None = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD: str | None = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    EMAIL_FROM: str | None = os.getenv("EMAIL_FROM")

    @property
    def is_production(self) -> bool:
        """
        Check if running in production environment.
        """
        return self.ENVIRONMENT.lower() == "production"

    @property
    def mailer_enabled(self) -> bool:
        """Return True when an SMTP mailer can be initialized."""
        return bool(self.SMTP_HOST and (self.EMAIL_FROM or self.SMTP_USERNAME))

    def __init__(self):
        self.debug = os.getenv("DEBUG", "false").lower() == "true"
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        logging.basicConfig(level=self.log_level)
        self.logger = logging.getLogger(__name__)

        self.logger.debug(
            f"Config initialized with environment={self.ENVIRONMENT}, "
            f"debug={self.debug}, log_level={self.log_level}"
        )


# Create a global settings instance for import
settings = Settings()
