from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    DATABASE_URL: str | None = None
    JWT_SECRET: str | None = None

    # Application URLs
    APP_BASE_URL: str = "http://localhost:8001"  # Default for development
    FRONTEND_URL: str | None = None

    # Xero OAuth configuration (global fallback credentials)
    XERO_CLIENT_ID: str | None = None
    XERO_CLIENT_SECRET: str | None = None
    XERO_REDIRECT_URI: str = "http://localhost:8001/api/v1/xero/auth/callback"
    XERO_SCOPES: str = (
        "openid profile email accounting.transactions accounting.reports.read "
        "accounting.contacts.read "
        "accounting.settings offline_access"
    )
    XERO_AUTH_URL: str = "https://login.xero.com/identity/connect/authorize"
    XERO_TOKEN_URL: str = "https://identity.xero.com/connect/token"
    XERO_CONNECTIONS_URL: str = "https://api.xero.com/connections"
    XERO_API_BASE_URL: str = "https://api.xero.com/api.xro/2.0"
    XERO_HTTP_TIMEOUT_SECONDS: float = 30.0

    # Token lifecycle
    TOKEN_ENCRYPTION_KEY: str | None = None
    TOKEN_REFRESH_MARGIN_SECONDS: int = 60
    TOKEN_REFRESH_BACKOFF_SECONDS: float = 1.0

    # Report fetching
    REPORT_ENDPOINT_TIMEOUT_SECONDS: float = 20.0
    REPORT_RETRY_BACKOFF_SECONDS: float = 1.0
    REPORT_DEADLINE_SECONDS: float = 45.0
    FBT_ACCOUNT_CODES: list[str] = []

    # Tenant validation
    TENANT_MISMATCH_POLICY: Literal["fallback", "reject"] = "fallback"

    # Anomaly thresholds
    ANOMALY_ABSOLUTE_LIMIT: float = 1_000_000
    ANOMALY_PERCENT_CHANGE_LIMIT: float = 50

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
