"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    APP_NAME: str = "Food Delivery Integration"
    DEBUG: bool = False
    LOG_LEVEL: Optional[str] = None

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Database
    # DB_FILE is the usual knob; DATABASE_URL overrides it entirely when set.
    DB_FILE: str = "./food_delivery.sqlite"
    DATABASE_URL: str = ""

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v: Optional[str]) -> str:
        """Convert sqlite:// to sqlite+aiosqlite:// for async support"""
        if not v:
            return ""
        if v.startswith("sqlite://"):
            return v.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return v

    # Uber Eats (client-credentials grant)
    UBER_EATS_CLIENT_ID: str = ""
    UBER_EATS_CLIENT_SECRET: str = ""
    UBER_EATS_TOKEN_URL: str = "https://auth.uber.com/oauth/v2/token"
    UBER_EATS_SCOPE: str = "eats.order"
    # Comma-separated hosts resource_href may point at (the bearer token is
    # sent there); "*" allows any host
    UBER_EATS_RESOURCE_HOSTS: str = "api.uber.com"

    # Token reuse between webhooks is opt-in; off means one exchange per webhook
    UBER_EATS_TOKEN_CACHE_ENABLED: bool = False
    UBER_EATS_TOKEN_EXPIRY_SLACK_SECONDS: int = 60

    # Cap for every outbound call (token exchange, order fetch)
    OUTBOUND_TIMEOUT_SECONDS: float = 10.0

    @field_validator("OUTBOUND_TIMEOUT_SECONDS", mode="after")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """A stalled platform must never hold a webhook forever"""
        if v <= 0:
            raise ValueError("OUTBOUND_TIMEOUT_SECONDS must be greater than 0")
        return v

    @field_validator("UBER_EATS_RESOURCE_HOSTS", mode="after")
    @classmethod
    def validate_resource_hosts(cls, v: str) -> str:
        if not v.replace(",", "").strip():
            raise ValueError("UBER_EATS_RESOURCE_HOSTS must list at least one host, or \"*\" for any host")
        return v

    @field_validator("UBER_EATS_TOKEN_EXPIRY_SLACK_SECONDS", mode="after")
    @classmethod
    def validate_expiry_slack(cls, v: int) -> int:
        if v < 0:
            raise ValueError("UBER_EATS_TOKEN_EXPIRY_SLACK_SECONDS must not be negative")
        return v

    @model_validator(mode="after")
    def validate_uber_eats_credentials(self) -> "Settings":
        """Warn early: without credentials every Uber Eats webhook fails at token exchange."""
        import warnings

        if not self.UBER_EATS_CLIENT_ID or not self.UBER_EATS_CLIENT_SECRET:
            warnings.warn(
                "UBER_EATS_CLIENT_ID / UBER_EATS_CLIENT_SECRET are empty - "
                "Uber Eats webhooks will fail at token acquisition.",
                stacklevel=2,
            )
        return self

    @property
    def database_url(self) -> str:
        """Effective SQLAlchemy URL"""
        return self.DATABASE_URL or f"sqlite+aiosqlite:///{self.DB_FILE}"

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return "DEBUG" if self.DEBUG else "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
