"""Application configuration using pydantic-settings.

Environment variables are the sole source of truth (12-factor). No secrets committed.
Add new settings thoughtfully; prefer grouping by domain. Use `get_settings()` for DI.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Core
    DATABASE_URL: str = Field(
        "sqlite+aiosqlite:///./sendcore.db",
        description="Async SQLAlchemy URL (postgresql+asyncpg://... in production)",
    )
    LOG_LEVEL: str = Field("INFO", description="Application log level")

    # Upstream SMS gateway
    PROVIDER_BASE_URL: str = Field(
        "https://sms.nalosolutions.com/smsbackend/clientapi/Resl_Nalo",
        description="Base URL of the upstream gateway (no trailing slash)",
    )
    PROVIDER_API_KEY: str = Field("", description="Auth key sent as the `key` request parameter")
    PROVIDER_TIMEOUT_SECONDS: float = Field(30.0, gt=0, description="Upper bound for a single upstream call")
    DEFAULT_SENDER_ID: str = Field("Sendexa", description="Sender name used when the adapter gets none")

    # Recipient numbering / billing
    COUNTRY_CALLING_CODE: str = Field("233", pattern=r"^[1-9][0-9]{0,2}$")
    DEFAULT_CURRENCY: str = Field("GHS", min_length=3, max_length=3)

    # Bulk sends
    BULK_SEND_CONCURRENCY: int = Field(5, ge=1, le=50, description="Max in-flight provider calls per bulk send")

    # One-time codes
    OTP_TTL_MINUTES: int = Field(10, ge=1, le=1440, description="How long an issued code stays verifiable")
    OTP_MESSAGE_TEMPLATE: str = Field(
        "Your verification code is {code}. It expires in {minutes} minutes.",
        description="SMS body for one-time codes; `{code}` and `{minutes}` are substituted",
    )

    model_config = SettingsConfigDict(env_file=None, case_sensitive=False, extra="ignore")

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton settings instance.

    Usage: settings = get_settings()
    In FastAPI dependency: `Depends(get_settings)`.
    """
    return Settings()  # pydantic-settings loads from environment automatically


__all__ = ["Settings", "get_settings"]
