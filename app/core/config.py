from functools import lru_cache
from typing import List, Optional

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    app_name: str = "CyberGuard Account Security"
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    database_url: str
    redis_url: str

    # Identity provider tokens (verification only)
    jwt_secret_key: Optional[str] = None  # HS256, dev only
    jwt_public_key: Optional[str] = Field(default=None, validation_alias="JWT_PUBLIC_KEY_PEM")
    jwks_url: Optional[str] = None
    jwks_cache_ttl_seconds: int = 300
    jwt_algorithm: str = "HS256"
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None
    jwt_clock_skew_seconds: int = 30
    revoked_session_ttl_seconds: int = 60 * 60 * 24

    cors_origins: List[AnyHttpUrl] = Field(default_factory=list)

    # Geolocation provider (ipapi.co compatible)
    geolocation_api_url: str = "https://ipapi.co"
    geolocation_timeout_seconds: float = 3.0
    geolocation_user_agent: str = "CyberGuard-Security/1.0"

    # Email delivery (Resend compatible)
    resend_api_key: Optional[str] = None
    alert_api_url: str = "https://api.resend.com/emails"
    alert_from_address: str = "Security Alerts <onboarding@resend.dev>"
    alert_timeout_seconds: float = 5.0

    password_max_age_days: int = 90
    password_expiry_warning_days: int = 7
    totp_issuer: str = "CyberGuard"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
