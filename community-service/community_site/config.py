from __future__ import annotations

import sys
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_SESSION_SECRET = "dev-secret-change-in-production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    # Server
    environment: str = "development"
    log_level: str = "info"
    log_format: str = "json"
    trust_proxy: bool = False
    proxy_hops: int = 1
    enable_setup: bool = False

    # Database
    database_url: str = "sqlite:///./community.db"
    log_sql: bool = False

    # Sessions
    session_secret: str = _DEFAULT_SESSION_SECRET
    session_cookie_name: str = "community.sid"
    session_max_age_seconds: int = 24 * 60 * 60

    # Mail
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from: str = '"ATCC Website" <noreply@atcccanada.ca>'
    contact_recipient: str = "info@atcccanada.ca"

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: str, info) -> str:
        """Refuse to start in production without a real session secret."""
        env = info.data.get("environment", "development")
        if env == "production" and (not v or v == _DEFAULT_SESSION_SECRET):
            print(
                "\n🚨 FATAL: SESSION_SECRET environment variable is required in production.\n"
                "   Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\"\n",
                file=sys.stderr,
            )
            raise ValueError("SESSION_SECRET must be set in production.")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def setup_enabled(self) -> bool:
        """Setup routes are open in development, or when explicitly enabled."""
        return not self.is_production or self.enable_setup


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Module-level singleton for convenience
settings = get_settings()
