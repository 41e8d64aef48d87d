# budget_auth/core/config.py
from __future__ import annotations

import logging
import os
import re
import secrets
import sys
from typing import ClassVar, List, Optional

from pydantic import BaseModel, Field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str | int) -> int:
    """Parse ``"90"``, ``"15m"``, ``"1h"`` or ``"7d"`` into seconds."""
    if isinstance(value, int):
        return value
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit.lower()]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _default_db_path() -> str:
    data_dir = os.path.abspath(os.getenv("DATA_DIR", "./data"))
    return os.getenv("AUTH_DB_PATH", os.path.join(data_dir, "auth.db"))


class SettingsError(Exception):
    """Raised when the signing configuration is unusable."""


class Settings(BaseModel):
    SERVICE_NAME: ClassVar[str] = "budget-auth"

    ENVIRONMENT: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    LOG_LEVEL: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # signing
    JWT_SECRET: str = Field(default_factory=lambda: os.getenv("JWT_SECRET", ""))
    JWT_REFRESH_SECRET: str = Field(default_factory=lambda: os.getenv("JWT_REFRESH_SECRET", ""))
    JWT_ALGORITHM: str = Field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))
    JWT_ISSUER: str = Field(default_factory=lambda: os.getenv("JWT_ISSUER", "actual-wrapper"))
    JWT_AUDIENCE: str = Field(default_factory=lambda: os.getenv("JWT_AUDIENCE", "n8n"))
    ACCESS_TTL_SECONDS: int = Field(default_factory=lambda: parse_duration(os.getenv("JWT_ACCESS_TTL", "1h")))
    REFRESH_TTL_SECONDS: int = Field(default_factory=lambda: parse_duration(os.getenv("JWT_REFRESH_TTL", "24h")))
    LEEWAY_SECONDS: int = Field(default_factory=lambda: int(os.getenv("JWT_LEEWAY_SECONDS", "30")))
    AUTH_CODE_TTL_SECONDS: int = Field(default_factory=lambda: int(os.getenv("AUTH_CODE_TTL_SECONDS", "600")))

    # password login throttling, per client IP and endpoint; 0 disables
    LOGIN_RATE_LIMIT: int = Field(default_factory=lambda: int(os.getenv("LOGIN_RATE_LIMIT", "5")))
    LOGIN_RATE_WINDOW_SECONDS: int = Field(
        default_factory=lambda: parse_duration(os.getenv("LOGIN_RATE_WINDOW", "15m"))
    )

    # storage
    DB_TYPE: str = Field(default_factory=lambda: os.getenv("DB_TYPE", "sqlite").lower())
    AUTH_DB_PATH: str = Field(default_factory=_default_db_path)
    POSTGRES_URL: Optional[str] = Field(default_factory=lambda: os.getenv("POSTGRES_URL") or None)
    POSTGRES_HOST: Optional[str] = Field(default_factory=lambda: os.getenv("POSTGRES_HOST") or None)
    POSTGRES_PORT: int = Field(default_factory=lambda: int(os.getenv("POSTGRES_PORT", "5432")))
    POSTGRES_DB: Optional[str] = Field(default_factory=lambda: os.getenv("POSTGRES_DB") or None)
    POSTGRES_USER: Optional[str] = Field(default_factory=lambda: os.getenv("POSTGRES_USER") or None)
    POSTGRES_PASSWORD: Optional[str] = Field(default_factory=lambda: os.getenv("POSTGRES_PASSWORD") or None)

    # bootstrap accounts
    ADMIN_USER: str = Field(default_factory=lambda: os.getenv("ADMIN_USER", "admin"))
    ADMIN_PASSWORD: Optional[str] = Field(default_factory=lambda: os.getenv("ADMIN_PASSWORD") or None)
    OAUTH_DEFAULT_CLIENT_ID: Optional[str] = Field(default_factory=lambda: os.getenv("OAUTH_DEFAULT_CLIENT_ID") or None)
    OAUTH_DEFAULT_CLIENT_SECRET: Optional[str] = Field(default_factory=lambda: os.getenv("OAUTH_DEFAULT_CLIENT_SECRET") or None)
    OAUTH_DEFAULT_REDIRECT_URIS: str = Field(
        default_factory=lambda: os.getenv(
            "OAUTH_DEFAULT_REDIRECT_URIS", "http://localhost:5678/rest/oauth2-credential/callback"
        )
    )

    # browser sessions / http
    SESSION_SECRET: Optional[str] = Field(default_factory=lambda: os.getenv("SESSION_SECRET") or None)
    SESSION_COOKIE_SECURE: bool = Field(default_factory=lambda: _env_bool("SESSION_COOKIE_SECURE"))
    ALLOWED_ORIGINS: str = Field(
        default_factory=lambda: os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5678")
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    def postgres_configured(self) -> bool:
        if self.DB_TYPE != "postgres":
            return False
        return bool(
            self.POSTGRES_URL
            or (self.POSTGRES_HOST and self.POSTGRES_DB and self.POSTGRES_USER and self.POSTGRES_PASSWORD)
        )

    def validate_signing_keys(self) -> None:
        if not self.JWT_SECRET:
            raise SettingsError("JWT_SECRET is required but not set")
        if not self.JWT_REFRESH_SECRET:
            raise SettingsError("JWT_REFRESH_SECRET is required but not set")
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise SettingsError("JWT_SECRET and JWT_REFRESH_SECRET must be different")

    def session_secret(self) -> str:
        if not self.SESSION_SECRET:
            logger.warning("SESSION_SECRET not set, using a random per-process secret; sessions will not survive restarts")
            self.SESSION_SECRET = secrets.token_urlsafe(48)
        return self.SESSION_SECRET


def load_settings() -> Settings:
    """Build settings from the environment; exits the process if signing keys are unusable."""
    load_dotenv()
    settings = Settings()
    try:
        settings.validate_signing_keys()
    except SettingsError as exc:
        logger.critical("FATAL: %s", exc)
        sys.exit(1)
    if settings.DB_TYPE == "postgres" and not settings.postgres_configured():
        logger.warning(
            "DB_TYPE=postgres but no PostgreSQL connection configured; falling back to SQLite at %s",
            settings.AUTH_DB_PATH,
        )
    return settings
