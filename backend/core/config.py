from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str

    # Auth
    jwt_secret_key: str = Field(
        validation_alias=AliasChoices("jwt_secret_key", "jwt_secret", "JWT_SECRET_KEY", "JWT_SECRET", "SECRET_KEY")
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias=AliasChoices("jwt_algorithm", "JWT_ALGORITHM"))
    access_token_expire_minutes: int = Field(
        default=30 * 24 * 60,
        validation_alias=AliasChoices("access_token_expire_minutes", "ACCESS_TOKEN_EXPIRE_MINUTES"),
    )

    cookie_samesite: str = Field(
        default="lax",
        validation_alias=AliasChoices("cookie_samesite", "COOKIE_SAMESITE"),
    )

    # Optional bootstrap: seed one teacher account on startup.
    # Only used if BOTH email + password are provided.
    seed_teacher_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("seed_teacher_email", "SEED_TEACHER_EMAIL"),
    )
    seed_teacher_password: str | None = Field(
        default=None,
        validation_alias=AliasChoices("seed_teacher_password", "SEED_TEACHER_PASSWORD"),
    )

    # Calendar day boundaries for the daily time ledger.
    ledger_timezone: str = Field(
        default="UTC",
        validation_alias=AliasChoices("ledger_timezone", "LEDGER_TIMEZONE"),
    )

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("cookie_samesite")
    @classmethod
    def _normalize_cookie_samesite(cls, v: str) -> str:
        v = (v or "lax").strip().lower()
        if v not in {"lax", "strict", "none"}:
            raise ValueError("COOKIE_SAMESITE must be 'lax', 'strict', or 'none'")
        return v

    @field_validator("ledger_timezone")
    @classmethod
    def _validate_ledger_timezone(cls, v: str) -> str:
        v = (v or "UTC").strip()
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"LEDGER_TIMEZONE {v!r} is not a known IANA timezone") from exc
        return v

    @field_validator("seed_teacher_email")
    @classmethod
    def _normalize_seed_teacher_email(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @field_validator("seed_teacher_password")
    @classmethod
    def _normalize_seed_teacher_password(cls, v: str | None) -> str | None:
        if v is None:
            return None
        # Passwords can contain spaces; do not strip.
        return v or None

    @property
    def ledger_tz(self) -> ZoneInfo:
        return ZoneInfo(self.ledger_timezone)

    @property
    def is_production(self) -> bool:
        return self.environment.lower().strip() == "production"


settings = Settings()
