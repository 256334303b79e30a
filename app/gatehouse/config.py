import os
from dataclasses import dataclass
from typing import Any

PRODUCTION_ENVS = ("prod", "production")
FALSE_VALUES = ("0", "false", "no", "off")


def _env(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _flag(name: str, default: bool) -> bool:
    raw = _env(name)
    return default if not raw else raw.lower() not in FALSE_VALUES


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str
    # Off means no authorization provider: every logged-in account may do anything.
    authorization_enabled: bool
    csrf_enabled: bool

    @property
    def is_production(self) -> bool:
        return self.env.lower() in PRODUCTION_ENVS

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            secret_key=_env("SECRET_KEY", "change-me"),
            env=_env("ENV", "development"),
            database_url=_env("DATABASE_URL", "sqlite:///gatehouse.db"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            authorization_enabled=_flag("AUTHORIZATION_ENABLED", True),
            csrf_enabled=_flag("CSRF_ENABLED", True),
        )

    def problems(self) -> list[str]:
        """Settings that are refused in production."""
        if not self.is_production:
            return []
        found = []
        if self.database_url.startswith("sqlite"):
            found.append("DATABASE_URL must be Postgres in production (not sqlite).")
        if self.secret_key in ("", "change-me"):
            found.append("SECRET_KEY must be set to a strong value in production (not default).")
        if not self.authorization_enabled:
            found.append("AUTHORIZATION_ENABLED=0 is not allowed in production.")
        return found

    def flask_config(self) -> dict[str, Any]:
        return {
            "SECRET_KEY": self.secret_key,
            "ENV": self.env,
            "DATABASE_URL": self.database_url,
            "LOG_LEVEL": self.log_level,
            "AUTHORIZATION_ENABLED": self.authorization_enabled,
            "CSRF_ENABLED": self.csrf_enabled,
            "SESSION_COOKIE_HTTPONLY": True,
            "SESSION_COOKIE_SAMESITE": "Lax",
            "SESSION_COOKIE_SECURE": self.is_production,
        }
