"""
Runtime settings

Everything the service needs from the environment is read once, at startup,
into a frozen Settings object that is handed to the auth gate, the content
store and the notifier. Values can come from the process environment or a
local .env file.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from errors import ConfigError

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    database_url: str
    admin_password: Optional[str] = None
    admin_password_hash: Optional[str] = None
    jwt_expires_min: int = 120
    database_name: str = "bndlabs_db"
    data_dir: Path = BASE_DIR / "data"
    templates_dir: Path = BASE_DIR / "email-templates"
    email_host: str = "smtp-relay.brevo.com"
    email_port: int = 587
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    admin_email: Optional[str] = None
    site_name: str = "bndlabs"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000

    def __post_init__(self):
        if not self.jwt_secret:
            raise ConfigError("JWT_SECRET is missing")
        if not self.database_url:
            raise ConfigError("DATABASE_URL is missing")
        if not self.admin_password and not self.admin_password_hash:
            raise ConfigError("ADMIN_PASSWORD or ADMIN_PASSWORD_HASH must be set")

    @property
    def notice_recipient(self) -> Optional[str]:
        return self.admin_email or self.email_user

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", ""),
            database_url=os.getenv("DATABASE_URL", ""),
            admin_password=os.getenv("ADMIN_PASSWORD") or None,
            admin_password_hash=os.getenv("ADMIN_PASSWORD_HASH") or None,
            jwt_expires_min=_int_env("JWT_EXPIRES_MIN", 120),
            database_name=os.getenv("DATABASE_NAME", "bndlabs_db"),
            data_dir=Path(os.getenv("DATA_DIR", str(BASE_DIR / "data"))),
            templates_dir=Path(os.getenv("TEMPLATES_DIR", str(BASE_DIR / "email-templates"))),
            email_host=os.getenv("EMAIL_HOST", "smtp-relay.brevo.com"),
            email_port=_int_env("EMAIL_PORT", 587),
            email_user=os.getenv("EMAIL_USER") or None,
            email_pass=os.getenv("EMAIL_PASS") or None,
            admin_email=os.getenv("ADMIN_EMAIL") or None,
            site_name=os.getenv("SITE_NAME", "bndlabs"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] or ["*"],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=_int_env("PORT", 8000),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)-16s %(levelname)-8s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
