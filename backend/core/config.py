"""
Service Configuration
=====================
Environment-driven settings, loaded once per process.

Values come from the process environment after ``load_dotenv()`` so a local
``.env`` file works in development. Production refuses to boot without a
token secret and a database URL.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from core.logger import logger

BACKEND_DIR = Path(__file__).parent.parent

REQUIRED_IN_PRODUCTION = ("JWT_SECRET", "DATABASE_URL")

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:3001"


def _split_csv(raw: str) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


@dataclass
class Settings:
    """Runtime settings for the signing service."""

    app_env: str = "development"
    jwt_secret: str = "dev-signing-secret"
    token_ttl_days: int = 7
    database_url: str = f"sqlite:///{BACKEND_DIR / 'signing.db'}"
    public_web_url: str = "http://localhost:3000"
    cors_origins: List[str] = field(default_factory=lambda: _split_csv(DEFAULT_CORS_ORIGINS))

    # Storage
    pdf_dir: Path = BACKEND_DIR / "pdfs"
    signature_dir: Path = BACKEND_DIR / "signatures"
    templates_dir: Path = BACKEND_DIR / "pdf-templates"

    # Mail
    email_user: str = ""
    email_pass: str = ""
    smtp_host: str = "smtp.gmail.com"
    agreements_inbox: str = ""
    director_emails: List[str] = field(default_factory=list)
    mail_attempts: int = 3
    mail_retry_delay_seconds: float = 3.0
    director_mail_pause_seconds: float = 7.0

    # Localized timestamps on stamps and drafts
    timezone: str = "Australia/Melbourne"

    # Archival (Microsoft Graph / SharePoint)
    graph_tenant_id: str = ""
    graph_client_id: str = ""
    graph_client_secret: str = ""
    graph_site_id: str = ""
    graph_drive_id: str = ""
    sp_base_path: str = "Agreements"

    # Background dispatch
    redis_url: str = "redis://localhost:6379/0"
    redis_result_url: str = "redis://localhost:6379/1"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def inbox(self) -> str:
        """Internal inbox, falling back to the sending account."""
        return self.agreements_inbox or self.email_user

    @property
    def graph_configured(self) -> bool:
        return all([
            self.graph_tenant_id,
            self.graph_client_id,
            self.graph_client_secret,
            self.graph_site_id,
            self.graph_drive_id,
        ])

    def ensure_dirs(self) -> None:
        for directory in (self.pdf_dir, self.signature_dir, self.templates_dir):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created folder {directory}")

    @classmethod
    def from_env(cls, env: Optional[dict] = None) -> "Settings":
        """Build settings from ``env`` (defaults to ``os.environ``)."""
        env = os.environ if env is None else env
        defaults = cls()

        app_env = env.get("APP_ENV", env.get("NODE_ENV", defaults.app_env))
        if app_env == "production":
            missing = [key for key in REQUIRED_IN_PRODUCTION if not env.get(key)]
            if missing:
                raise RuntimeError(f"Missing required env in production: {', '.join(missing)}")

        director_emails = _split_csv(env.get("DIRECTOR_EMAILS", ""))
        if not director_emails and env.get("DIRECTOR_EMAIL"):
            director_emails = [env["DIRECTOR_EMAIL"].strip()]

        return cls(
            app_env=app_env,
            jwt_secret=env.get("JWT_SECRET", defaults.jwt_secret),
            database_url=env.get("DATABASE_URL", defaults.database_url),
            public_web_url=env.get("PUBLIC_WEB_URL", defaults.public_web_url).rstrip("/"),
            cors_origins=_split_csv(env.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)),
            pdf_dir=Path(env.get("PDF_DIR", defaults.pdf_dir)),
            signature_dir=Path(env.get("SIGNATURE_DIR", defaults.signature_dir)),
            templates_dir=Path(env.get("TEMPLATES_DIR", defaults.templates_dir)),
            email_user=env.get("EMAIL_USER", ""),
            email_pass=env.get("EMAIL_PASS", ""),
            smtp_host=env.get("SMTP_HOST", defaults.smtp_host),
            agreements_inbox=env.get("AGREEMENTS_INBOX", ""),
            director_emails=director_emails,
            mail_retry_delay_seconds=float(env.get("MAIL_RETRY_DELAY_SECONDS", defaults.mail_retry_delay_seconds)),
            director_mail_pause_seconds=float(env.get("DIRECTOR_MAIL_PAUSE_SECONDS", defaults.director_mail_pause_seconds)),
            timezone=env.get("TIMEZONE", defaults.timezone),
            graph_tenant_id=env.get("GRAPH_TENANT_ID", "").strip(),
            graph_client_id=env.get("GRAPH_CLIENT_ID", "").strip(),
            graph_client_secret=env.get("GRAPH_CLIENT_SECRET", "").strip(),
            graph_site_id=env.get("GRAPH_SITE_ID", "").strip(),
            graph_drive_id=env.get("GRAPH_DRIVE_ID", "").strip(),
            sp_base_path=env.get("SP_BASE_PATH", defaults.sp_base_path).strip("/"),
            redis_url=env.get("REDIS_URL", defaults.redis_url),
            redis_result_url=env.get("REDIS_RESULT_URL", defaults.redis_result_url),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings (cached)."""
    load_dotenv()
    return Settings.from_env()
