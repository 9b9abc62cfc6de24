"""
Signing Context
===============
Every collaborator the signing core needs, built once at startup and passed
in explicitly. Tests build one with in-memory mail and archive doubles.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from core.config import Settings, get_settings
from core.logger import logger
from models import AgreementStore, ClientStore, Database, SummaryStore
from services.mailer import Mailer
from services.signing.records import Agreement, utcnow
from services.signing.stamp_service import StampService
from services.signing.templates import TemplateRegistry
from services.signing.tokens import TokenService

Archiver = Callable[[Agreement, str], Any]


@dataclass
class SigningContext:
    settings: Settings
    registry: TemplateRegistry
    database: Database
    agreements: AgreementStore
    summaries: SummaryStore
    clients: ClientStore
    tokens: TokenService
    stamper: StampService
    mailer: Mailer
    archiver: Archiver
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], datetime] = field(default=utcnow)

    @property
    def director_emails(self):
        return list(self.settings.director_emails)


def build_context(
    settings: Optional[Settings] = None,
    mailer: Optional[Mailer] = None,
    archiver: Optional[Archiver] = None,
    sleep: Callable[[float], None] = time.sleep,
    database: Optional[Database] = None,
) -> SigningContext:
    """Assemble the production context; any argument overrides its default."""
    settings = settings or get_settings()
    database = database or Database(settings.database_url)

    if archiver is None:
        from tasks import dispatch_archive
        archiver = dispatch_archive

    context = SigningContext(
        settings=settings,
        registry=TemplateRegistry(settings.templates_dir),
        database=database,
        agreements=AgreementStore(database),
        summaries=SummaryStore(database),
        clients=ClientStore(database),
        tokens=TokenService(settings.jwt_secret, settings.token_ttl_days),
        stamper=StampService(settings.timezone),
        mailer=mailer or Mailer.from_settings(settings, sleep=sleep),
        archiver=archiver,
        sleep=sleep,
    )
    logger.info(
        f"Signing context ready: {len(context.registry)} templates, "
        f"{len(settings.director_emails)} director(s), db={database.engine.url.drivername}"
    )
    return context
