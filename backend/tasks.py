"""
Signing Celery Tasks
====================
Background task definitions.

Tasks:
- archive_agreement: push every artifact of an agreement to SharePoint
"""

import threading

from celery import shared_task
from celery.utils.log import get_task_logger

from celery_app import get_task_mode
from core.config import get_settings
from core.logger import logger as app_logger
from models import AgreementStore, Database
from services.archive import GraphArchive
from services.signing.records import Agreement

logger = get_task_logger(__name__)


def run_archive(agreement_id: str, reason: str = "") -> None:
    """Load the agreement fresh and upload it. Shared by the Celery task and the thread fallback."""
    settings = get_settings()
    agreement = AgreementStore(Database(settings.database_url)).load(agreement_id)
    if agreement is None:
        app_logger.warning(f"ARCHIVE_SKIP_NOT_FOUND id={agreement_id}")
        return
    GraphArchive(settings).archive_agreement(agreement)
    app_logger.info(f"ARCHIVE_OK id={agreement_id} reason={reason}")


@shared_task(
    name="tasks.archive_agreement",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_jitter=True,
)
def archive_agreement(self, agreement_id: str, reason: str = ""):
    logger.info(f"[ARCHIVE] {agreement_id} ({reason}) attempt {self.request.retries + 1}")
    run_archive(agreement_id, reason)
    return {"agreement_id": agreement_id, "reason": reason}


def _run_archive_logged(agreement_id: str, reason: str) -> None:
    try:
        run_archive(agreement_id, reason)
    except Exception as e:
        app_logger.error(f"SP_UPLOAD_{reason.upper()}_FAIL id={agreement_id} detail={e!r}")


def dispatch_archive(agreement: Agreement, reason: str) -> str:
    """
    Queue an archive upload for ``agreement``.

    Uses Celery when Redis answers, otherwise a daemon thread.
    Returns the mode used.
    """
    mode = get_task_mode()
    if mode == "celery":
        archive_agreement.delay(agreement.id, reason)
    else:
        threading.Thread(
            target=_run_archive_logged,
            args=(agreement.id, reason),
            daemon=True,
        ).start()
    app_logger.info(f"ARCHIVE_DISPATCHED id={agreement.id} reason={reason} mode={mode}")
    return mode
