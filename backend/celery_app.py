"""
Signing Celery Configuration
============================
Background queue for SharePoint archival so uploads never sit on a
signer's response path.

Features:
- Redis as broker and result backend (REDIS_URL / REDIS_RESULT_URL)
- Archive uploads routed to their own ``archive`` queue
- In-process thread fallback when Redis does not answer
"""

from celery import Celery

from core.config import get_settings
from core.logger import logger

_settings = get_settings()
BROKER_URL = _settings.redis_url
RESULT_URL = _settings.redis_result_url

celery_app = Celery("signing", broker=BROKER_URL, backend=RESULT_URL, include=["tasks"])

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    result_expires=24 * 3600,
    worker_prefetch_multiplier=1,
    # Large PDFs go through chunked upload sessions
    task_time_limit=600,
    task_soft_time_limit=540,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="default",
    task_routes={"tasks.archive_agreement": {"queue": "archive"}},
)


class BrokerProbe:
    """Pings Redis once per process and remembers the answer."""

    def __init__(self, url: str = BROKER_URL):
        self.url = url
        self._reachable = None

    @property
    def reachable(self) -> bool:
        if self._reachable is None:
            try:
                import redis
                redis.from_url(self.url, socket_connect_timeout=1).ping()
                self._reachable = True
            except Exception as e:
                logger.warning(f"REDIS_UNREACHABLE url={self.url} detail={e!r}; archive runs in threads")
                self._reachable = False
        return self._reachable


broker_probe = BrokerProbe()


def get_task_mode() -> str:
    """``celery`` when the broker answers, else ``thread``."""
    return "celery" if broker_probe.reachable else "thread"
