from celery import Celery
from celery.signals import after_setup_logger, after_setup_task_logger
import os

# Celery configuration
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/1")

celery_app = Celery(
    "filelair",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["filelair.cleanup", "filelair.scan_events"],
)

celery_app.conf.beat_schedule = {
    # Every 10 minutes purge expired records, tokens and rate-limit entries
    "cleanup-expired-entries": {
        "task": "filelair.cleanup.cleanup_expired",
        "schedule": 600.0,
    },
    # Daily sweep for stored objects whose record is gone
    "cleanup-orphaned-objects": {
        "task": "filelair.cleanup.cleanup_orphaned_objects",
        "schedule": 86400.0,
    },
}


@after_setup_logger.connect
@after_setup_task_logger.connect
def _install_redaction(logger, *args, **kwargs):
    from filelair.logging_config import RedactingFilter

    for handler in logger.handlers:
        handler.addFilter(RedactingFilter())
