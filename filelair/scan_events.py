import logging

from filelair import celery_app
from filelair.config import S3_BUCKET_NAME
from filelair.database import SessionLocal
from filelair.services.metadata_store import MetadataStore
from filelair.services.scan_results import ScanResultProcessor
from filelair.services.storage import get_object_storage

logger = logging.getLogger(__name__)


def parse_scan_event(event: dict, bucket: str | None = None) -> str | None:
    """Pull the object key out of an EventBridge "Object Tags Added" event.

    Events for other buckets, or without a key, yield None.
    """
    bucket = bucket or S3_BUCKET_NAME
    detail = event.get("detail") or {}
    event_bucket = (detail.get("bucket") or {}).get("name")
    if event_bucket != bucket:
        logger.info("Ignoring tag event for bucket %s", event_bucket)
        return None
    return (detail.get("object") or {}).get("key") or None


@celery_app.task(name="filelair.scan_events.process_scan_event")
def process_scan_event(event: dict):
    storage_key = parse_scan_event(event)
    if storage_key is None:
        return None

    db = SessionLocal()
    try:
        processor = ScanResultProcessor(MetadataStore(db), get_object_storage())
        status = processor.process(storage_key)
    finally:
        db.close()
    return status.value if status is not None else None
