import logging
import time
from datetime import datetime, timedelta, timezone
from sqlalchemy import text
from filelair.config import CLEANUP_BATCH_SIZE, ORPHAN_SWEEP_DAYS
from filelair.database import SessionLocal, engine
from filelair.services.metadata_store import MetadataStore
from filelair.services.storage import date_prefix, get_object_storage, share_id_from_key
from . import celery_app

logger = logging.getLogger(__name__)

# (table, primary key) for every map with TTL semantics
EXPIRING_TABLES = (
    ("file_records", "share_id"),
    ("download_tokens", "token_id"),
    ("rate_limits", "key"),
)


def purge_expired(conn, now: int, batch_size: int = CLEANUP_BATCH_SIZE) -> int:
    # Delete in batches to avoid long locks; loop until a batch comes back short
    total_deleted = 0
    for table, pk in EXPIRING_TABLES:
        while True:
            res = conn.execute(
                text(
                    f"""
                    DELETE FROM {table}
                    WHERE {pk} IN (
                      SELECT {pk} FROM {table}
                      WHERE expires_at < :now
                      LIMIT :batch
                    )
                    """
                ),
                {"now": now, "batch": batch_size},
            )
            deleted = res.rowcount or 0
            total_deleted += deleted
            if deleted < batch_size:
                break
    return total_deleted


def sweep_orphaned_objects(store: MetadataStore, storage, today: datetime) -> int:
    """Delete stored objects from past upload days whose record is gone or expired."""
    deleted = 0
    # today and yesterday may hold uploads whose records are still being written
    for days_ago in range(2, 2 + ORPHAN_SWEEP_DAYS):
        prefix = date_prefix(today - timedelta(days=days_ago))
        for key in storage.list_by_prefix(prefix):
            share_id = share_id_from_key(key)
            if share_id is not None and store.get_file_record(share_id) is not None:
                continue
            storage.delete(key)
            deleted += 1
    return deleted


@celery_app.task(name="filelair.cleanup.cleanup_expired")
def cleanup_expired():
    with engine.begin() as conn:
        total_deleted = purge_expired(conn, int(time.time()))
    logger.info("Purged %d expired rows", total_deleted)
    return {"deleted": total_deleted}


@celery_app.task(name="filelair.cleanup.cleanup_orphaned_objects")
def cleanup_orphaned_objects():
    db = SessionLocal()
    try:
        deleted = sweep_orphaned_objects(
            MetadataStore(db), get_object_storage(), datetime.now(timezone.utc)
        )
    finally:
        db.close()
    logger.info("Deleted %d orphaned objects", deleted)
    return {"deleted": deleted}
