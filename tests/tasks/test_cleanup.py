from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from filelair import cleanup
from filelair.cleanup import purge_expired, sweep_orphaned_objects
from filelair.models import DownloadToken, FileRecord, RateLimitRecord
from filelair.services.identifiers import generate_share_id
from filelair.services.storage import build_storage_key


def count(db_session, model):
    return db_session.scalar(select(func.count()).select_from(model))


def test_purge_expired_deletes_only_expired_rows(engine, db_session, make_file, store, clock):
    for _ in range(5):
        make_file(expires_in=10)
    keep = make_file()
    store.create_download_token(keep, "203.0.113.7")
    store.put_rate_limit("RATELIMIT#x#y", attempts=1, ttl_seconds=10)
    clock.advance(5 * 60 + 1)
    live_token = store.create_download_token(keep, "203.0.113.7")

    with engine.begin() as conn:
        deleted = purge_expired(conn, clock(), batch_size=2)

    db_session.expire_all()
    assert deleted == 7
    assert count(db_session, FileRecord) == 1
    assert count(db_session, RateLimitRecord) == 0
    assert count(db_session, DownloadToken) == 1
    assert store.validate_and_consume_token(live_token, keep, "203.0.113.7") is not None


def test_purge_expired_with_nothing_to_do(engine, make_file, clock):
    make_file()

    with engine.begin() as conn:
        assert purge_expired(conn, clock()) == 0


def test_cleanup_expired_task(engine, monkeypatch):
    monkeypatch.setattr(cleanup, "engine", engine)

    assert cleanup.cleanup_expired() == {"deleted": 0}


def test_sweep_orphaned_objects(make_file, store, storage, clock):
    today = datetime.fromtimestamp(clock(), timezone.utc)
    three_days_ago = today - timedelta(days=3)

    live = make_file()
    live_key = store.get_file_record(live).storage_key
    # a live record whose object sits under an older date prefix
    old_live = make_file()
    old_live_key = build_storage_key(old_live, "report.pdf", three_days_ago)
    storage.put(old_live_key, b"x", "application/pdf")

    orphan_key = build_storage_key(generate_share_id(), "left-behind.zip", three_days_ago)
    stray_key = three_days_ago.strftime("%Y/%m/%d/") + "stray.txt"
    too_old_key = build_storage_key(generate_share_id(), "ancient.txt", today - timedelta(days=30))
    for key in (orphan_key, stray_key, too_old_key):
        storage.put(key, b"x", "text/plain")

    deleted = sweep_orphaned_objects(store, storage, today)

    assert deleted == 2
    assert sorted(storage.deleted) == sorted([orphan_key, stray_key])
    assert {live_key, old_live_key, too_old_key} <= set(storage.objects)


def test_recent_prefixes_are_left_alone(store, storage, clock):
    today = datetime.fromtimestamp(clock(), timezone.utc)
    for days_ago in (0, 1):
        key = build_storage_key(generate_share_id(), "in-flight.txt", today - timedelta(days=days_ago))
        storage.put(key, b"x", "text/plain")

    assert sweep_orphaned_objects(store, storage, today) == 0
