import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "ap-northeast-1")

from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from filelair import models  # noqa: F401
from filelair.config import FILE_EXPIRATION_SECONDS
from filelair.database import Base, get_db
from filelair.main import app
from filelair.models import FileRecord, ScanStatus
from filelair.routers.files import get_clock
from filelair.services.access_control import AccessControl
from filelair.services.credentials import hash_password
from filelair.services.identifiers import generate_share_id
from filelair.services.metadata_store import MetadataStore
from filelair.services.storage import build_storage_key, get_object_storage

START = 1_760_000_000  # 2025-10-09T08:53:20Z


class FakeClock:
    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeStorage:
    """In-memory stand-in for the S3 bucket."""

    bucket = "filelair-files"

    def __init__(self):
        self.objects = {}
        self.tags = {}
        self.deleted = []
        self.fail_deletes = False

    def put(self, key, body, content_type):
        self.objects[key] = body

    def presign_put(self, key, content_type, ttl):
        return f"https://storage.test/{key}?op=put&ttl={ttl}"

    def presign_get(self, key, filename, ttl):
        return f"https://storage.test/{key}?op=get&ttl={ttl}"

    def delete(self, key):
        if self.fail_deletes:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "DeleteObject")
        self.objects.pop(key, None)
        self.deleted.append(key)

    def list_by_prefix(self, prefix):
        return sorted(k for k in self.objects if k.startswith(prefix))

    def object_exists(self, key):
        return key in self.objects

    def get_scan_status(self, key):
        return self.tags.get(key)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = Session()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
def store(db_session, clock):
    return MetadataStore(db_session, clock=clock)


@pytest.fixture()
def access(store, storage):
    return AccessControl(store, storage)


@pytest.fixture()
def make_file(store, storage, clock):
    """Insert a file record (and its stored object) directly."""

    def _make(
        password=None,
        scan_status=ScanStatus.CLEAN,
        expires_in=FILE_EXPIRATION_SECONDS,
        name="report.pdf",
        size=10 * 1024,
        mime_type="application/pdf",
        store_object=True,
    ):
        share_id = generate_share_id()
        key = build_storage_key(share_id, name, datetime.fromtimestamp(clock(), timezone.utc))
        record = FileRecord(
            share_id=share_id,
            original_filename=name,
            storage_key=key,
            file_size=size,
            mime_type=mime_type,
            password_hash=hash_password(password) if password else None,
            uploaded_at=clock(),
            expires_at=clock() + expires_in,
            download_count=0,
            scan_status=scan_status.value,
        )
        assert store.save_file_record(record)
        if store_object:
            storage.put(key, b"x" * size, mime_type)
        return share_id

    return _make


@pytest.fixture()
def client(db_session, storage, clock):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_storage] = lambda: storage
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
