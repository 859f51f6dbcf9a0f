import logging
import time
from contextlib import contextmanager
from typing import Callable

from sqlalchemy import case, delete, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from filelair.config import DOWNLOAD_TOKEN_TTL
from filelair.models import DownloadToken, FileRecord, RateLimitRecord, ScanStatus
from filelair.services.identifiers import generate_download_token, token_digest

logger = logging.getLogger(__name__)


def epoch_now() -> int:
    return int(time.time())


class MetadataStore:
    """Typed access to file records, rate-limit counters and download tokens.

    Every row carries an ``expires_at`` epoch; reads treat expired rows as
    absent and the periodic cleanup task removes them physically. Mutations
    that must happen exactly once are single conditional UPDATE/DELETE
    statements checked through ``rowcount``.
    """

    def __init__(self, db_session: Session, clock: Callable[[], int] = epoch_now):
        self.db_session = db_session
        self.clock = clock

    def now(self) -> int:
        return self.clock()

    @contextmanager
    def _committing(self):
        try:
            yield
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise

    # file records

    def save_file_record(self, record: FileRecord) -> bool:
        """Insert a new record. Returns False if the share ID is already taken."""
        self.db_session.add(record)
        try:
            self.db_session.commit()
        except (IntegrityError, FlushError):
            self.db_session.rollback()
            return False
        except SQLAlchemyError:
            self.db_session.rollback()
            raise
        return True

    def get_file_record(self, share_id: str) -> FileRecord | None:
        record = self.db_session.get(FileRecord, share_id)
        if record is None or record.expires_at < self.now():
            return None
        return record

    def increment_download_count(self, share_id: str) -> None:
        with self._committing():
            self.db_session.execute(
                update(FileRecord)
                .where(FileRecord.share_id == share_id)
                .values(download_count=FileRecord.download_count + 1)
                .execution_options(synchronize_session=False)
            )

    def update_scan_status(
        self, share_id: str, status: ScanStatus, scan_result: str | None = None
    ) -> bool:
        values = {"scan_status": status.value, "scan_date": self.now()}
        if scan_result is not None:
            values["scan_result"] = scan_result
        with self._committing():
            result = self.db_session.execute(
                update(FileRecord)
                .where(FileRecord.share_id == share_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def delete_file_record(self, share_id: str) -> bool:
        """Delete the record; only one of several concurrent callers gets True."""
        with self._committing():
            result = self.db_session.execute(
                delete(FileRecord)
                .where(FileRecord.share_id == share_id)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    # download tokens

    def create_download_token(self, share_id: str, client_address: str) -> str:
        """Persist a one-time token and return its plaintext form.

        Only the digest is stored.
        """
        token = generate_download_token()
        now = self.now()
        with self._committing():
            self.db_session.add(
                DownloadToken(
                    token_id=token_digest(token),
                    share_id=share_id,
                    client_address=client_address,
                    created_at=now,
                    expires_at=now + DOWNLOAD_TOKEN_TTL,
                    used=False,
                )
            )
        return token

    def validate_and_consume_token(
        self, token: str, share_id: str, client_address: str
    ) -> DownloadToken | None:
        """Flip ``used`` to true if the token is live, unused and bound to this
        share ID and client. Returns the consumed token, or None."""
        digest = token_digest(token)
        now = self.now()
        with self._committing():
            result = self.db_session.execute(
                update(DownloadToken)
                .where(
                    DownloadToken.token_id == digest,
                    DownloadToken.share_id == share_id,
                    DownloadToken.client_address == client_address,
                    DownloadToken.used.is_(False),
                    DownloadToken.expires_at >= now,
                )
                .values(used=True, used_at=now)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount != 1:
            return None
        return self.db_session.get(DownloadToken, digest)

    # rate limits

    def get_rate_limit(self, key: str) -> RateLimitRecord | None:
        record = self.db_session.get(RateLimitRecord, key)
        if record is None or record.expires_at < self.now():
            return None
        return record

    def _upsert_rate_limit(self, key: str, update_values: dict, insert_values: dict) -> None:
        for attempt in range(3):
            try:
                result = self.db_session.execute(
                    update(RateLimitRecord)
                    .where(RateLimitRecord.key == key)
                    .values(**update_values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    self.db_session.add(RateLimitRecord(key=key, **insert_values))
                self.db_session.commit()
                return
            except IntegrityError:
                # another request inserted the row first; retry as an update
                self.db_session.rollback()
                if attempt == 2:
                    raise
            except SQLAlchemyError:
                self.db_session.rollback()
                raise

    def put_rate_limit(self, key: str, attempts: int, ttl_seconds: int) -> None:
        now = self.now()
        values = {
            "attempts": attempts,
            "window_start": now,
            "last_attempt": now,
            "locked_until": None,
            "expires_at": now + ttl_seconds,
        }
        self._upsert_rate_limit(key, values, values)

    def increment_rate_limit_attempts(self, key: str, window_seconds: int) -> None:
        """Count one failed attempt; a row idle longer than the window restarts at 1."""
        now = self.now()
        stale = RateLimitRecord.last_attempt < now - window_seconds
        self._upsert_rate_limit(
            key,
            {
                "attempts": case((stale, 1), else_=RateLimitRecord.attempts + 1),
                "window_start": case((stale, now), else_=RateLimitRecord.window_start),
                "last_attempt": now,
                "expires_at": now + window_seconds,
            },
            {
                "attempts": 1,
                "window_start": now,
                "last_attempt": now,
                "expires_at": now + window_seconds,
            },
        )

    def lock_rate_limit(self, key: str, locked_until: int) -> bool:
        """Set a lockout unless a live one is already in place."""
        now = self.now()
        with self._committing():
            result = self.db_session.execute(
                update(RateLimitRecord)
                .where(
                    RateLimitRecord.key == key,
                    or_(
                        RateLimitRecord.locked_until.is_(None),
                        RateLimitRecord.locked_until <= now,
                    ),
                )
                .values(
                    locked_until=locked_until,
                    expires_at=case(
                        (RateLimitRecord.expires_at < locked_until, locked_until),
                        else_=RateLimitRecord.expires_at,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def clear_elapsed_lockout(self, key: str, ttl_seconds: int) -> bool:
        now = self.now()
        with self._committing():
            result = self.db_session.execute(
                update(RateLimitRecord)
                .where(
                    RateLimitRecord.key == key,
                    RateLimitRecord.locked_until.is_not(None),
                    RateLimitRecord.locked_until <= now,
                )
                .values(
                    attempts=0,
                    locked_until=None,
                    window_start=now,
                    last_attempt=now,
                    expires_at=now + ttl_seconds,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def increment_request_count(self, key: str, window_seconds: int) -> int:
        """Count one request in the key's current window and return the total."""
        now = self.now()
        stale = RateLimitRecord.window_start <= now - window_seconds
        self._upsert_rate_limit(
            key,
            {
                "attempts": case((stale, 1), else_=RateLimitRecord.attempts + 1),
                "window_start": case((stale, now), else_=RateLimitRecord.window_start),
                "last_attempt": now,
                "expires_at": case(
                    (stale, now + window_seconds), else_=RateLimitRecord.expires_at
                ),
            },
            {
                "attempts": 1,
                "window_start": now,
                "last_attempt": now,
                "expires_at": now + window_seconds,
            },
        )
        record = self.db_session.get(RateLimitRecord, key)
        return record.attempts if record is not None else 1
