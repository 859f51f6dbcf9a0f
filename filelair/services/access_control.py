import logging
from datetime import datetime, timezone
from functools import wraps

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import SQLAlchemyError

from filelair.config import (
    DOWNLOAD_THROTTLE,
    DOWNLOAD_URL_TTL,
    FILE_EXPIRATION_SECONDS,
    FILE_INFO_THROTTLE,
    REDEEM_THROTTLE,
    SHARE_BASE_URL,
    UPLOAD_THROTTLE,
    UPLOAD_URL_TTL,
)
from filelair.errors import ErrorCode, FileLairError, not_found
from filelair.logging_config import mask_identifier
from filelair.models import FileRecord, ScanStatus
from filelair.services.credentials import (
    hash_password,
    validate_password_strength,
    verify_password,
)
from filelair.services.file_validation import validate_upload
from filelair.services.identifiers import (
    generate_share_id,
    is_valid_download_token,
    is_valid_share_id,
)
from filelair.services.metadata_store import MetadataStore
from filelair.services.rate_limiter import RateLimiter
from filelair.services.storage import MAX_FILENAME_LENGTH, ObjectStorage, build_storage_key

logger = logging.getLogger(__name__)

COLLABORATOR_ERRORS = (SQLAlchemyError, BotoCoreError, ClientError)
SHARE_ID_ATTEMPTS = 5


def to_iso(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def shielded(code: ErrorCode, message: str):
    """Turn store and storage failures into ``code`` without echoing their details."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except COLLABORATOR_ERRORS as exc:
                # the exception text may carry SQL parameters, so only its type is logged
                logger.error("%s (%s)", message, type(exc).__name__)
                raise FileLairError(code, message) from exc

        return wrapper

    return decorator


class AccessControl:
    """Gatekeeper for every upload, lookup, download and delete.

    Downloads take two round trips. ``request_download`` checks existence,
    expiry, scan state and password, then hands out a single-use token bound
    to the caller; ``redeem_download_token`` burns that token and only then
    issues a short-lived presigned URL.
    """

    def __init__(
        self,
        store: MetadataStore,
        storage: ObjectStorage,
        rate_limiter: RateLimiter | None = None,
    ):
        self.store = store
        self.storage = storage
        self.rate_limiter = rate_limiter or RateLimiter(store)

    # gates

    def _require_share_id(self, share_id: str) -> None:
        if not is_valid_share_id(share_id):
            raise FileLairError(ErrorCode.VALIDATION_ERROR, "Invalid share ID format")

    def _throttle(self, name: str, client_address: str, limit: tuple[int, int]) -> None:
        window_seconds, max_requests = limit
        allowed = self.rate_limiter.check_rate_limit_generic(
            f"{name}:{client_address}", window_seconds, max_requests
        )
        if not allowed:
            logger.warning(
                "Request throttled",
                extra={"endpoint": name, "client": mask_identifier(client_address)},
            )
            raise FileLairError(
                ErrorCode.RATE_LIMITED, "Too many requests. Please try again later."
            )

    def _load_live_record(self, share_id: str) -> FileRecord:
        record = self.store.get_file_record(share_id)
        if record is None:
            raise not_found()
        return record

    def _check_scan_gate(self, record: FileRecord) -> None:
        status = ScanStatus(record.scan_status)
        if status is ScanStatus.CLEAN:
            return
        if status is ScanStatus.INFECTED:
            raise FileLairError(
                ErrorCode.ACCESS_DENIED,
                "This file was removed because malware was detected",
            )
        if status is ScanStatus.ERROR:
            raise FileLairError(
                ErrorCode.ACCESS_DENIED, "This file could not be verified as safe"
            )
        raise FileLairError(
            ErrorCode.SCAN_PENDING,
            "The file is still being scanned for malware. Please try again shortly.",
        )

    def _check_password(
        self, record: FileRecord, password: str | None, client_address: str
    ) -> None:
        if not record.password_hash:
            return
        if not password:
            raise FileLairError(ErrorCode.INVALID_PASSWORD, "Password is required")

        limit = self.rate_limiter.check_rate_limit(record.share_id, client_address)
        if not limit.allowed:
            raise FileLairError(
                ErrorCode.RATE_LIMITED,
                "Too many failed attempts. Please try again later.",
            )

        valid = verify_password(password, record.password_hash)
        self.rate_limiter.record_attempt(record.share_id, client_address, valid)

        if not valid:
            remaining = max((limit.remaining_attempts or 1) - 1, 0)
            if remaining:
                message = f"Invalid password. {remaining} attempts remaining."
            else:
                message = "Invalid password. No attempts remaining."
            raise FileLairError(ErrorCode.INVALID_PASSWORD, message)

    # operations

    @shielded(ErrorCode.UPLOAD_FAILED, "Failed to create upload URL")
    def upload(
        self,
        file_name: str,
        file_size: int,
        content_type: str,
        password: str | None,
        client_address: str,
    ) -> dict:
        if not file_name or not file_size or not content_type:
            raise FileLairError(
                ErrorCode.VALIDATION_ERROR,
                "Missing required fields: fileName, fileSize, contentType",
            )
        if len(file_name) > MAX_FILENAME_LENGTH:
            raise FileLairError(
                ErrorCode.VALIDATION_ERROR,
                f"File name must not exceed {MAX_FILENAME_LENGTH} characters",
            )
        self._throttle("upload", client_address, UPLOAD_THROTTLE)
        validate_upload(file_name, content_type, file_size)

        password_hash = None
        if password:
            check = validate_password_strength(password)
            if not check.is_valid:
                raise FileLairError(
                    ErrorCode.VALIDATION_ERROR,
                    "Password validation failed: " + ", ".join(check.errors),
                )
            password_hash = hash_password(password)

        now = self.store.now()
        uploaded_on = datetime.fromtimestamp(now, timezone.utc)
        for _ in range(SHARE_ID_ATTEMPTS):  # retry on share ID collisions
            share_id = generate_share_id()
            storage_key = build_storage_key(share_id, file_name, uploaded_on)
            upload_url = self.storage.presign_put(storage_key, content_type, UPLOAD_URL_TTL)
            record = FileRecord(
                share_id=share_id,
                original_filename=file_name,
                storage_key=storage_key,
                file_size=file_size,
                mime_type=content_type,
                password_hash=password_hash,
                uploaded_at=now,
                expires_at=now + FILE_EXPIRATION_SECONDS,
                download_count=0,
                scan_status=ScanStatus.PENDING.value,
            )
            if self.store.save_file_record(record):
                break
        else:
            raise FileLairError(ErrorCode.UPLOAD_FAILED, "Failed to create upload URL")

        logger.info(
            "Upload registered",
            extra={
                "share": mask_identifier(share_id),
                "size": file_size,
                "protected": password_hash is not None,
            },
        )
        return {
            "shareId": share_id,
            "shareUrl": f"{SHARE_BASE_URL}/download/{share_id}",
            "uploadUrl": upload_url,
            "expiresAt": to_iso(record.expires_at),
            "fileName": file_name,
            "fileSize": file_size,
        }

    @shielded(ErrorCode.STORAGE_ERROR, "Failed to retrieve file information")
    def get_file_info(self, share_id: str, client_address: str) -> dict:
        self._require_share_id(share_id)
        self._throttle("fileinfo", client_address, FILE_INFO_THROTTLE)
        record = self._load_live_record(share_id)
        return {
            "fileName": record.original_filename,
            "fileSize": record.file_size,
            "uploadedAt": to_iso(record.uploaded_at),
            "expiresAt": to_iso(record.expires_at),
            "isPasswordProtected": record.is_password_protected,
        }

    @shielded(ErrorCode.STORAGE_ERROR, "Failed to prepare download")
    def request_download(
        self, share_id: str, password: str | None, client_address: str
    ) -> dict:
        self._require_share_id(share_id)
        self._throttle("download", client_address, DOWNLOAD_THROTTLE)
        record = self._load_live_record(share_id)
        self._check_scan_gate(record)
        self._check_password(record, password, client_address)

        token = self.store.create_download_token(share_id, client_address)
        return {
            "downloadToken": token,
            "fileName": record.original_filename,
            "fileSize": record.file_size,
            "mimeType": record.mime_type,
        }

    @shielded(ErrorCode.STORAGE_ERROR, "Failed to generate download link")
    def redeem_download_token(self, share_id: str, token: str, client_address: str) -> dict:
        self._require_share_id(share_id)
        if not is_valid_download_token(token):
            raise FileLairError(ErrorCode.VALIDATION_ERROR, "Invalid download token")
        self._throttle("redeem", client_address, REDEEM_THROTTLE)

        if self.store.validate_and_consume_token(token, share_id, client_address) is None:
            raise FileLairError(
                ErrorCode.VALIDATION_ERROR,
                "Download token has already been used or has expired",
            )

        # the record may have expired, been deleted or been flagged since step one
        record = self._load_live_record(share_id)
        self._check_scan_gate(record)

        if not self.storage.object_exists(record.storage_key):
            logger.warning(
                "Record points at a missing object; removing it",
                extra={"share": mask_identifier(share_id)},
            )
            self.store.delete_file_record(share_id)
            raise not_found()

        download_url = self.storage.presign_get(
            record.storage_key, record.original_filename, DOWNLOAD_URL_TTL
        )
        self.store.increment_download_count(share_id)
        return {
            "downloadUrl": download_url,
            "fileName": record.original_filename,
            "fileSize": record.file_size,
            "mimeType": record.mime_type,
        }

    @shielded(ErrorCode.STORAGE_ERROR, "Failed to delete file")
    def delete_file(self, share_id: str, password: str | None, client_address: str) -> dict:
        self._require_share_id(share_id)
        record = self._load_live_record(share_id)
        self._check_password(record, password, client_address)
        protected = record.is_password_protected

        # object first, then metadata; a crash in between leaves a record that
        # the redemption path detects and removes
        self.storage.delete(record.storage_key)
        if not self.store.delete_file_record(share_id):
            raise not_found()

        logger.info(
            "File deleted",
            extra={
                "share": mask_identifier(share_id),
                "client": mask_identifier(client_address),
                "protected": protected,
            },
        )
        return {"success": True, "message": "File deleted successfully"}
