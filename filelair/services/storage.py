import logging
import re
import time
from functools import lru_cache
from datetime import datetime, timezone
from urllib.parse import quote

import boto3
from botocore.exceptions import ClientError

from filelair.config import AWS_REGION, S3_BUCKET_NAME, S3_ENDPOINT_URL
from filelair.services.identifiers import is_valid_share_id

logger = logging.getLogger(__name__)

SCAN_STATUS_TAG = "GuardDutyMalwareScanStatus"
NO_THREATS_FOUND = "NO_THREATS_FOUND"
MAX_FILENAME_LENGTH = 255

_TRAVERSAL = re.compile(r"\.\./|\.\.\\|\.\.$")


def sanitize_filename(filename: str) -> str:
    sanitized = _TRAVERSAL.sub("_", filename)
    sanitized = sanitized.lstrip("/\\")
    sanitized = sanitized.replace("/", "_").replace("\\", "_")
    sanitized = sanitized.replace("\x00", "")

    if len(sanitized) > MAX_FILENAME_LENGTH:
        dot = sanitized.rfind(".")
        if dot > 0:
            stem, ext = sanitized[:dot], sanitized[dot:]
            sanitized = stem[: MAX_FILENAME_LENGTH - len(ext)] + ext
        else:
            sanitized = sanitized[:MAX_FILENAME_LENGTH]

    if not sanitized.strip():
        sanitized = f"file_{int(time.time() * 1000)}"
    return sanitized


def build_storage_key(share_id: str, filename: str, when: datetime | None = None) -> str:
    """Storage layout: ``yyyy/mm/dd/{share_id}/{filename}``."""
    when = when or datetime.now(timezone.utc)
    return f"{when:%Y/%m/%d}/{share_id}/{sanitize_filename(filename)}"


def date_prefix(when: datetime) -> str:
    return f"{when:%Y/%m/%d}/"


def share_id_from_key(key: str) -> str | None:
    parts = key.split("/")
    if len(parts) < 5:
        return None
    share_id = parts[3]
    return share_id if is_valid_share_id(share_id) else None


def content_disposition(filename: str) -> str:
    ascii_name = "".join(c if ord(c) < 128 else "_" for c in filename).replace('"', "_")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


class ObjectStorage:
    """The S3 bucket holding uploaded objects."""

    def __init__(self, client=None, bucket: str = S3_BUCKET_NAME):
        self.client = client or boto3.client(
            "s3", region_name=AWS_REGION, endpoint_url=S3_ENDPOINT_URL
        )
        self.bucket = bucket

    def put(self, key: str, body: bytes, content_type: str) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            ServerSideEncryption="AES256",
        )

    def presign_put(self, key: str, content_type: str, ttl: int) -> str:
        return self.client.generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=ttl,
        )

    def presign_get(self, key: str, filename: str, ttl: int) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ResponseContentDisposition": content_disposition(filename),
            },
            ExpiresIn=ttl,
        )

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)

    def list_by_prefix(self, prefix: str) -> list[str]:
        keys = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    def object_exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def get_scan_status(self, key: str) -> str | None:
        """Value of the malware scanner's status tag, or None before the scan lands."""
        response = self.client.get_object_tagging(Bucket=self.bucket, Key=key)
        for tag in response.get("TagSet", []):
            if tag.get("Key") == SCAN_STATUS_TAG:
                return tag.get("Value")
        return None


@lru_cache
def get_object_storage() -> ObjectStorage:
    return ObjectStorage()
