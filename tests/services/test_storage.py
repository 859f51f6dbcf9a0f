from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from filelair.services.identifiers import generate_share_id
from filelair.services.storage import (
    ObjectStorage,
    build_storage_key,
    content_disposition,
    sanitize_filename,
    share_id_from_key,
)

BUCKET = "filelair-test"


@pytest.fixture()
def s3():
    return boto3.client("s3", region_name="ap-northeast-1")


@pytest.fixture()
def stubbed(s3):
    with Stubber(s3) as stubber:
        yield ObjectStorage(client=s3, bucket=BUCKET), stubber
        stubber.assert_no_pending_responses()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("report.pdf", "report.pdf"),
        ("../../etc/passwd", "__etc_passwd"),
        ("/abs/path.txt", "abs_path.txt"),
        ("dir\\file.txt", "dir_file.txt"),
        ("nul\x00byte.txt", "nulbyte.txt"),
    ],
)
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_sanitize_filename_keeps_extension_when_truncating():
    sanitized = sanitize_filename("a" * 300 + ".pdf")

    assert len(sanitized) == 255
    assert sanitized.endswith(".pdf")


def test_blank_filename_gets_generated_name():
    assert sanitize_filename("   ").startswith("file_")


def test_storage_key_layout_round_trips_share_id():
    share_id = generate_share_id()
    when = datetime(2025, 3, 7, 12, 0, tzinfo=timezone.utc)

    key = build_storage_key(share_id, "../evil.txt", when)

    assert key == f"2025/03/07/{share_id}/_evil.txt"
    assert share_id_from_key(key) == share_id


@pytest.mark.parametrize(
    "key", ["loose-object.txt", "2025/03/07/not-a-share-id/file.txt", "2025/03/07/file.txt"]
)
def test_share_id_from_unrecognised_key(key):
    assert share_id_from_key(key) is None


def test_content_disposition_encodes_non_ascii():
    header = content_disposition('résumé "final".pdf')

    assert header.startswith('attachment; filename="r_sum_ _final_.pdf"')
    assert "filename*=UTF-8''r%C3%A9sum%C3%A9%20%22final%22.pdf" in header


def test_presigned_download_url_forces_attachment(s3):
    storage = ObjectStorage(client=s3, bucket=BUCKET)

    url = storage.presign_get("2025/03/07/abc/report.pdf", "report.pdf", 300)

    query = parse_qs(urlparse(url).query)
    assert BUCKET in url
    assert query["response-content-disposition"][0].startswith("attachment;")


def test_object_exists(stubbed):
    storage, stubber = stubbed
    stubber.add_response("head_object", {}, {"Bucket": BUCKET, "Key": "present"})
    stubber.add_client_error(
        "head_object", service_error_code="404", http_status_code=404,
        expected_params={"Bucket": BUCKET, "Key": "absent"},
    )

    assert storage.object_exists("present") is True
    assert storage.object_exists("absent") is False


def test_object_exists_propagates_other_errors(stubbed):
    storage, stubber = stubbed
    stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(ClientError):
        storage.object_exists("forbidden")


def test_get_scan_status(stubbed):
    storage, stubber = stubbed
    stubber.add_response(
        "get_object_tagging",
        {"TagSet": [
            {"Key": "project", "Value": "filelair"},
            {"Key": "GuardDutyMalwareScanStatus", "Value": "THREATS_FOUND"},
        ]},
        {"Bucket": BUCKET, "Key": "scanned"},
    )
    stubber.add_response("get_object_tagging", {"TagSet": []}, {"Bucket": BUCKET, "Key": "fresh"})

    assert storage.get_scan_status("scanned") == "THREATS_FOUND"
    assert storage.get_scan_status("fresh") is None


def test_list_by_prefix_follows_pages(stubbed):
    storage, stubber = stubbed
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "2025/03/07/a/x.txt"}], "IsTruncated": True, "NextContinuationToken": "t"},
    )
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "2025/03/07/b/y.txt"}], "IsTruncated": False},
    )

    assert storage.list_by_prefix("2025/03/07/") == ["2025/03/07/a/x.txt", "2025/03/07/b/y.txt"]


def test_delete(stubbed):
    storage, stubber = stubbed
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "gone"})

    storage.delete("gone")
