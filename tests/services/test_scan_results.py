import json

import pytest
from botocore.exceptions import ClientError

from filelair.models import ScanStatus
from filelair.services.scan_results import ScanResultProcessor


@pytest.fixture()
def processor(store, storage):
    return ScanResultProcessor(store, storage)


def pending_file(make_file, store):
    share_id = make_file(scan_status=ScanStatus.PENDING)
    return share_id, store.get_file_record(share_id).storage_key


def test_clean_verdict_unlocks_download(processor, make_file, store, storage):
    share_id, key = pending_file(make_file, store)
    storage.tags[key] = "NO_THREATS_FOUND"

    assert processor.process(key) is ScanStatus.CLEAN

    record = store.get_file_record(share_id)
    assert record.scan_status == "clean"
    assert record.scan_date is not None
    assert key in storage.objects


@pytest.mark.parametrize("verdict", ["THREATS_FOUND", "UNSUPPORTED", "ACCESS_DENIED", "FAILED"])
def test_any_other_verdict_quarantines(processor, make_file, store, storage, verdict):
    share_id, key = pending_file(make_file, store)
    storage.tags[key] = verdict

    assert processor.process(key) is ScanStatus.INFECTED

    record = store.get_file_record(share_id)
    assert record.scan_status == "infected"
    assert json.loads(record.scan_result) == {"status": verdict}
    assert key not in storage.objects


def test_missing_tag_is_a_no_op(processor, make_file, store):
    share_id, key = pending_file(make_file, store)

    assert processor.process(key) is None
    assert store.get_file_record(share_id).scan_status == "pending"


def test_unrecognised_key_is_ignored(processor, storage):
    storage.tags["uploads/tmp/file.txt"] = "THREATS_FOUND"

    assert processor.process("uploads/tmp/file.txt") is None
    assert storage.deleted == []


def test_failure_marks_error_and_reraises(processor, make_file, store, storage):
    share_id, key = pending_file(make_file, store)
    storage.tags[key] = "THREATS_FOUND"
    storage.fail_deletes = True

    with pytest.raises(ClientError):
        processor.process(key)

    record = store.get_file_record(share_id)
    assert record.scan_status == "error"
    assert json.loads(record.scan_result) == {"error": "ClientError"}
