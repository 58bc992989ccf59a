import pytest
from conftest import StubS3

from va_gateway.errors import ConflictError, StoreError
from va_gateway.store import ObjectStore, dump_json
from va_gateway.utils.idempotency import receipt_key, was_processed


class RacingS3(StubS3):
    """Lets another writer slip in before the next `races` conditional puts."""

    def __init__(self, races):
        super().__init__()
        self.races = races

    def put_object(self, Bucket, Key, Body, ContentType=None, IfMatch=None, IfNoneMatch=None):
        if self.races and (IfMatch or IfNoneMatch):
            self.races -= 1
            counter = self.doc(Key)["n"] if Key in self.objects else 0
            super().put_object(Bucket, Key, dump_json({"n": counter + 100}))
        return super().put_object(Bucket, Key, Body, ContentType, IfMatch, IfNoneMatch)


def _increment(current):
    return {"n": (current or {}).get("n", 0) + 1}


def test_get_missing_returns_none():
    store = ObjectStore("bucket", StubS3())
    assert store.get("nope.json") is None
    assert store.get_json("nope.json") is None
    assert store.exists("nope.json") is False


def test_unparseable_object_reads_as_absent():
    s3 = StubS3()
    s3.put_object("bucket", "broken.json", b"{not json")
    store = ObjectStore("bucket", s3)
    assert store.get_json("broken.json") is None
    assert store.update_json("broken.json", _increment) == {"n": 1}


def test_update_json_retries_after_lost_race():
    s3 = RacingS3(races=1)
    store = ObjectStore("bucket", s3)
    assert store.update_json("counter.json", _increment) == {"n": 101}
    assert s3.doc("counter.json") == {"n": 101}


def test_update_json_gives_up_after_attempts():
    store = ObjectStore("bucket", RacingS3(races=5))
    with pytest.raises(ConflictError):
        store.update_json("counter.json", _increment, attempts=3)


def test_update_json_mutate_can_decline():
    s3 = StubS3()
    store = ObjectStore("bucket", s3)
    assert store.update_json("absent.json", lambda current: None) is None
    assert s3.puts == []


def test_unexpected_s3_error_raises_store_error():
    s3 = StubS3()
    s3.fail_prefixes.add("accounts/")
    with pytest.raises(StoreError):
        ObjectStore("bucket", s3).put_json("accounts/a.json", {})


def test_receipt_written_once():
    s3 = StubS3()
    store = ObjectStore("bucket", s3)
    assert was_processed(store, "stripe", "evt_1", b"{}") is False
    assert was_processed(store, "stripe", "evt_1", b"{}") is True
    assert s3.puts == [receipt_key("stripe", "evt_1")]


def test_receipt_race_loser_counts_as_processed(monkeypatch):
    s3 = StubS3()
    store = ObjectStore("bucket", s3)
    # The other delivery writes between our existence check and our put
    monkeypatch.setattr(store, "exists", lambda key: False)
    s3.put_object("bucket", receipt_key("stripe", "evt_1"), b"{}")
    assert was_processed(store, "stripe", "evt_1", b"{}") is True
