import json
from datetime import datetime, timedelta, timezone

import pytest

from blobcache.storage import MetadataWriteError, NotFound


def test_save_and_load(ledger):
    before = datetime.now(timezone.utc)
    saved = ledger.save("entry", 42)
    loaded = ledger.load("entry")
    assert loaded == saved
    assert loaded.key == "entry"
    assert loaded.size == 42
    assert loaded.created_at.tzinfo is not None
    assert before <= loaded.created_at <= datetime.now(timezone.utc)


def test_metadata_file_is_json(ledger):
    ledger.save("entry", 7)
    record = json.loads(ledger.path("entry").read_text())
    assert set(record) == {"key", "created_at", "size"}


def test_save_overwrites_created_at(ledger):
    first = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ledger.save("entry", 1, created_at=first)
    ledger.save("entry", 2, created_at=first + timedelta(hours=3))
    loaded = ledger.load("entry")
    assert loaded.created_at == first + timedelta(hours=3)
    assert loaded.size == 2


def test_load_keeps_microseconds(ledger):
    stamp = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)
    ledger.save("precise", 1, created_at=stamp)
    assert ledger.load("precise").created_at == stamp


def test_naive_timestamp_read_as_utc(ledger):
    ledger.path("legacy").write_text(
        json.dumps({"key": "legacy", "created_at": "2024-01-01T00:00:00", "size": 3})
    )
    assert ledger.load("legacy").created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_load_missing(ledger):
    with pytest.raises(NotFound):
        ledger.load("missing")


@pytest.mark.parametrize(
    "content", ["{not json", '{"key": "x"}', '{"key": "x", "created_at": "soon", "size": 1}']
)
def test_load_malformed(ledger, content):
    ledger.path("bad").write_text(content)
    with pytest.raises(NotFound):
        ledger.load("bad")


def test_discard(ledger):
    ledger.save("entry", 1)
    assert ledger.discard("entry") is True
    assert not ledger.exists("entry")
    assert ledger.discard("entry") is False


def test_save_failure(ledger, monkeypatch):
    def refuse(*args, **kwargs):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr("blobcache.storage.ledger.tempfile.mkstemp", refuse)
    with pytest.raises(MetadataWriteError):
        ledger.save("entry", 1)
    assert not ledger.exists("entry")
