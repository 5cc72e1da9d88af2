import gzip
import hashlib
import os

import pytest

from blobcache.storage import CorruptArtifact, InvalidKey, NotFound, derive_key

HELLO_SHA256 = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


@pytest.mark.parametrize(
    "payload",
    [b"", b"hello", bytes(range(256)) * 40, os.urandom(200_000)],
    ids=["empty", "short", "repetitive", "random"],
)
def test_round_trip(store, payload):
    store.put("entry", [payload])
    assert store.read("entry") == payload


def test_put_streams_chunks(store):
    chunks = [b"alpha-", b"", b"beta-", b"gamma"]
    store.put("streamed", iter(chunks))
    assert store.read("streamed") == b"alpha-beta-gamma"


def test_put_returns_compressed_size(store):
    payload = b"a" * 100_000
    size = store.put("zeros", [payload])
    assert size == store.blob_path("zeros").stat().st_size
    assert size < len(payload)
    assert gzip.decompress(store.blob_path("zeros").read_bytes()) == payload


def test_get_yields_chunks(store):
    payload = os.urandom(5000)
    store.put("big", [payload])
    chunks = list(store.get("big"))
    assert len(chunks) > 1
    assert b"".join(chunks) == payload


def test_overwrite_replaces_blob(store):
    store.put("key", [b"first"])
    store.put("key", [b"second"])
    assert store.read("key") == b"second"


def test_derived_key_is_sha256(store):
    key, size = store.put_with_derived_key(b"hello")
    assert key == HELLO_SHA256
    assert key == hashlib.sha256(b"hello").hexdigest()
    assert size > 0
    assert store.read(key) == b"hello"
    again, _ = store.put_with_derived_key(b"hello")
    assert again == key
    assert derive_key(b"hello!") != key


def test_get_missing(store):
    with pytest.raises(NotFound):
        store.get("missing")


def test_get_corrupt(store):
    store.blob_path("broken").write_bytes(b"this is not gzip data")
    with pytest.raises(CorruptArtifact):
        store.get("broken")


def test_exists_does_not_decompress(store):
    assert not store.exists("thing")
    store.blob_path("thing").write_bytes(b"garbage")
    assert store.exists("thing")


def test_delete(store):
    store.put("gone", [b"x"])
    store.delete("gone")
    assert not store.exists("gone")
    with pytest.raises(NotFound):
        store.delete("gone")


def test_list_returns_logical_keys(store, ledger, cache_dir):
    store.put("b", [b"1"])
    store.put("a", [b"2"])
    store.put("archive.gz", [b"3"])
    ledger.save("a", 1)
    (cache_dir / ".a.123.part").write_bytes(b"partial")
    assert store.list() == ["a", "archive.gz", "b"]


def test_list_empty(store):
    assert store.list() == []


def test_failed_put_keeps_previous_blob(store, cache_dir):
    store.put("key", [b"original"])

    def broken_upload():
        yield b"partial"
        raise RuntimeError("client went away")

    with pytest.raises(RuntimeError):
        store.put("key", broken_upload())

    assert store.read("key") == b"original"
    assert store.staging_files() == []


@pytest.mark.parametrize("key", ["", ".", "..", ".hidden", "a/b", "a\\b", "nul\x00", "k" * 201])
def test_invalid_keys(store, key):
    with pytest.raises(InvalidKey):
        store.put(key, [b"x"])


def test_corruption_after_first_chunk_is_raised(store):
    payload = os.urandom(200_000)
    store.put("big", [payload])
    path = store.blob_path("big")
    damaged = bytearray(path.read_bytes())
    for i in range(len(damaged) - 2048, len(damaged)):
        damaged[i] ^= 0xFF
    path.write_bytes(bytes(damaged))

    # The first chunk is intact, so the error surfaces while streaming
    chunks = store.get("big")
    with pytest.raises(CorruptArtifact):
        b"".join(chunks)


def test_key_length_counts_utf8_bytes(store):
    store.put("é" * 100, [b"fits"])
    assert store.read("é" * 100) == b"fits"
    with pytest.raises(InvalidKey):
        store.put("é" * 101, [b"too long"])
