"""Tests for the fingerprint store and its reader/writer lock."""
import json
import threading

import pytest

from mgmt_api.exceptions import ConfigurationError, StoreIOError
from mgmt_api.fingerprints import FingerprintStore, ReadWriteLock


def test_store_creates_empty_file(fingerprint_file):
    assert not fingerprint_file.exists()
    FingerprintStore(fingerprint_file)
    assert json.loads(fingerprint_file.read_text()) == {}


def test_existing_file_is_kept(fingerprint_file):
    fingerprint_file.write_text('{"10.0.0.1:443": "AA"}')
    store = FingerprintStore(fingerprint_file)
    assert store.get("10.0.0.1", 443) == "AA"


def test_put_then_get_round_trip(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    store.put("10.0.0.1", 443, "ABCDEF")
    assert store.get("10.0.0.1", 443) == "ABCDEF"
    assert json.loads(fingerprint_file.read_text()) == {"10.0.0.1:443": "ABCDEF"}


def test_get_unknown_returns_none(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    assert store.get("10.0.0.1", 443) is None


def test_port_is_part_of_the_key(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    store.put("10.0.0.1", 443, "AAAA")
    store.put("10.0.0.1", 4434, "BBBB")
    assert store.get("10.0.0.1", 443) == "AAAA"
    assert store.get("10.0.0.1", 4434) == "BBBB"


def test_put_overwrites_without_duplicates(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    store.put("10.0.0.1", 443, "AAAA")
    store.put("10.0.0.1", 443, "BBBB")
    data = json.loads(fingerprint_file.read_text())
    assert data == {"10.0.0.1:443": "BBBB"}


def test_put_same_fingerprint_any_case_does_not_write(fingerprint_file, monkeypatch):
    store = FingerprintStore(fingerprint_file)
    store.put("10.0.0.1", 443, "ABCD")

    writes = []
    monkeypatch.setattr(store, "_write", lambda entries: writes.append(entries))
    store.put("10.0.0.1", 443, "abcd")
    assert writes == []
    assert store.get("10.0.0.1", 443) == "ABCD"


def test_put_rejects_empty_values(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    with pytest.raises(ConfigurationError):
        store.put("", 443, "ABCD")
    with pytest.raises(ConfigurationError):
        store.put("10.0.0.1", 443, "")


def test_delete(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    store.put("10.0.0.1", 443, "ABCD")
    store.put("10.0.0.2", 443, "EF01")
    store.delete("10.0.0.1", 443)
    assert store.get("10.0.0.1", 443) is None
    assert store.get("10.0.0.2", 443) == "EF01"


def test_delete_missing_is_noop(fingerprint_file, monkeypatch):
    store = FingerprintStore(fingerprint_file)
    writes = []
    monkeypatch.setattr(store, "_write", lambda entries: writes.append(entries))
    store.delete("10.0.0.1", 443)
    assert writes == []


def test_repeated_get_is_stable(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    store.put("10.0.0.1", 443, "ABCD")
    assert {store.get("10.0.0.1", 443) for _ in range(5)} == {"ABCD"}


def test_malformed_file_raises_store_error(fingerprint_file):
    fingerprint_file.write_text("not json at all")
    store = FingerprintStore(fingerprint_file)
    with pytest.raises(StoreIOError):
        store.get("10.0.0.1", 443)
    with pytest.raises(StoreIOError):
        store.put("10.0.0.1", 443, "ABCD")


def test_non_object_file_raises_store_error(fingerprint_file):
    fingerprint_file.write_text("[1, 2, 3]")
    store = FingerprintStore(fingerprint_file)
    with pytest.raises(StoreIOError):
        store.get("10.0.0.1", 443)


def test_unwritable_location_raises_store_error(tmp_path):
    with pytest.raises(StoreIOError):
        FingerprintStore(tmp_path / "missing-dir" / "fingerprints.txt")


def test_empty_path_rejected():
    with pytest.raises(ConfigurationError):
        FingerprintStore("")


def test_no_temp_files_left_behind(fingerprint_file):
    store = FingerprintStore(fingerprint_file)
    store.put("10.0.0.1", 443, "ABCD")
    store.delete("10.0.0.1", 443)
    assert [p.name for p in fingerprint_file.parent.iterdir()] == [fingerprint_file.name]


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    entered = threading.Event()

    def reader():
        with lock.read():
            entered.set()

    with lock.read():
        t = threading.Thread(target=reader)
        t.start()
        assert entered.wait(1.0)
    t.join(1.0)


def test_writer_excludes_readers():
    lock = ReadWriteLock()
    entered = threading.Event()

    def writer():
        with lock.write():
            entered.set()

    with lock.read():
        t = threading.Thread(target=writer)
        t.start()
        assert not entered.wait(0.1)
    assert entered.wait(1.0)
    t.join(1.0)


def test_reader_waits_for_writer():
    lock = ReadWriteLock()
    entered = threading.Event()

    def reader():
        with lock.read():
            entered.set()

    with lock.write():
        t = threading.Thread(target=reader)
        t.start()
        assert not entered.wait(0.1)
    assert entered.wait(1.0)
    t.join(1.0)


def test_concurrent_puts_keep_every_key(fingerprint_file):
    store = FingerprintStore(fingerprint_file)

    def put(i):
        store.put(f"10.0.0.{i}", 443, f"{i:064X}")

    threads = [threading.Thread(target=put, args=(i,)) for i in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5.0)

    data = json.loads(fingerprint_file.read_text())
    assert len(data) == 10
    assert store.get("10.0.0.7", 443) == f"{7:064X}"
