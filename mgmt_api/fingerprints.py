"""Persistent store of pinned server certificate fingerprints.

The backing file is a JSON object mapping ``"host:port"`` to the server's
SHA-256 fingerprint in hex::

    {"192.0.2.10:443": "3A5F...C1"}

The file is shared by every client that points at it, so all access goes
through one reader/writer lock per store.
"""
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from .exceptions import ConfigurationError, StoreIOError
from .helpers import fingerprints_equal

log = logging.getLogger(__name__)


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Waiting writers block new readers so a steady stream of lookups cannot
    starve an update.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def store_key(host: str, port: int) -> str:
    return f"{host}:{port}"


class FingerprintStore:
    """JSON file mapping ``(host, port)`` to a certificate fingerprint.

    Every method blocks on file I/O and on the store lock. Async callers
    should run them in an executor, as :class:`~mgmt_api.transport.Transport`
    does.

    Example:
        store = FingerprintStore("fingerprints.txt")
        store.put("192.0.2.10", 443, "3A5F...C1")
        store.get("192.0.2.10", 443)    # '3A5F...C1'
        store.delete("192.0.2.10", 443)
    """

    def __init__(self, path: Union[str, Path]):
        """Open the store, creating the file with ``{}`` if it is missing.

        Args:
            path: Location of the fingerprint file

        Raises:
            ConfigurationError: If the path is empty
            StoreIOError: If the file cannot be created
        """
        if not path:
            raise ConfigurationError("Error: fingerprint file name is invalid")
        self.path = Path(path)
        self._lock = ReadWriteLock()
        with self._lock.write():
            if not self.path.exists():
                log.info(f"Creating fingerprint file {self.path}")
                self._write({})

    def get(self, host: str, port: int) -> Optional[str]:
        """Return the stored fingerprint for ``host:port`` or ``None``."""
        with self._lock.read():
            fingerprint = self._read().get(store_key(host, port))
        return None if fingerprint is None else str(fingerprint)

    def put(self, host: str, port: int, fingerprint: str) -> None:
        """Store ``fingerprint`` for ``host:port``, replacing any previous value.

        Nothing is written when the stored value already matches
        (case-insensitively).

        Raises:
            ConfigurationError: If host or fingerprint is empty
            StoreIOError: On malformed file content or write failure
        """
        if not host or not fingerprint:
            raise ConfigurationError("Error: the server IP address or the fingerprint is invalid")
        key = store_key(host, port)
        with self._lock.write():
            entries = self._read()
            if fingerprints_equal(entries.get(key), fingerprint):
                return
            entries[key] = fingerprint
            self._write(entries)
        log.info(f"Saved fingerprint for {key}")

    def delete(self, host: str, port: int) -> None:
        """Forget the fingerprint for ``host:port``; missing keys are ignored."""
        key = store_key(host, port)
        with self._lock.write():
            entries = self._read()
            if key not in entries:
                return
            del entries[key]
            self._write(entries)
        log.info(f"Deleted fingerprint for {key}")

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                entries = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreIOError(f"Failed to read the fingerprint file {self.path}: {e}") from e
        if not isinstance(entries, dict):
            raise StoreIOError(f"Fingerprint file {self.path} does not contain a JSON object")
        return entries

    def _write(self, entries: Dict[str, str]) -> None:
        # Readers see either the old file or the new one, never a partial write.
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".fingerprints-", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entries, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreIOError(f"Failed to write the fingerprint file {self.path}: {e}") from e
