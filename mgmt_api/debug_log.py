"""Debug file holding every API exchange of a client.

The file is (re)created empty when the sink is opened and holds a JSON
array of :class:`~mgmt_api.types.ApiCallRecord` objects. Each record is
appended in place of the closing bracket, so the file is valid JSON after
every call and a long session never rewrites earlier records.
"""
import json
import logging
import os
import threading
from pathlib import Path
from typing import Union

from .exceptions import ConfigurationError, StoreIOError
from .types import ApiCallRecord

log = logging.getLogger(__name__)

EMPTY_ARRAY = b"[\n]"
CLOSING = b"\n]"


class DebugFileSink:
    def __init__(self, path: Union[str, Path]):
        if not path:
            raise ConfigurationError("Error: debug file name is invalid")
        self.path = Path(path)
        self.count = 0
        self._lock = threading.Lock()
        try:
            self.path.write_bytes(EMPTY_ARRAY)
        except OSError as e:
            log.error(f"Failed creating the debug file {self.path}: {e}")
            raise StoreIOError(f"Error: failed writing to the debug file {self.path}") from e

    def record(self, entry: ApiCallRecord) -> None:
        text = json.dumps(entry, indent=2).encode("utf-8")
        with self._lock:
            separator = b",\n" if self.count else b"\n"
            try:
                with open(self.path, "r+b") as f:
                    f.seek(-len(CLOSING), os.SEEK_END)
                    f.write(separator + text + CLOSING)
                    f.truncate()
            except OSError as e:
                log.error(f"Failed writing to the debug file {self.path}: {e}")
                raise StoreIOError(f"Error: failed writing to the debug file {self.path}") from e
            self.count += 1
