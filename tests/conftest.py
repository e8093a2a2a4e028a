# pytest configuration for mgmt_api tests
import sys
from pathlib import Path

import pytest

# Ensure the package root is in sys.path for proper imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from mgmt_api.fingerprints import FingerprintStore  # noqa: E402

SERVER = "mgmt.example.com"
PORT = 443
PINNED = "AB" * 32


@pytest.fixture
def fingerprint_file(tmp_path):
    return tmp_path / "fingerprints.txt"


@pytest.fixture
def pinned_store(fingerprint_file):
    """Fingerprint store that already trusts SERVER:PORT."""
    store = FingerprintStore(fingerprint_file)
    store.put(SERVER, PORT, PINNED)
    return store


class RecordingSink:
    """Debug sink keeping every record in memory."""

    def __init__(self):
        self.records = []

    def record(self, entry):
        self.records.append(entry)


@pytest.fixture
def sink():
    return RecordingSink()
