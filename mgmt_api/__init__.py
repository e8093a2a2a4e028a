"""Management API Client Package.

This package provides an asyncio client for the web API of a security
management server. It takes care of:

    - Trusting the server by pinned SHA-256 certificate fingerprints kept in
      a local JSON file, instead of certificate authorities
    - Carrying the session id across calls after login
    - Waiting for asynchronous commands (task-id + show-task polling)
    - Collecting every page of paginated show-* commands

Example Usage:
    from mgmt_api import ApiClient, ClientArgs

    args = ClientArgs(fingerprint_file="fingerprints.txt", debug_file="api_calls.json")
    async with ApiClient(args) as client:
        # First contact: ask before trusting the server's certificate
        await client.verify_server_fingerprint("192.0.2.10")

        login = await client.login("192.0.2.10", {"user": "admin", "password": "secret"})
        if not login.success:
            raise SystemExit(login.error_message)

        # All hosts, however many pages the server needs
        hosts = await client.query("show-hosts", "objects")
        print(len(hosts.payload["objects"]))

        # Returns once the publish task has finished
        publish = await client.call("publish", {})
        print("published" if publish.success else publish.payload)
"""

from ._version import __version__, __version_info__
from .exceptions import (
    ApiClientException,
    ApiConnectionError,
    CertificateError,
    ProtocolError,
    StoreIOError,
    TaskResolutionError,
    ConfigurationError
)
from .models import (
    Session,
    ApiResponse,
    ApiLoginResponse
)
from .config import ClientArgs, ProxySettings
from .fingerprints import FingerprintStore
from .trust import (
    TrustVerifier,
    check_fingerprint_validity,
    fetch_server_fingerprint,
    verify_server_fingerprint
)
from .debug_log import DebugFileSink
from .client import ApiClient

__all__ = [
    # Version
    '__version__',
    '__version_info__',

    # Main classes
    'ApiClient',
    'ClientArgs',
    'ProxySettings',
    'FingerprintStore',
    'TrustVerifier',
    'DebugFileSink',

    # Trust-on-first-use
    'fetch_server_fingerprint',
    'verify_server_fingerprint',
    'check_fingerprint_validity',

    # Exceptions
    'ApiClientException',
    'ApiConnectionError',
    'CertificateError',
    'ProtocolError',
    'StoreIOError',
    'TaskResolutionError',
    'ConfigurationError',

    # Types
    'Session',
    'ApiResponse',
    'ApiLoginResponse',
]
