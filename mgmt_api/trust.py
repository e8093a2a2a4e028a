"""Server trust based on pinned certificate fingerprints.

Certificate-authority validation is replaced by a lookup in a
:class:`~mgmt_api.fingerprints.FingerprintStore`: a server is trusted when
the SHA-256 fingerprint of its leaf certificate equals the fingerprint stored
for its ``host:port``.

The trust decision is made per call. :meth:`TrustVerifier.ssl_for` returns the
object handed to aiohttp as the request's ``ssl=`` argument, so two clients
with different policies never share TLS state.

First contact is handled by :func:`verify_server_fingerprint`, which reads the
server's current certificate over an unverified connection and asks the
caller before writing anything to the store.
"""
import logging
from typing import Optional

import aiohttp

from .config import ProxySettings
from .exceptions import ApiConnectionError, CertificateError
from .fingerprints import FingerprintStore
from .helpers import compute_fingerprint, fingerprints_equal, format_fingerprint
from .types import ConfirmCallback

log = logging.getLogger(__name__)

NO_CERTIFICATE = b""
UNPINNED_DIGEST_SIZE = 32


class PinnedFingerprint(aiohttp.Fingerprint):
    """aiohttp certificate check bound to one ``host:port``.

    aiohttp calls :meth:`check` right after the TLS handshake and before the
    request is written, so an untrusted server never receives the body (and
    with it the login password). A server without a certificate is always
    rejected; with ``fingerprint=None`` (checking disabled) any certificate
    is accepted, otherwise the SHA-256 of the leaf certificate must equal
    the pinned value.

    Rejections are raised as :class:`aiohttp.ServerFingerprintMismatch`,
    which aiohttp handles by closing the transport; ``got`` is empty when no
    certificate was presented.
    """

    def __init__(self, fingerprint: Optional[str], host: str, port: int):
        self.pinned = fingerprint is not None
        try:
            # aiohttp insists on a SHA-256 sized digest even when nothing is compared
            digest = bytes.fromhex(fingerprint) if self.pinned else bytes(UNPINNED_DIGEST_SIZE)
            super().__init__(digest)
        except ValueError as e:
            raise CertificateError(
                f"Stored fingerprint for host '{host}' with port {port} is not a SHA-256 hex digest"
            ) from e
        self.host = host
        self.port = port

    def check(self, transport) -> None:
        if not transport.get_extra_info("sslcontext"):
            return
        sslobj = transport.get_extra_info("ssl_object")
        der = sslobj.getpeercert(binary_form=True) if sslobj is not None else None
        if not der:
            raise aiohttp.ServerFingerprintMismatch(self.fingerprint, NO_CERTIFICATE, self.host, self.port)
        if not self.pinned:
            return
        try:
            got = bytes.fromhex(compute_fingerprint(der))
        except ValueError:
            got = NO_CERTIFICATE
        if got != self.fingerprint:
            raise aiohttp.ServerFingerprintMismatch(self.fingerprint, got, self.host, self.port)


class TrustVerifier:
    """Decides whether a server is trusted, consulting the fingerprint store.

    The decision itself runs in :class:`PinnedFingerprint` during the TLS
    handshake. The verifier only reads the store; see
    :func:`verify_server_fingerprint` for how fingerprints get there.
    """

    def __init__(self, store: FingerprintStore, check_fingerprint: bool = True):
        self.store = store
        self.check_fingerprint = check_fingerprint

    def expected_fingerprint(self, host: str, port: int) -> str:
        fingerprint = self.store.get(host, port)
        if fingerprint is None:
            raise CertificateError(
                f"Host: '{host}' with port: {port} does not exist in the fingerprint file (unknown host)"
            )
        return fingerprint

    def ssl_for(self, host: str, port: int) -> PinnedFingerprint:
        """Return the per-call trust context for a connection to ``host:port``.

        Returns:
            A :class:`PinnedFingerprint` holding the stored fingerprint, or an
            unpinned one when fingerprint checking is disabled

        Raises:
            CertificateError: If the host is not in the fingerprint file
        """
        if not self.check_fingerprint:
            return PinnedFingerprint(None, host, port)
        return PinnedFingerprint(self.expected_fingerprint(host, port), host, port)

    @staticmethod
    def describe_mismatch(exc: aiohttp.ServerFingerprintMismatch) -> CertificateError:
        """Translate aiohttp's rejection into a :class:`CertificateError`."""
        if exc.got == NO_CERTIFICATE:
            return CertificateError(f"Server '{exc.host}' with port {exc.port} presented no certificate")
        return CertificateError(
            f"The fingerprint (of Host: '{exc.host}' with port: {exc.port}) that appears in the fingerprint "
            f"file is different than the fingerprint in the certificate (fingerprint changed)"
        )


async def fetch_server_fingerprint(host: str, port: int, proxy: Optional[ProxySettings] = None,
                                   timeout: Optional[aiohttp.ClientTimeout] = None) -> str:
    """Read the server's current fingerprint without trusting or distrusting it.

    The connection does no certificate validation at all; it exists only to
    read the leaf certificate and is closed straight away.

    Raises:
        ApiConnectionError: If the server cannot be reached or shows no certificate
    """
    if not host:
        raise ApiConnectionError(f"ERROR: illegal server IP address: {host}")
    url = f"https://{host}:{port}/web_api/"
    connector = aiohttp.TCPConnector(ssl=False, force_close=True)
    try:
        async with aiohttp.ClientSession(connector=connector, timeout=timeout) as http:
            async with http.post(
                url,
                json={},
                proxy=proxy.url if proxy else None,
                proxy_auth=proxy.auth if proxy else None,
            ) as resp:
                der = _peer_certificate(resp)
    except aiohttp.ClientError as e:
        log.error(f"Failed connecting to {host}:{port} to read its certificate: {e}")
        raise ApiConnectionError(f"ERROR: failed connecting to the server: {host}: {e}") from e
    if not der:
        raise ApiConnectionError(f"ERROR: failed get the fingerprint from the server: {host}")
    return compute_fingerprint(der)


def _peer_certificate(resp: aiohttp.ClientResponse) -> Optional[bytes]:
    connection = resp.connection
    transport = connection.transport if connection is not None else None
    if transport is None:
        return None
    sslobj = transport.get_extra_info("ssl_object")
    if sslobj is None:
        return None
    return sslobj.getpeercert(binary_form=True)


async def check_fingerprint_validity(store: FingerprintStore, host: str, port: int,
                                     proxy: Optional[ProxySettings] = None) -> bool:
    """Return True if the stored fingerprint equals the server's current one."""
    stored = store.get(host, port)
    if stored is None:
        return False
    return fingerprints_equal(stored, await fetch_server_fingerprint(host, port, proxy))


def console_confirm(message: str) -> bool:
    """Print ``message`` and ask a yes/no question on the terminal."""
    print(message)
    answer = input("Do you accept the fingerprint? [Y/N] ")
    return answer.strip().lower() == "y"


async def verify_server_fingerprint(store: FingerprintStore, host: str, port: int,
                                    confirm: ConfirmCallback = console_confirm,
                                    proxy: Optional[ProxySettings] = None) -> bool:
    """Trust-on-first-use: make sure the store holds an approved fingerprint.

    Compares the server's current fingerprint with the stored one. A first
    or changed fingerprint is shown to ``confirm``; on approval it is saved.

    Returns:
        True if a fingerprint was written, False if the stored one already matched

    Raises:
        CertificateError: If the caller refused the fingerprint
        ApiConnectionError: If the server's certificate could not be read
    """
    fingerprint = await fetch_server_fingerprint(host, port, proxy)
    stored = store.get(host, port)
    if fingerprints_equal(stored, fingerprint):
        log.debug(f"Fingerprint of {host}:{port} matches the fingerprint file")
        return False

    if stored is None:
        question = (
            f"First connection to the server {host}\n\nTo verify server identity, compare the following "
            f"fingerprint with the one displayed by the api management tool <api fingerprint>.\n\n"
            f"SHA256 Fingerprint = {format_fingerprint(fingerprint)}\n"
        )
        refusal = "First connection to the server and the fingerprint wasn't approved"
    else:
        question = (
            f"Fingerprint of server {host} was changed.\n\nTo protect server against impersonation, compare "
            f"the following fingerprint with the one displayed by the api management tool <api fingerprint>.\n\n"
            f"SHA256 Fingerprint = {format_fingerprint(fingerprint)}\n"
        )
        refusal = "Fingerprint of server was changed and the new fingerprint wasn't approved"

    if not confirm(question):
        log.warning(refusal)
        raise CertificateError(refusal)
    store.put(host, port, fingerprint)
    return True
