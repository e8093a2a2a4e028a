"""Tests for fingerprint-based server trust and trust-on-first-use."""
import datetime
import hashlib

import aiohttp
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from mgmt_api import trust
from mgmt_api.exceptions import CertificateError
from mgmt_api.fingerprints import FingerprintStore
from mgmt_api.helpers import compute_fingerprint, format_fingerprint
from mgmt_api.trust import PinnedFingerprint, TrustVerifier, verify_server_fingerprint


def make_certificate_der(common_name: str = "mgmt.example.com") -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.datetime(2024, 1, 1))
        .not_valid_after(datetime.datetime(2034, 1, 1))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


class FakeSSLObject:
    def __init__(self, der):
        self.der = der

    def getpeercert(self, binary_form=False):
        return self.der


class FakeTransport:
    def __init__(self, der):
        self.extra = {"sslcontext": object(), "ssl_object": FakeSSLObject(der)}

    def get_extra_info(self, name, default=None):
        return self.extra.get(name, default)


@pytest.fixture
def der():
    return make_certificate_der()


@pytest.fixture
def store(fingerprint_file):
    return FingerprintStore(fingerprint_file)


def test_compute_fingerprint_is_uppercase_sha256_of_der(der):
    assert compute_fingerprint(der) == hashlib.sha256(der).hexdigest().upper()


def test_format_fingerprint():
    assert format_fingerprint("ab01ff") == "AB:01:FF"


def check(store, der, check_fingerprint=True, host="10.0.0.1", port=443):
    """Run the per-call trust context against a server presenting ``der``."""
    TrustVerifier(store, check_fingerprint).ssl_for(host, port).check(FakeTransport(der))


def test_accepts_matching_fingerprint(store, der):
    store.put("10.0.0.1", 443, compute_fingerprint(der))
    check(store, der)


def test_compares_case_insensitively(store, der):
    store.put("10.0.0.1", 443, compute_fingerprint(der).lower())
    check(store, der)


def test_rejects_unknown_host(store, der):
    with pytest.raises(CertificateError, match="unknown host"):
        check(store, der)


def test_rejects_changed_fingerprint(store, der):
    store.put("10.0.0.1", 443, "AB" * 32)
    with pytest.raises(aiohttp.ServerFingerprintMismatch) as excinfo:
        check(store, der)
    assert "fingerprint changed" in str(TrustVerifier.describe_mismatch(excinfo.value))


def test_rejects_missing_certificate(store):
    store.put("10.0.0.1", 443, "AB" * 32)
    with pytest.raises(aiohttp.ServerFingerprintMismatch) as excinfo:
        check(store, None)
    assert excinfo.value.got == b""
    assert "no certificate" in str(TrustVerifier.describe_mismatch(excinfo.value))


def test_disabled_checking_still_rejects_missing_certificate(store):
    with pytest.raises(aiohttp.ServerFingerprintMismatch) as excinfo:
        check(store, None, check_fingerprint=False)
    assert excinfo.value.got == b""


def test_disabled_checking_accepts_any_certificate(store, der):
    store.put("10.0.0.1", 443, "AB" * 32)
    check(store, der, check_fingerprint=False)
    check(store, der, check_fingerprint=False, host="10.9.9.9")


def test_ssl_for_disabled_is_unpinned(store):
    context = TrustVerifier(store, check_fingerprint=False).ssl_for("10.0.0.1", 443)
    assert isinstance(context, PinnedFingerprint)
    assert context.pinned is False


def test_ssl_for_unknown_host_raises(store):
    with pytest.raises(CertificateError, match="unknown host"):
        TrustVerifier(store).ssl_for("10.0.0.1", 443)


def test_ssl_for_returns_pinned_fingerprint(store, der):
    store.put("10.0.0.1", 443, compute_fingerprint(der))
    pinned = TrustVerifier(store).ssl_for("10.0.0.1", 443)
    assert isinstance(pinned, PinnedFingerprint)
    assert isinstance(pinned, aiohttp.Fingerprint)
    assert pinned.fingerprint == hashlib.sha256(der).digest()
    assert (pinned.host, pinned.port) == ("10.0.0.1", 443)


def test_ssl_for_rejects_garbage_fingerprint(store):
    store.put("10.0.0.1", 443, "not-a-fingerprint")
    with pytest.raises(CertificateError):
        TrustVerifier(store).ssl_for("10.0.0.1", 443)


def test_pinned_check_accepts_match(der):
    PinnedFingerprint(compute_fingerprint(der).lower(), "10.0.0.1", 443).check(FakeTransport(der))


def test_pinned_check_skips_plain_transport(der):
    transport = FakeTransport(der)
    transport.extra["sslcontext"] = None
    PinnedFingerprint("AB" * 32, "10.0.0.1", 443).check(transport)


def test_verifier_never_writes_store(store, der, monkeypatch):
    store.put("10.0.0.1", 443, compute_fingerprint(der))
    monkeypatch.setattr(store, "put", lambda *a: pytest.fail("verifier wrote to the store"))
    monkeypatch.setattr(store, "delete", lambda *a: pytest.fail("verifier wrote to the store"))
    verifier = TrustVerifier(store)
    verifier.ssl_for("10.0.0.1", 443).check(FakeTransport(der))


@pytest.fixture
def server_fingerprint(monkeypatch):
    """Pretend the server currently presents this fingerprint."""
    fingerprint = "CD" * 32

    async def fake_fetch(host, port, proxy=None, timeout=None):
        return fingerprint

    monkeypatch.setattr(trust, "fetch_server_fingerprint", fake_fetch)
    return fingerprint


@pytest.mark.asyncio
async def test_first_contact_approved_is_saved(store, server_fingerprint):
    questions = []

    def confirm(message):
        questions.append(message)
        return True

    saved = await verify_server_fingerprint(store, "10.0.0.1", 443, confirm=confirm)
    assert saved is True
    assert store.get("10.0.0.1", 443) == server_fingerprint
    assert "First connection to the server 10.0.0.1" in questions[0]
    assert format_fingerprint(server_fingerprint) in questions[0]


@pytest.mark.asyncio
async def test_first_contact_refused_raises(store, server_fingerprint):
    with pytest.raises(CertificateError, match="wasn't approved"):
        await verify_server_fingerprint(store, "10.0.0.1", 443, confirm=lambda message: False)
    assert store.get("10.0.0.1", 443) is None


@pytest.mark.asyncio
async def test_known_fingerprint_needs_no_confirmation(store, server_fingerprint):
    store.put("10.0.0.1", 443, server_fingerprint.lower())
    saved = await verify_server_fingerprint(
        store, "10.0.0.1", 443, confirm=lambda message: pytest.fail("should not ask")
    )
    assert saved is False


@pytest.mark.asyncio
async def test_changed_fingerprint_asks_and_replaces(store, server_fingerprint):
    store.put("10.0.0.1", 443, "AB" * 32)
    questions = []

    def confirm(message):
        questions.append(message)
        return True

    assert await verify_server_fingerprint(store, "10.0.0.1", 443, confirm=confirm) is True
    assert "was changed" in questions[0]
    assert store.get("10.0.0.1", 443) == server_fingerprint


@pytest.mark.asyncio
async def test_changed_fingerprint_refused_keeps_old_one(store, server_fingerprint):
    store.put("10.0.0.1", 443, "AB" * 32)
    with pytest.raises(CertificateError, match="was changed"):
        await verify_server_fingerprint(store, "10.0.0.1", 443, confirm=lambda message: False)
    assert store.get("10.0.0.1", 443) == "AB" * 32


@pytest.mark.asyncio
async def test_check_fingerprint_validity(store, server_fingerprint):
    assert await trust.check_fingerprint_validity(store, "10.0.0.1", 443) is False
    store.put("10.0.0.1", 443, server_fingerprint)
    assert await trust.check_fingerprint_validity(store, "10.0.0.1", 443) is True
