"""Helper functions for the mgmt_api package.

This module contains utility functions used across the mgmt_api package,
including certificate fingerprinting, fingerprint display and payload
handling.
"""
import json
from typing import Any, Mapping, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from .exceptions import ConfigurationError

PASSWORD_MASK = "****"


def compute_fingerprint(der: bytes) -> str:
    """Compute the SHA-256 fingerprint of a DER encoded certificate.

    Args:
        der: Certificate in DER (binary) form

    Returns:
        Uppercase hex digest without separators

    Example:
        >>> compute_fingerprint(cert_der)
        '3A5F...C1'
    """
    cert = x509.load_der_x509_certificate(der)
    return cert.fingerprint(hashes.SHA256()).hex().upper()


def format_fingerprint(fingerprint: str) -> str:
    """Return a fingerprint with ':' between every two characters.

    Example:
        >>> format_fingerprint("ab01ff")
        'AB:01:FF'
    """
    fingerprint = fingerprint.upper()
    return ":".join(fingerprint[i:i + 2] for i in range(0, len(fingerprint), 2))


def fingerprints_equal(first: Optional[str], second: Optional[str]) -> bool:
    """Case-insensitive fingerprint comparison; ``None`` never matches."""
    if first is None or second is None:
        return False
    return first.lower() == second.lower()


def normalize_payload(payload: Union[Mapping[str, Any], str, None]) -> dict:
    """Turn a caller payload (dict or JSON text) into a fresh dict.

    Raises:
        ConfigurationError: If the payload is missing or not a JSON object
    """
    if payload is None:
        raise ConfigurationError("Error: payload is invalid")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise ConfigurationError(f"Error: payload is not valid JSON: {e}") from e
    if not isinstance(payload, Mapping):
        raise ConfigurationError("Error: payload must be a JSON object")
    return dict(payload)


def redact_password(payload: Mapping[str, Any]) -> dict:
    """Return a copy of a login payload with the password masked."""
    redacted = dict(payload)
    if "password" in redacted:
        redacted["password"] = PASSWORD_MASK
    return redacted
