"""Exception classes for the mgmt_api package.

This module defines custom exceptions used throughout the mgmt_api package
for better error handling and debugging.
"""


class ApiClientException(Exception):
    """Base exception for all management API client errors.

    Catching this exception will catch all mgmt_api-specific errors.
    """
    pass


class ApiConnectionError(ApiClientException):
    """Raised when the management server cannot be reached.

    This can occur due to:
    - TLS handshake failure
    - Socket I/O errors or timeouts
    - Server down or unreachable (wrong host, port or proxy)
    """
    pass


class CertificateError(ApiClientException):
    """Raised when the server certificate is not trusted.

    This can occur due to:
    - Host/port not present in the fingerprint file ("unknown host")
    - Fingerprint in the file differs from the server's ("fingerprint changed")
    - Server presented no certificate
    - Fingerprint refused during first-contact confirmation
    """
    pass


class ProtocolError(ApiClientException):
    """Raised when the server response body is not a JSON object."""
    pass


class StoreIOError(ApiClientException):
    """Raised when the local fingerprint file cannot be read or written.

    This can occur due to:
    - Malformed (non-JSON) file content
    - Missing permissions or other filesystem errors
    """
    pass


class TaskResolutionError(ApiClientException):
    """Raised when waiting for an asynchronous task fails.

    This can occur due to:
    - 'show-task' returned an error or an unparseable body
    - 'show-task' payload does not contain a tasks list
    - The caller-supplied deadline elapsed before the tasks finished
    """
    pass


class ConfigurationError(ApiClientException):
    """Raised on caller misuse.

    This can occur due to:
    - Empty server address or command name
    - Payload that is not a JSON object
    - Wrong item key passed to a paginated query
    - Calling the API before login
    """
    pass
