"""Client configuration.

``ClientArgs`` carries every tunable of :class:`mgmt_api.ApiClient`. All
fields have defaults, so ``ClientArgs()`` gives a client that checks
fingerprints against ``./fingerprints.txt`` and talks to port 443.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import aiohttp

from .exceptions import ConfigurationError

DEFAULT_PORT = 443
DEFAULT_FINGERPRINT_FILE = "./fingerprints.txt"
DEFAULT_USER_AGENT = "python-api-wrapper"
DEFAULT_CONNECT_TIMEOUT = 180.0
DEFAULT_READ_TIMEOUT = 300.0
DEFAULT_QUERY_LIMIT = 50
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_QUERY_PAGES = 10000


@dataclass
class ProxySettings:
    """Outbound HTTP proxy used to tunnel the TLS connection.

    :param host: Proxy host name or address (mandatory).
    :param port: Proxy port; ``None`` leaves it to the URL default.
    :param username: Optional proxy user.
    :param password: Optional proxy password, used only with ``username``.
    """

    host: str
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def url(self) -> str:
        if self.port:
            return f"http://{self.host}:{self.port}"
        return f"http://{self.host}"

    @property
    def auth(self) -> Optional[aiohttp.BasicAuth]:
        if not self.username:
            return None
        return aiohttp.BasicAuth(self.username, self.password or "")


@dataclass
class ClientArgs:
    """Runtime configuration for :class:`mgmt_api.ApiClient`.

    :param port: Management server port used by ``login``.
    :param fingerprint_file: Path of the JSON fingerprint store.
    :param check_fingerprint: Validate the server fingerprint on every call.
    :param debug_file: When set, every call is appended to this JSON file.
    :param proxy: Optional proxy to tunnel through.
    :param connect_timeout: Seconds allowed for connecting.
    :param read_timeout: Seconds allowed between reads.
    :param query_limit: Page size used by paginated queries.
    :param poll_interval: Seconds between ``show-task`` polls.
    :param max_query_pages: Upper bound on pages fetched by one query.
    :param user_agent: Value of the ``User-Agent`` header.
    """

    port: int = DEFAULT_PORT
    fingerprint_file: str = DEFAULT_FINGERPRINT_FILE
    check_fingerprint: bool = True
    debug_file: Optional[str] = None
    proxy: Optional[ProxySettings] = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    query_limit: int = DEFAULT_QUERY_LIMIT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_query_pages: int = DEFAULT_MAX_QUERY_PAGES
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        if not self.fingerprint_file:
            raise ConfigurationError("Error: fingerprint file name is invalid")
        if self.debug_file == "":
            raise ConfigurationError("Error: debug file name is invalid")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Error: invalid port {self.port}")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ConfigurationError("Error: timeouts must be positive")
        if self.query_limit <= 0:
            raise ConfigurationError("Error: query limit must be positive")
        if self.poll_interval < 0:
            raise ConfigurationError("Error: poll interval cannot be negative")
        if self.max_query_pages <= 0:
            raise ConfigurationError("Error: max query pages must be positive")

    @property
    def timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.connect_timeout,
            sock_read=self.read_timeout,
        )
