"""Management API client implementation.

This module provides the ApiClient class that logs in to a management
server, sends API calls over fingerprint-pinned HTTPS, waits for
asynchronous tasks and collects paginated queries.
"""
import logging
from typing import Any, Mapping, Optional, Union

from .config import ClientArgs
from .debug_log import DebugFileSink
from .exceptions import ApiClientException, ConfigurationError
from .fingerprints import FingerprintStore
from .helpers import normalize_payload
from .models import ApiLoginResponse, ApiResponse, Session
from .query import QueryAggregator
from .tasks import SHOW_TASK_COMMAND, TaskResolver
from .transport import LOGIN_COMMAND, DebugSink, Transport
from .trust import TrustVerifier, console_confirm, verify_server_fingerprint
from .types import ConfirmCallback

LOGOUT_COMMAND = "logout"

log = logging.getLogger(__name__)

Payload = Union[Mapping[str, Any], str]


class ApiClient:
    """Client for the management server web API.

    Summary of the principal methods:
        login   - log in and keep the resulting session
        call    - run a command; waits for asynchronous tasks by default
        query   - return every object of a paginated command
        logout  - end the session

    Example:
        args = ClientArgs(fingerprint_file="fingerprints.txt")
        async with ApiClient(args) as client:
            await client.verify_server_fingerprint("192.0.2.10")
            login = await client.login("192.0.2.10", {"user": "admin", "password": "secret"})
            if login.success:
                hosts = await client.query("show-hosts", "objects")
                await client.call("publish", {})
    """

    def __init__(self, args: Optional[ClientArgs] = None, *,
                 confirm: ConfirmCallback = console_confirm,
                 debug_sink: Optional[DebugSink] = None):
        """Initialize the client.

        Args:
            args: Client configuration (defaults to ``ClientArgs()``)
            confirm: Yes/no collaborator for trust-on-first-use decisions
            debug_sink: Receives every API exchange; defaults to a
                :class:`DebugFileSink` when ``args.debug_file`` is set
        """
        self.args = args or ClientArgs()
        self.port = self.args.port
        self.confirm = confirm
        self.session: Optional[Session] = None

        if debug_sink is None and self.args.debug_file:
            debug_sink = DebugFileSink(self.args.debug_file)

        self._store = FingerprintStore(self.args.fingerprint_file)
        self.verifier = TrustVerifier(self._store, self.args.check_fingerprint)
        self.transport = Transport(
            self.verifier,
            timeout=self.args.timeout,
            proxy=self.args.proxy,
            user_agent=self.args.user_agent,
            debug_sink=debug_sink,
        )
        self.task_resolver = TaskResolver(self.transport, poll_interval=self.args.poll_interval)
        self.aggregator = QueryAggregator(
            self.transport,
            limit=self.args.query_limit,
            max_pages=self.args.max_query_pages,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.session is None or not self.session.authenticated:
            return
        if exc_type is None:
            await self.logout()
            return
        # Unwinding from another error: a failed logout must not replace it
        try:
            await self.logout()
        except ApiClientException as e:
            log.warning(f"Logout from {self.session.server} failed: {e}")

    @property
    def fingerprint_store(self) -> FingerprintStore:
        return self._store

    @property
    def query_limit(self) -> int:
        return self.aggregator.limit

    @query_limit.setter
    def query_limit(self, limit: int) -> None:
        if limit <= 0:
            raise ConfigurationError("Error: query limit must be positive")
        self.aggregator.limit = limit

    def set_port(self, port: Optional[int]) -> None:
        """Set the port used by the next login (``None`` restores the configured one)."""
        self.port = self.args.port if port is None else port

    def _session_or_current(self, session: Optional[Session]) -> Session:
        session = session or self.session
        if session is None or not session.authenticated:
            raise ConfigurationError("ERROR: not logged in, call login() first")
        return session

    async def verify_server_fingerprint(self, server: str, port: Optional[int] = None) -> bool:
        """Make sure the fingerprint file trusts ``server``, asking ``confirm`` if needed.

        Returns:
            True if a new or changed fingerprint was saved
        """
        return await verify_server_fingerprint(
            self._store, server, port or self.port, confirm=self.confirm, proxy=self.args.proxy
        )

    async def login(self, server: str, payload: Payload,
                    cloud_mgmt_id: Optional[str] = None) -> ApiLoginResponse:
        """Log in to the management server.

        Args:
            server: IP address or name of the management server
            payload: Login arguments, e.g. ``{"user": ..., "password": ...}``
                or ``{"api-key": ...}``
            cloud_mgmt_id: Smart-1 Cloud management UID, if any

        Returns:
            Login response; on success ``response.session`` is also kept on
            the client for later calls

        Raises:
            ConfigurationError: If the server or payload is invalid
            CertificateError: If the server is not trusted
            ApiConnectionError: If the server cannot be reached
        """
        if not server:
            raise ConfigurationError("Error: server IP address is invalid")
        body = normalize_payload(payload)
        session = Session(server=server, port=self.port, cloud_mgmt_id=cloud_mgmt_id)

        log.info(f"Logging in to {server}:{self.port}")
        response: ApiLoginResponse = await self.transport.send(session, LOGIN_COMMAND, body)
        sid = response.payload.get("sid")
        if response.success and sid is not None:
            version = response.payload.get("api-server-version")
            session.bind(str(sid), None if version is None else str(version))
            self.session = session
            log.info(f"Logged in to {server}:{self.port} (api version {session.api_version})")
        else:
            log.error(f"Login to {server} failed: {response.error_message}")

        response.session = session
        return response

    async def call(self, command: str, payload: Optional[Payload] = None,
                   session: Optional[Session] = None, wait_for_task: bool = True,
                   task_timeout: Optional[float] = None) -> ApiResponse:
        """Send a web-service API request to the management server.

        Args:
            command: API command name, e.g. ``"add-host"``
            payload: Command arguments (dict or JSON text); ``None`` means ``{}``
            session: Session to use instead of the client's current one
            wait_for_task: When the server answers with a ``task-id`` or
                ``tasks``, poll ``show-task`` and return its final response
            task_timeout: Optional deadline in seconds for that wait

        Returns:
            Server response (the final ``show-task`` response for asynchronous commands)

        Raises:
            ConfigurationError: If the command or payload is invalid or there is no session
            TaskResolutionError: If waiting for a task fails
        """
        if not command:
            raise ConfigurationError("ERROR: 'command' arg is invalid")
        body = normalize_payload({} if payload is None else payload)
        session = self._session_or_current(session)

        response = await self.transport.send(session, command, body)
        if not (wait_for_task and response.success and command != SHOW_TASK_COMMAND):
            return response
        if "task-id" in response.payload:
            return await self.task_resolver.resolve(session, str(response.payload["task-id"]), task_timeout)
        if isinstance(response.payload.get("tasks"), list):
            return await self.task_resolver.resolve_many(session, response.payload["tasks"], task_timeout)
        return response

    async def query(self, command: str, item_key: str = "objects", payload: Optional[Payload] = None,
                    session: Optional[Session] = None) -> ApiResponse:
        """Return every object of a paginated command in one response.

        Args:
            command: A command returning a list, e.g. ``"show-hosts"``
            item_key: Payload field holding the items (``"objects"`` for most commands)
            payload: Extra command arguments

        Raises:
            ConfigurationError: If ``item_key`` is wrong or paging never completes
        """
        if not command:
            raise ConfigurationError("ERROR: 'command' arg is invalid")
        body = normalize_payload({} if payload is None else payload)
        session = self._session_or_current(session)
        return await self.aggregator.aggregate(session, command, item_key, body)

    async def logout(self, session: Optional[Session] = None) -> ApiResponse:
        """Log out. The client forgets its current session afterwards."""
        session = self._session_or_current(session)
        response = await self.transport.send(session, LOGOUT_COMMAND, {})
        if session is self.session:
            self.session = None
        log.info(f"Logged out from {session.server}")
        return response
