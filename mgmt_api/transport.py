"""One authenticated request/response exchange with the management server.

Every call opens its own connection, applies the per-call trust context
from :class:`~mgmt_api.trust.TrustVerifier`, POSTs a JSON body and closes the
connection again, whatever the outcome.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

import aiohttp

from .config import DEFAULT_USER_AGENT, ProxySettings
from .exceptions import ApiConnectionError, ProtocolError
from .helpers import redact_password
from .models import ApiLoginResponse, ApiResponse, Session
from .trust import TrustVerifier
from .types import ApiCallRecord, JSONObject

LOGIN_COMMAND = "login"
API_CONTEXT = "web_api"
SID_HEADER = "X-chkp-sid"

log = logging.getLogger(__name__)


class DebugSink(Protocol):
    def record(self, entry: ApiCallRecord) -> None:
        ...


def build_url(session: Session, command: str) -> str:
    if session.cloud_mgmt_id:
        base_path = f"/{session.cloud_mgmt_id}/{API_CONTEXT}/"
    else:
        base_path = f"/{API_CONTEXT}/"
    return f"https://{session.server}:{session.port}{base_path}{command}"


class Transport:
    """Sends single API calls.

    Args:
        verifier: Trust policy consulted before every connection
        timeout: Connect/read timeouts
        proxy: Optional proxy to tunnel through
        user_agent: Value of the ``User-Agent`` header
        debug_sink: Optional collaborator receiving every exchange
    """

    def __init__(self, verifier: TrustVerifier, timeout: Optional[aiohttp.ClientTimeout] = None,
                 proxy: Optional[ProxySettings] = None, user_agent: str = DEFAULT_USER_AGENT,
                 debug_sink: Optional[DebugSink] = None):
        self.verifier = verifier
        self.timeout = timeout or aiohttp.ClientTimeout(total=None, sock_connect=180, sock_read=300)
        self.proxy = proxy
        self.user_agent = user_agent
        self.debug_sink = debug_sink

    def _headers(self, session: Session, body: bytes) -> Dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Content-Length": str(len(body)),
        }
        if session.sid is not None:
            headers[SID_HEADER] = session.sid
        return headers

    async def send(self, session: Session, command: str, payload: Mapping[str, Any]) -> ApiResponse:
        """POST ``payload`` to ``command`` and wrap the answer.

        Returns:
            :class:`ApiLoginResponse` for ``login``, :class:`ApiResponse` otherwise.
            A non-200 status is a response with ``success=False``, not an error.

        Raises:
            CertificateError: If the server is not trusted
            ApiConnectionError: On handshake, socket or timeout failures
            ProtocolError: If the body is not a JSON object
        """
        url = build_url(session, command)
        body = json.dumps(payload).encode("utf-8")
        headers = self._headers(session, body)
        # The store is a locked file; keep its reads off the event loop
        loop = asyncio.get_running_loop()
        ssl = await loop.run_in_executor(None, self.verifier.ssl_for, session.server, session.port)

        connector = aiohttp.TCPConnector(force_close=True)
        try:
            async with aiohttp.ClientSession(connector=connector, timeout=self.timeout) as http:
                async with http.post(
                    url,
                    data=body,
                    headers=headers,
                    ssl=ssl,
                    proxy=self.proxy.url if self.proxy else None,
                    proxy_auth=self.proxy.auth if self.proxy else None,
                ) as resp:
                    status = resp.status
                    raw = await resp.read()
        except aiohttp.ServerFingerprintMismatch as e:
            log.error(f"Certificate of {session.server}:{session.port} rejected")
            raise TrustVerifier.describe_mismatch(e) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            log.error(f"API call '{command}' to {session.server}:{session.port} failed: {e}")
            raise ApiConnectionError(
                "ERROR: Could not connect to API server, check that the server is up and running. "
                f"Error message: {e}"
            ) from e

        data = self._decode(command, raw)
        if command == LOGIN_COMMAND:
            response: ApiResponse = ApiLoginResponse(status, data)
            logged_payload = redact_password(payload)
        else:
            response = ApiResponse(status, data)
            logged_payload = dict(payload)

        self._record(url, logged_payload, headers, response)
        return response

    @staticmethod
    def _decode(command: str, raw: bytes) -> JSONObject:
        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            log.error(f"'{command}' returned a body that is not JSON")
            raise ProtocolError(f"ERROR: failed to parse the response of '{command}': {e}") from e
        if not isinstance(data, dict):
            raise ProtocolError(f"ERROR: response of '{command}' is not a JSON object")
        return data

    def _record(self, url: str, payload: JSONObject, headers: Dict[str, str], response: ApiResponse) -> None:
        logged_headers = {k: v for k, v in headers.items() if k != SID_HEADER}
        entry: ApiCallRecord = {
            "request": {"url": url, "payload": payload, "headers": logged_headers},
            "response": {"data": response.payload, "status": response.status_code},
        }
        log.debug(f"API call {url} -> {response.status_code}")
        if self.debug_sink is not None:
            self.debug_sink.record(entry)
