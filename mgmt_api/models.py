"""Response and session objects returned by the management API client."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .exceptions import ConfigurationError
from .types import JSONObject, JSONType

OK_RESPONSE_CODE = 200


@dataclass
class Session:
    """Authenticated context threaded through every call after login.

    ``sid`` is ``None`` until login succeeds and is set exactly once.
    """
    server: str
    port: int
    sid: Optional[str] = None
    api_version: Optional[str] = None
    cloud_mgmt_id: Optional[str] = None

    def bind(self, sid: str, api_version: Optional[str] = None) -> None:
        if self.sid is not None:
            raise ConfigurationError("Session is already bound to a session id")
        self.sid = sid
        self.api_version = api_version

    @property
    def authenticated(self) -> bool:
        return self.sid is not None


@dataclass
class ApiResponse:
    """Server answer to one API call.

    ``success`` is true iff the status code is 200. The error fields are
    only read from the payload when the call failed.
    """
    status_code: int
    payload: JSONObject = field(default_factory=dict)
    success: bool = field(init=False)
    errors: Optional[List[JSONType]] = field(init=False, default=None)
    warnings: Optional[List[JSONType]] = field(init=False, default=None)
    error_message: Optional[str] = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.success = self.status_code == OK_RESPONSE_CODE
        if not self.success:
            message = self.payload.get("message")
            self.error_message = str(message) if message is not None else None
            self.errors = self.payload.get("errors")
            self.warnings = self.payload.get("warnings")


@dataclass
class ApiLoginResponse(ApiResponse):
    """Response to the ``login`` command, carrying the resulting session."""
    session: Optional[Session] = None

    @property
    def sid(self) -> Optional[str]:
        return self.session.sid if self.session else None

    @property
    def api_version(self) -> Optional[str]:
        return self.session.api_version if self.session else None
