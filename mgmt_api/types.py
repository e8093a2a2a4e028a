"""Shared typing helpers used across the mgmt_api package.

This module centralizes JSON-like typings and the typed dictionaries that
describe records passed between modules, so other modules can import
concrete types rather than using unstructured Any in many places.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Union, TypedDict


# Recursive JSON-ish type used for payloads / returned JSON values
JSONType = Union[Dict[str, "JSONType"], List["JSONType"], str, int, float, bool, None]

JSONObject = Dict[str, JSONType]

# Interactive yes/no collaborator used for trust-on-first-use decisions
ConfirmCallback = Callable[[str], bool]


class RequestRecord(TypedDict):
    url: str
    payload: JSONObject
    headers: Dict[str, str]


class ResponseRecord(TypedDict):
    data: JSONObject
    status: int


class ApiCallRecord(TypedDict):
    """One request/response exchange as handed to a debug sink.

    The payload of a login request is already redacted.
    """
    request: RequestRecord
    response: ResponseRecord
