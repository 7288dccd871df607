"""
FbiXml envelope construction and parsing.

Request:  <FbiXml><Ticket><Key>..</Key></Ticket><FbiMsgsRq><XxxRq>..</XxxRq></FbiMsgsRq></FbiXml>
Response: <FbiXml><Ticket>..</Ticket><FbiMsgsRs><XxxRs statusCode=".." statusMessage="..">..</XxxRs></FbiMsgsRs></FbiXml>
"""

from typing import Any, Optional
from xml.parsers.expat import ExpatError

import xmltodict

from fishbowl_gateway.errors import TransportError
from fishbowl_gateway.models.session import UpstreamResult

ROOT = "FbiXml"
TERMINATOR = b"</FbiXml>"

STATUS_SUCCESS = 1000
# Ticket expired, invalid, or logged off by an administrator
STATUS_TICKET_REJECTED = frozenset({1001, 1002, 1010})


def response_name(request_name: str) -> str:
    """LoginRq -> LoginRs"""
    if request_name.endswith("Rq"):
        return request_name[:-2] + "Rs"
    return request_name


def build_envelope(
    request_name: str,
    payload: Optional[dict[str, Any]] = None,
    ticket: Optional[str] = None,
) -> bytes:
    """Build a request document. Without a ticket the envelope carries an empty <Ticket/> (login)."""
    root: dict[str, Any] = {}
    if ticket is None:
        root["@version"] = "1.0"
        root["Ticket"] = None
    else:
        root["Ticket"] = {"Key": ticket}
    root["FbiMsgsRq"] = {request_name: payload or None}
    return xmltodict.unparse({ROOT: root}).encode("utf-8")


def parse_envelope(raw: bytes) -> dict[str, Any]:
    try:
        document = xmltodict.parse(raw)
    except ExpatError as e:
        raise TransportError(f"Malformed FbiXml response: {e}")
    if not isinstance(document, dict) or not isinstance(document.get(ROOT), dict):
        raise TransportError("Response is not an FbiXml document")
    return document


def _child(node: Any, name: str) -> Optional[dict[str, Any]]:
    if not isinstance(node, dict):
        return None
    value = node.get(name)
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else None


def _text(node: Any, *names: str) -> Optional[str]:
    """First non-empty value among attributes/elements `names`."""
    if not isinstance(node, dict):
        return None
    for name in names:
        value = node.get(name)
        if isinstance(value, list):
            value = value[0] if value else None
        if isinstance(value, dict):
            value = value.get("#text")
        if value not in (None, ""):
            return str(value).strip()
    return None


def _status(node: Any) -> Optional[int]:
    value = _text(node, "@statusCode", "StatusCode")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def read_status(document: dict[str, Any], request_name: str) -> UpstreamResult:
    """Pull status code, message and body for `request_name` out of a parsed response.

    Absent nodes yield status_code None (indeterminate) instead of raising.
    """
    messages = _child(document.get(ROOT), "FbiMsgsRs")
    body = _child(messages, response_name(request_name))

    code = _status(body)
    message = _text(body, "@statusMessage", "StatusMessage")
    if code is None:
        code = _status(messages)
        message = message or _text(messages, "@statusMessage", "StatusMessage")

    return UpstreamResult(
        status_code=code,
        message=message,
        data=body,
        auth_rejected=code in STATUS_TICKET_REJECTED,
    )


def read_ticket(document: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    """Return (ticket key, user id) from the response envelope."""
    ticket = _child(document.get(ROOT), "Ticket")
    return _text(ticket, "Key"), _text(ticket, "UserID")
