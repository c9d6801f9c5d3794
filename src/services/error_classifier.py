"""Failure classification for Booker API responses.

Turns a (status, raw body, parsed body) triple, or a network-level
exception, into a single typed ``BookingError``. Call sites decide
beforehand whether a 404 means success (cancel), a valid not-found
status (status lookup), or an error (everything else).
"""

from __future__ import annotations

import json
import socket
from typing import Any

import httpx

from src.shared.response_models import BookingError
from src.shared.types import ErrorKind

HTML_MARKERS = ("<!doctype", "<html")
STACK_TRACE_SIGNATURES = ("NullPointerException", "java.lang.", "Exception in thread")

_STATUS_KINDS: dict[int, tuple[ErrorKind, str]] = {
    401: (ErrorKind.AUTHENTICATION_FAILED, "Authentication failed - invalid API key or token"),
    403: (ErrorKind.ACCESS_DENIED, "Access denied - check API permissions"),
    404: (ErrorKind.NOT_FOUND, "Booking or endpoint not found"),
}


def looks_like_html(raw: str) -> bool:
    """Check whether a body is an HTML error page rather than JSON."""
    lowered = raw.lower()
    return any(marker in lowered for marker in HTML_MARKERS)


def parse_json_body(raw: str) -> tuple[bool, Any]:
    """Parse a response body as JSON.

    Args:
        raw: Response text.

    Returns:
        Tuple of (parsed_ok, value). An empty body parses as None.
    """
    if not raw.strip():
        return True, None
    try:
        return True, json.loads(raw)
    except ValueError:
        return False, None


def classify_failure(
    status: int,
    raw: str,
    parsed: Any,
    *,
    parsed_ok: bool = True,
    include_details: bool = False,
) -> BookingError:
    """Map an upstream HTTP response to one error kind.

    Args:
        status: HTTP status code.
        raw: Raw response body.
        parsed: Parsed JSON body, or None.
        parsed_ok: Whether the body parsed as JSON.
        include_details: Attach the upstream payload for diagnosis.

    Returns:
        BookingError describing the failure.
    """
    details = _details(raw, parsed) if include_details else None

    if looks_like_html(raw):
        return BookingError(
            kind=ErrorKind.SERVICE_UNAVAILABLE,
            message="Booker service unavailable",
            status_code=status,
            details=details,
        )
    if any(sig in raw for sig in STACK_TRACE_SIGNATURES):
        return BookingError(
            kind=ErrorKind.UPSTREAM_INTERNAL_ERROR,
            message="Booker server error - missing required field in payload",
            status_code=status,
            details=details,
        )
    if 200 <= status < 300 and not parsed_ok:
        return BookingError(
            kind=ErrorKind.MALFORMED_RESPONSE,
            message="Invalid response from Booker",
            status_code=status,
            details=details,
        )

    body = parsed if isinstance(parsed, dict) else {}
    if status in (400, 422):
        return BookingError(
            kind=ErrorKind.VALIDATION_FAILED,
            message=_validation_message(body),
            status_code=status,
            details=details,
        )
    if status in _STATUS_KINDS:
        kind, message = _STATUS_KINDS[status]
        return BookingError(kind=kind, message=message, status_code=status, details=details)
    if status >= 500:
        return BookingError(
            kind=ErrorKind.UPSTREAM_SERVER_ERROR,
            message="Booker server error - please try again",
            status_code=status,
            details=details,
        )
    return BookingError(
        kind=ErrorKind.UPSTREAM_SERVER_ERROR,
        message=_upstream_message(body) or f"Booker error: {status}",
        status_code=status,
        details=details,
    )


def classify_transport_error(exc: httpx.TransportError) -> BookingError:
    """Map a network-level failure to a TransportError with a cause code.

    Args:
        exc: The httpx transport exception.

    Returns:
        BookingError of kind TransportError.
    """
    cause, message = _transport_cause(exc)
    return BookingError(
        kind=ErrorKind.TRANSPORT_ERROR,
        message=message,
        cause=cause,
    )


def _transport_cause(exc: httpx.TransportError) -> tuple[str, str]:
    if isinstance(exc, httpx.TimeoutException):
        return "timeout", "Request to Booker timed out - please try again"
    root = _root_cause(exc)
    if isinstance(root, socket.gaierror):
        return "dns_lookup_failed", "Booker DNS lookup failed"
    if isinstance(root, ConnectionRefusedError):
        return "connection_refused", "Booker connection refused"
    if isinstance(exc, httpx.ConnectError):
        text = str(exc).lower()
        if "name or service not known" in text or "nodename nor servname" in text:
            return "dns_lookup_failed", "Booker DNS lookup failed"
        if "connection refused" in text:
            return "connection_refused", "Booker connection refused"
        return "connect_failed", "Failed to connect to Booker"
    return "network_error", "Failed to connect to Booker"


def _root_cause(exc: BaseException) -> BaseException:
    seen: set[int] = set()
    current: BaseException = exc
    while id(current) not in seen:
        seen.add(id(current))
        nxt = current.__cause__ or current.__context__
        if nxt is None:
            break
        current = nxt
    return current


def _validation_message(body: dict) -> str:
    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        return ", ".join(_error_item_message(e) for e in errors)
    return _upstream_message(body) or "Invalid booking data"


def _error_item_message(item: Any) -> str:
    if isinstance(item, dict):
        for key in ("err_msg", "message", "field"):
            if item.get(key):
                return str(item[key])
    return str(item)


def _upstream_message(body: dict) -> str:
    for key in ("message", "error", "err_msg"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _details(raw: str, parsed: Any) -> Any:
    if parsed is not None:
        return parsed
    return {"raw": raw[:500]}
