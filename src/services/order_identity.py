"""Order identifier parsing and resolution.

The Booker API identifies a booking twice: an opaque hex order id that
state-changing calls require, and a numeric job id shown to customers.
Create responses carry them in several alternate shapes; this module
tries each known shape in a fixed priority order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from src.services.token_provider import decode_token_claims
from src.shared.response_models import BookingError, OrderIdentity
from src.shared.types import ErrorKind
from src.shared.validators import is_hex_order_id

logger = logging.getLogger(__name__)

TOKEN_FIELDS = ("order_token", "token")
ORDER_ID_FIELDS = ("order_id", "id", "orderId", "booking_id")
TOKEN_ORDER_CLAIMS = ("oid", "order_id")
TOKEN_JOB_CLAIMS = ("jid", "job_id")


@dataclass(frozen=True)
class OrderReference:
    """Identifier pair resolved for a state-changing call.

    Attributes:
        api_id: Identifier placed in the request path.
        display_id: Identifier shown to people.
        synthesized: True when ``api_id`` is a numeric job id
            standing in for a missing hex order id.
    """

    api_id: str
    display_id: str
    synthesized: bool = False


def parse_order_identity(data: Any) -> OrderIdentity | BookingError:
    """Extract both identifiers from a create-order response body.

    Priority: signed order token claims, then top-level id fields in
    ``ORDER_ID_FIELDS`` order, then ``order.order_id``. The job id comes
    from token claims, then ``meta.job_id``, ``job_id``, ``jid``.

    Args:
        data: Parsed JSON response body.

    Returns:
        OrderIdentity, or a MalformedResponse error when neither
        identifier is present.
    """
    if not isinstance(data, dict):
        return _malformed("Create response is not a JSON object")

    order_id: str | None = None
    job_id: str | None = None

    claims = _token_claims(data)
    if claims is not None:
        order_id = _first_present(claims, TOKEN_ORDER_CLAIMS)
        job_id = _first_present(claims, TOKEN_JOB_CLAIMS)

    if order_id is None:
        order_id = _first_present(data, ORDER_ID_FIELDS)
    if order_id is None and isinstance(data.get("order"), dict):
        order_id = _first_present(data["order"], ("order_id",))

    if job_id is None and isinstance(data.get("meta"), dict):
        job_id = _first_present(data["meta"], ("job_id",))
    if job_id is None:
        job_id = _first_present(data, ("job_id", "jid"))

    if order_id is None and job_id is None:
        return _malformed("Create response carries no order or job identifier")
    if order_id is None:
        return OrderIdentity(order_id=job_id, job_id=job_id, synthesized=True)  # type: ignore[arg-type]
    if job_id is None:
        return OrderIdentity(order_id=order_id, job_id=order_id, synthesized=True)
    return OrderIdentity(order_id=order_id, job_id=job_id)


def resolve_order_reference(
    order_id: str | None,
    job_id: str | None,
) -> OrderReference | BookingError:
    """Pick the identifier for cancel/amend/status calls.

    A hex order id is preferred. A numeric job id is used only when no
    order id is known, which the upstream may reject.

    Args:
        order_id: Opaque hex order id, if known.
        job_id: Numeric job id, if known.

    Returns:
        OrderReference, or a MissingIdentifier error when neither is set.
    """
    order_id = (order_id or "").strip() or None
    job_id = (job_id or "").strip() or None
    if order_id is None and job_id is None:
        return BookingError(
            kind=ErrorKind.MISSING_IDENTIFIER,
            message="Missing booking/order ID",
        )
    if order_id is not None:
        if not is_hex_order_id(order_id):
            logger.warning("order_id_not_hex", extra={"order_id": order_id})
        return OrderReference(api_id=order_id, display_id=job_id or order_id)
    logger.warning(
        "using_job_id_for_api_call",
        extra={"job_id": job_id},
    )
    return OrderReference(api_id=job_id, display_id=job_id, synthesized=True)  # type: ignore[arg-type]


def _token_claims(data: dict) -> dict | None:
    for field in TOKEN_FIELDS:
        token = data.get(field)
        if isinstance(token, str) and token:
            claims = decode_token_claims(token)
            if claims is None:
                logger.info("order_token_undecodable")
            return claims
    return None


def _first_present(source: dict, fields: tuple[str, ...]) -> str | None:
    for field in fields:
        value = source.get(field)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value == 0:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _malformed(message: str) -> BookingError:
    return BookingError(kind=ErrorKind.MALFORMED_RESPONSE, message=message)
