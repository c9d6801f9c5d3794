"""Booking endpoints: book, amend, cancel, status, return trip.

Handlers are thin: they parse the body into request models, call the
process-wide ``BookingService`` from ``app.state``, and map typed
errors to HTTP status codes.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.booking.service import BookingService
from src.shared.booking import AmendmentRequest, BookingRequest
from src.shared.response_models import BookingError, OrderIdentity
from src.shared.types import AmendmentState, ErrorKind, UpstreamOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["booking"])

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.MISSING_IDENTIFIER: 400,
    ErrorKind.AUTHENTICATION_FAILED: 401,
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PARTIALLY_FAILED: 409,
    ErrorKind.MALFORMED_RESPONSE: 502,
    ErrorKind.UPSTREAM_INTERNAL_ERROR: 502,
    ErrorKind.UPSTREAM_SERVER_ERROR: 502,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.TRANSPORT_ERROR: 503,
    ErrorKind.CREDENTIAL_UNAVAILABLE: 503,
}


class CancelRequest(BaseModel):
    """Cancel payload. One of ``order_id`` / ``job_id`` is required.

    Attributes:
        order_id: Hex order id (preferred).
        job_id: Numeric job id.
        reason: Optional reason sent upstream.
    """

    order_id: str | None = None
    job_id: str | None = None
    reason: str | None = None


class StatusRequest(BaseModel):
    """Status lookup payload."""

    order_id: str | None = None
    job_id: str | None = None


class ReturnTripRequest(BaseModel):
    """Return trip for an already confirmed outbound order.

    Attributes:
        order_id: Outbound hex order id.
        job_id: Outbound numeric job id.
        booking: The outbound booking request (route and passenger).
        return_at: Return pickup instant.
    """

    order_id: str
    job_id: str | None = None
    booking: BookingRequest
    return_at: datetime


def get_booking_service(request: Request) -> BookingService:
    """Return the process-wide BookingService created at startup."""
    return request.app.state.booking_service


def error_response(error: BookingError, **extra: Any) -> JSONResponse:
    """Build a failure body with the mapped HTTP status.

    Args:
        error: Typed booking error.
        **extra: Additional top-level fields for the body.

    Returns:
        JSONResponse with ``ok: false``.
    """
    body: dict[str, Any] = {
        "ok": False,
        "error": error.kind.value,
        "message": error.message,
        **extra,
    }
    if error.cause:
        body["cause"] = error.cause
    if error.details is not None:
        body["details"] = error.details
    return JSONResponse(status_code=ERROR_STATUS.get(error.kind, 500), content=body)


@router.post("/book")
async def book(
    payload: BookingRequest,
    service: BookingService = Depends(get_booking_service),
) -> Any:
    """Create a booking, plus its return trip when requested.

    Args:
        payload: Booking request.
        service: Booking service.

    Returns:
        Confirmation with order and job ids, or an error body.
    """
    result = await service.create_booking(payload)
    if not result.ok:
        return error_response(result.error)  # type: ignore[arg-type]
    return result.model_dump(mode="json", exclude={"error"}, exclude_none=True)


@router.post("/amend")
async def amend(
    payload: AmendmentRequest,
    service: BookingService = Depends(get_booking_service),
) -> Any:
    """Amend a booking via update, falling back to cancel-and-rebook.

    Args:
        payload: Identifiers and requested changes.
        service: Booking service.

    Returns:
        Amendment result; 409 when the original was cancelled but the
        replacement failed.
    """
    result = await service.amend_booking(payload)
    if result.ok:
        return result.model_dump(mode="json", exclude={"error"}, exclude_none=True)
    extra: dict[str, Any] = {
        "state": result.state.value,
        "original_order_id": result.original_order_id,
        "original_cancelled": result.original_cancelled,
    }
    if result.state == AmendmentState.PARTIALLY_FAILED:
        extra["requires_manual_recovery"] = True
    return error_response(result.error, **extra)  # type: ignore[arg-type]


@router.get("/amend")
async def amend_capabilities() -> dict[str, Any]:
    """Describe the supported amendment strategies."""
    return {
        "supported": True,
        "methods": ["direct-update", "cancel-and-rebook"],
        "note": (
            "Direct update is attempted first (PUT, then PATCH); "
            "falls back to cancel and rebook when the upstream does not accept it"
        ),
    }


@router.post("/cancel")
async def cancel(
    payload: CancelRequest,
    service: BookingService = Depends(get_booking_service),
) -> Any:
    """Cancel a booking. An unknown booking counts as already cancelled.

    Args:
        payload: Identifiers and optional reason.
        service: Booking service.

    Returns:
        Cancellation body, or an error body.
    """
    return await _cancel(service, payload.order_id, payload.job_id, payload.reason)


@router.delete("/cancel")
async def cancel_by_query(
    order_id: str | None = Query(default=None),
    job_id: str | None = Query(default=None),
    service: BookingService = Depends(get_booking_service),
) -> Any:
    """Cancel a booking identified by query parameters."""
    return await _cancel(service, order_id, job_id, None)


@router.get("/status")
async def status_by_query(
    booking_id: str | None = Query(default=None),
    job_id: str | None = Query(default=None),
    service: BookingService = Depends(get_booking_service),
) -> Any:
    """Look up a booking's status by ``booking_id`` (the order id)."""
    return await _status(service, booking_id, job_id)


@router.post("/status")
async def status(
    payload: StatusRequest,
    service: BookingService = Depends(get_booking_service),
) -> Any:
    """Look up a booking's status from a JSON body."""
    return await _status(service, payload.order_id, payload.job_id)


@router.post("/return-trip")
async def return_trip(
    payload: ReturnTripRequest,
    service: BookingService = Depends(get_booking_service),
) -> Any:
    """Book the return leg of a confirmed outbound order.

    A failed return booking is reported as a warning with ``ok: true``
    for the outbound order and no return id.
    """
    outbound = OrderIdentity(
        order_id=payload.order_id,
        job_id=payload.job_id or payload.order_id,
    )
    result = await service.book_return_trip(outbound, payload.booking, payload.return_at)
    body: dict[str, Any] = {
        "ok": True,
        "order_id": outbound.order_id,
        "return_order_id": result.identity.order_id if result.identity else None,
        "return_job_id": result.identity.job_id if result.identity else None,
    }
    if result.warning:
        body["warning"] = result.warning
    return body


async def _cancel(
    service: BookingService,
    order_id: str | None,
    job_id: str | None,
    reason: str | None,
) -> Any:
    result = await service.cancel_booking(order_id, job_id, reason)
    if result.outcome == UpstreamOutcome.ERROR:
        return error_response(result.error, order_id=result.order_id)  # type: ignore[arg-type]
    return {
        "ok": True,
        "order_id": result.order_id,
        "already_gone": result.already_gone,
        "message": result.message,
    }


async def _status(
    service: BookingService,
    order_id: str | None,
    job_id: str | None,
) -> Any:
    result = await service.get_booking_status(order_id, job_id)
    if result.outcome == UpstreamOutcome.ERROR:
        return error_response(result.error, order_id=result.order_id)  # type: ignore[arg-type]
    body = result.model_dump(mode="json", exclude={"error"}, exclude_none=True)
    body["ok"] = True
    if result.outcome == UpstreamOutcome.NOT_FOUND:
        body["message"] = "Booking not found - it may have been cancelled or completed"
    return body
