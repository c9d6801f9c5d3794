"""Pydantic result models returned by every engine operation.

Each model is the typed contract for one operation, replacing raw
dict returns with validated Pydantic models. Upstream failures are
carried in an ``error`` field rather than raised.
"""

from typing import Any

from pydantic import BaseModel

from src.shared.types import (
    AmendmentMethod,
    AmendmentState,
    BookingStatus,
    ErrorKind,
    UpstreamOutcome,
)


class BookingError(BaseModel):
    """Typed failure with a human-readable message.

    Attributes:
        kind: Error taxonomy member.
        message: Human-readable explanation.
        status_code: Upstream HTTP status, when one was received.
        cause: Underlying cause code for transport failures.
        details: Raw upstream payload (non-production only).
    """

    kind: ErrorKind
    message: str
    status_code: int | None = None
    cause: str | None = None
    details: Any = None


class OrderIdentity(BaseModel):
    """Both identifiers of one booking.

    ``order_id`` is the opaque hex id used for state-changing calls;
    ``job_id`` is the numeric id shown to customers and dispatchers.
    ``synthesized`` is True when one was filled in from the other.
    """

    order_id: str
    job_id: str
    synthesized: bool = False


class CreateOrderResult(BaseModel):
    """Result of submitting a new order."""

    outcome: UpstreamOutcome
    identity: OrderIdentity | None = None
    error: BookingError | None = None
    raw: Any = None


class DriverInfo(BaseModel):
    """Assigned driver and vehicle, when the upstream reports one."""

    name: str | None = None
    phone: str | None = None
    vehicle_reg: str | None = None
    vehicle_model: str | None = None
    eta_minutes: int | None = None


class StatusResult(BaseModel):
    """Result of an order status lookup."""

    outcome: UpstreamOutcome
    order_id: str
    status: BookingStatus = BookingStatus.UNKNOWN
    upstream_state: str | None = None
    driver: DriverInfo | None = None
    error: BookingError | None = None


class CancelResult(BaseModel):
    """Result of a cancellation. 404 counts as already cancelled."""

    outcome: UpstreamOutcome
    order_id: str
    already_gone: bool = False
    message: str = ""
    error: BookingError | None = None


class UpdateResult(BaseModel):
    """Result of one in-place update attempt (PUT or PATCH)."""

    accepted: bool
    method: str
    status_code: int | None = None
    body: Any = None
    error: BookingError | None = None


class ReturnTripResult(BaseModel):
    """Result of the linked return booking.

    A failure leaves ``identity`` empty and explains itself in
    ``warning``; it never fails the outbound booking.
    """

    identity: OrderIdentity | None = None
    warning: str | None = None


class BookingConfirmation(BaseModel):
    """Outward result of ``BookingService.create_booking``."""

    ok: bool
    order_id: str | None = None
    job_id: str | None = None
    return_order_id: str | None = None
    return_job_id: str | None = None
    warning: str | None = None
    error: BookingError | None = None
    raw: Any = None


class AmendmentResult(BaseModel):
    """Outward result of ``BookingService.amend_booking``.

    ``original_cancelled`` records whether the original order was
    confirmed cancelled. ``state`` is the coordinator's terminal state;
    ``partially_failed`` means the original is gone with no replacement.
    """

    ok: bool
    state: AmendmentState
    method: AmendmentMethod | None = None
    order_id: str | None = None
    job_id: str | None = None
    original_order_id: str | None = None
    original_job_id: str | None = None
    original_cancelled: bool = False
    history: list[AmendmentState] = []
    error: BookingError | None = None
