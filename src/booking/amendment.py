"""Amendment coordinator: in-place update first, cancel-and-rebook second.

The coordinator is an explicit state machine. Every step reports OK or
FAILED, and the next state is looked up in ``TRANSITIONS``:

    INIT ──ok──> TRY_DIRECT_UPDATE ──ok──> SUCCEEDED
      │                 │failed
      │failed           v
      v            TRY_PATCH ──ok──> SUCCEEDED
    FAILED              │failed
                        v
                  CANCEL_ORIGINAL ──failed──> FAILED
                        │ok
                        v
                   REBOOK_NEW ──ok──> SUCCEEDED
                        │failed
                        v
                  PARTIALLY_FAILED

Each step runs exactly once. The original order is never cancelled
before both update attempts have been exhausted.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from src.services.booker_client import OrderAdapter
from src.services.order_identity import OrderReference, resolve_order_reference
from src.services.token_provider import TokenProvider
from src.shared.booking import AmendmentRequest, BookingRequest
from src.shared.codec import has_coordinates, sanitize_text, to_epoch_seconds, to_provider_coords
from src.shared.errors import CredentialUnavailableError, InvalidTransitionError
from src.shared.response_models import (
    AmendmentResult,
    BookingError,
    CreateOrderResult,
    OrderIdentity,
)
from src.shared.types import (
    TERMINAL_AMENDMENT_STATES,
    AmendmentMethod,
    AmendmentState,
    ErrorKind,
    UpstreamOutcome,
)
from src.shared.validators import missing_booking_fields

logger = logging.getLogger(__name__)

AMEND_CANCEL_REASON = "Amended by customer - creating new booking"


class StepOutcome(str, enum.Enum):
    """Result of running the action for one state."""

    OK = "ok"
    FAILED = "failed"


TRANSITIONS: dict[tuple[AmendmentState, StepOutcome], AmendmentState] = {
    (AmendmentState.INIT, StepOutcome.OK): AmendmentState.TRY_DIRECT_UPDATE,
    (AmendmentState.INIT, StepOutcome.FAILED): AmendmentState.FAILED,
    (AmendmentState.TRY_DIRECT_UPDATE, StepOutcome.OK): AmendmentState.SUCCEEDED,
    (AmendmentState.TRY_DIRECT_UPDATE, StepOutcome.FAILED): AmendmentState.TRY_PATCH,
    (AmendmentState.TRY_PATCH, StepOutcome.OK): AmendmentState.SUCCEEDED,
    (AmendmentState.TRY_PATCH, StepOutcome.FAILED): AmendmentState.CANCEL_ORIGINAL,
    (AmendmentState.CANCEL_ORIGINAL, StepOutcome.OK): AmendmentState.REBOOK_NEW,
    (AmendmentState.CANCEL_ORIGINAL, StepOutcome.FAILED): AmendmentState.FAILED,
    (AmendmentState.REBOOK_NEW, StepOutcome.OK): AmendmentState.SUCCEEDED,
    (AmendmentState.REBOOK_NEW, StepOutcome.FAILED): AmendmentState.PARTIALLY_FAILED,
}

SubmitBooking = Callable[[BookingRequest], Awaitable[CreateOrderResult]]


def next_state(state: AmendmentState, outcome: StepOutcome) -> AmendmentState:
    """Look up the transition for a step outcome.

    Raises:
        InvalidTransitionError: If the pair has no defined transition.
    """
    try:
        return TRANSITIONS[(state, outcome)]
    except KeyError:
        raise InvalidTransitionError(
            f"No transition from {state.value} on {outcome.value}",
        ) from None


def build_update_payload(amendment: AmendmentRequest, company_id: int) -> dict[str, Any]:
    """Changed fields only, for the in-place update attempts.

    Args:
        amendment: Requested changes.
        company_id: Booker company id.

    Returns:
        Update document with ``company_id`` plus any supplied fields.
    """
    payload: dict[str, Any] = {"company_id": company_id}
    for key in ("pickup", "dropoff"):
        location = getattr(amendment, key)
        if location is None:
            continue
        entry: dict[str, Any] = {"address": sanitize_text(location.address, 200)}
        if has_coordinates(location.lat, location.lng):
            entry["coords"] = list(to_provider_coords(location.lat, location.lng))  # type: ignore[arg-type]
        payload[key] = entry
    if amendment.pickup_at is not None:
        payload["pickup_time"] = to_epoch_seconds(amendment.pickup_at)
    if amendment.passenger is not None:
        payload["passenger"] = amendment.passenger.model_dump()
    if amendment.seats is not None:
        payload["seats"] = amendment.seats
    if amendment.luggage is not None:
        payload["luggage"] = amendment.luggage
    if amendment.notes:
        payload["notes"] = sanitize_text(amendment.notes, 500)
    return payload


@dataclass
class AmendmentAttempt:
    """Mutable record of one amendment run."""

    amendment: AmendmentRequest
    state: AmendmentState = AmendmentState.INIT
    history: list[AmendmentState] = field(default_factory=lambda: [AmendmentState.INIT])
    reference: OrderReference | None = None
    method: AmendmentMethod | None = None
    new_identity: OrderIdentity | None = None
    original_cancelled: bool = False
    error: BookingError | None = None


class AmendmentCoordinator:
    """Runs one amendment through the state machine.

    Attributes:
        client: Order adapter used for update, cancel and status calls.
        submit_booking: Builds and submits a full replacement booking.
        company_id: Booker company id for update and cancel payloads.
    """

    def __init__(
        self,
        client: OrderAdapter,
        submit_booking: SubmitBooking,
        *,
        company_id: int,
        token_provider: TokenProvider | None = None,
    ) -> None:
        """Initialize AmendmentCoordinator.

        Args:
            client: Order adapter.
            submit_booking: Coroutine submitting a full booking request.
            company_id: Booker company id.
            token_provider: Checked once in INIT; None skips the check.
        """
        self.client = client
        self.submit_booking = submit_booking
        self.company_id = company_id
        self.token_provider = token_provider

    async def run(self, amendment: AmendmentRequest) -> AmendmentResult:
        """Drive the amendment to a terminal state.

        Args:
            amendment: Target identifiers and requested changes.

        Returns:
            AmendmentResult carrying the terminal state and history.
        """
        attempt = AmendmentAttempt(amendment=amendment)
        steps = {
            AmendmentState.INIT: self._init,
            AmendmentState.TRY_DIRECT_UPDATE: self._try_put,
            AmendmentState.TRY_PATCH: self._try_patch,
            AmendmentState.CANCEL_ORIGINAL: self._cancel_original,
            AmendmentState.REBOOK_NEW: self._rebook_new,
        }
        while attempt.state not in TERMINAL_AMENDMENT_STATES:
            step = steps[attempt.state]
            try:
                outcome = await step(attempt)
            except asyncio.CancelledError:
                logger.warning(
                    "amendment_cancelled",
                    extra={
                        "state": attempt.state.value,
                        "original_cancelled": attempt.original_cancelled,
                    },
                )
                raise
            previous = attempt.state
            attempt.state = next_state(previous, outcome)
            attempt.history.append(attempt.state)
            logger.info(
                "amendment_transition",
                extra={
                    "from_state": previous.value,
                    "to_state": attempt.state.value,
                    "outcome": outcome.value,
                },
            )
        return self._result(attempt)

    async def _init(self, attempt: AmendmentAttempt) -> StepOutcome:
        reference = resolve_order_reference(
            attempt.amendment.order_id,
            attempt.amendment.job_id,
        )
        if isinstance(reference, BookingError):
            attempt.error = reference
            return StepOutcome.FAILED
        attempt.reference = reference
        if self.token_provider is not None:
            try:
                await self.token_provider.get_token()
            except CredentialUnavailableError as exc:
                attempt.error = BookingError(
                    kind=ErrorKind.CREDENTIAL_UNAVAILABLE,
                    message=exc.message,
                    status_code=exc.status_code,
                )
                return StepOutcome.FAILED
        return StepOutcome.OK

    async def _try_put(self, attempt: AmendmentAttempt) -> StepOutcome:
        return await self._try_update(attempt, "PUT")

    async def _try_patch(self, attempt: AmendmentAttempt) -> StepOutcome:
        return await self._try_update(attempt, "PATCH")

    async def _try_update(self, attempt: AmendmentAttempt, method: str) -> StepOutcome:
        payload = build_update_payload(attempt.amendment, self.company_id)
        result = await self.client.update_order(
            attempt.reference.api_id,  # type: ignore[union-attr]
            payload,
            method=method,
        )
        if result.accepted:
            attempt.method = AmendmentMethod.DIRECT_UPDATE
            return StepOutcome.OK
        return StepOutcome.FAILED

    async def _cancel_original(self, attempt: AmendmentAttempt) -> StepOutcome:
        """Cancel the original, but only when a valid replacement can be built."""
        replacement = attempt.amendment.to_booking_request()
        if replacement is None:
            attempt.error = BookingError(
                kind=ErrorKind.VALIDATION_FAILED,
                message=(
                    "In-place update was not accepted and the amendment lacks "
                    "pickup, dropoff or passenger needed to rebook"
                ),
            )
            return StepOutcome.FAILED
        missing = missing_booking_fields(replacement)
        if missing:
            attempt.error = BookingError(
                kind=ErrorKind.VALIDATION_FAILED,
                message=(
                    "In-place update was not accepted and the replacement booking "
                    f"is missing required fields: {', '.join(missing)}"
                ),
            )
            return StepOutcome.FAILED
        result = await self.client.cancel_order(
            attempt.reference.api_id,  # type: ignore[union-attr]
            AMEND_CANCEL_REASON,
        )
        if result.outcome == UpstreamOutcome.CANCELLED:
            attempt.original_cancelled = True
            return StepOutcome.OK
        attempt.error = result.error
        return StepOutcome.FAILED

    async def _rebook_new(self, attempt: AmendmentAttempt) -> StepOutcome:
        replacement = attempt.amendment.to_booking_request()
        created = await self.submit_booking(replacement)  # type: ignore[arg-type]
        if created.outcome == UpstreamOutcome.SUCCESS and created.identity is not None:
            attempt.new_identity = created.identity
            attempt.method = AmendmentMethod.CANCEL_AND_REBOOK
            return StepOutcome.OK
        reason = created.error.message if created.error else "Replacement booking failed"
        attempt.error = BookingError(
            kind=ErrorKind.PARTIALLY_FAILED,
            message=(
                f"Original booking {attempt.reference.display_id} was cancelled "  # type: ignore[union-attr]
                f"but the replacement failed: {reason}"
            ),
            status_code=created.error.status_code if created.error else None,
            cause=created.error.kind.value if created.error else None,
            details=created.error.details if created.error else None,
        )
        logger.error(
            "amendment_partially_failed",
            extra={"original_order_id": attempt.reference.api_id},  # type: ignore[union-attr]
        )
        return StepOutcome.FAILED

    def _result(self, attempt: AmendmentAttempt) -> AmendmentResult:
        reference = attempt.reference
        original_order_id = reference.api_id if reference else attempt.amendment.order_id
        original_job_id = reference.display_id if reference else attempt.amendment.job_id
        if attempt.state == AmendmentState.SUCCEEDED:
            if attempt.new_identity is not None:
                order_id = attempt.new_identity.order_id
                job_id = attempt.new_identity.job_id
            else:
                order_id, job_id = original_order_id, original_job_id
            return AmendmentResult(
                ok=True,
                state=attempt.state,
                method=attempt.method,
                order_id=order_id,
                job_id=job_id,
                original_order_id=original_order_id,
                original_job_id=original_job_id,
                original_cancelled=attempt.original_cancelled,
                history=attempt.history,
            )
        return AmendmentResult(
            ok=False,
            state=attempt.state,
            original_order_id=original_order_id,
            original_job_id=original_job_id,
            original_cancelled=attempt.original_cancelled,
            history=attempt.history,
            error=attempt.error,
        )
