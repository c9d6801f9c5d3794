"""Booking service: the outward create/amend/cancel/status/return contract.

Route handlers call into one ``BookingService`` per process. It owns
the order adapter, the amendment coordinator and the return-trip
linker, and turns booking requests into route graphs and passenger
items on the way down.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from src.booking.amendment import AmendmentCoordinator
from src.booking.return_trip import ReturnTripLinker
from src.config.settings import Settings
from src.services.booker_client import (
    DEFAULT_CANCEL_REASON,
    OrderAdapter,
    passenger_item_from_request,
)
from src.services.mock_booker_client import get_booker_client
from src.services.order_identity import resolve_order_reference
from src.services.route_graph import build_route_graph
from src.services.token_provider import TokenProvider
from src.shared.booking import AmendmentRequest, BookingRequest, Location
from src.shared.codec import sanitize_text, to_epoch_seconds
from src.shared.notes import build_booking_notes
from src.shared.response_models import (
    AmendmentResult,
    BookingConfirmation,
    BookingError,
    CancelResult,
    CreateOrderResult,
    OrderIdentity,
    ReturnTripResult,
    StatusResult,
)
from src.shared.types import ErrorKind, TimingIntent, UpstreamOutcome
from src.shared.validators import count_droppable_stops, missing_booking_fields

logger = logging.getLogger(__name__)


class BookingService:
    """Facade over the Booker order engine.

    Attributes:
        settings: Application settings.
        token_provider: Shared bearer token provider.
        client: Order adapter (live or mock).
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: TokenProvider,
        client: OrderAdapter | None = None,
    ) -> None:
        """Initialize BookingService.

        Args:
            settings: Application settings.
            token_provider: Shared bearer token provider.
            client: Order adapter; defaults to the one selected by settings.
        """
        self.settings = settings
        self.token_provider = token_provider
        self.client = client if client is not None else get_booker_client(settings, token_provider)
        self.return_linker = ReturnTripLinker(settings, self.client)
        self._background: set[asyncio.Task] = set()

    async def create_booking(self, request: BookingRequest) -> BookingConfirmation:
        """Validate, submit, and optionally link a return trip.

        Args:
            request: Outbound booking request.

        Returns:
            BookingConfirmation. A failed return trip leaves ``ok`` True
            with a warning and no return identifiers.
        """
        missing = missing_booking_fields(request)
        if missing:
            return BookingConfirmation(
                ok=False,
                error=BookingError(
                    kind=ErrorKind.VALIDATION_FAILED,
                    message=f"Missing required fields: {', '.join(missing)}",
                ),
            )
        dropped = count_droppable_stops(request)
        if dropped:
            logger.warning("stops_dropped", extra={"count": dropped})

        created = await self.submit(request)
        if created.outcome != UpstreamOutcome.SUCCESS or created.identity is None:
            return BookingConfirmation(ok=False, error=created.error)

        identity = created.identity
        confirmation = BookingConfirmation(
            ok=True,
            order_id=identity.order_id,
            job_id=identity.job_id,
            raw=created.raw,
        )
        if request.return_trip and request.return_at is not None:
            if self.settings.return_trip_in_background:
                self._schedule_return(identity, request, request.return_at)
            else:
                linked = await self.book_return_trip(identity, request, request.return_at)
                if linked.identity is not None:
                    confirmation.return_order_id = linked.identity.order_id
                    confirmation.return_job_id = linked.identity.job_id
                confirmation.warning = linked.warning
        return confirmation

    async def submit(self, request: BookingRequest) -> CreateOrderResult:
        """Build graph and passenger item for a request and submit it.

        Args:
            request: Booking request (assumed complete).

        Returns:
            CreateOrderResult from the order adapter.
        """
        pickup_epoch = 0
        if request.timing.intent == TimingIntent.SCHEDULED and request.timing.at is not None:
            pickup_epoch = to_epoch_seconds(request.timing.at)
        notes = build_booking_notes(request)
        graph = build_route_graph(
            pickup=_sanitized(request.pickup),
            dropoff=_sanitized(request.dropoff),
            stops=[_sanitized(s) for s in request.stops],
            notes=notes,
            pickup_epoch=pickup_epoch,
            stop_action_mode=self.settings.stop_action_mode,
            fallback_lat=self.settings.fallback_lat,
            fallback_lng=self.settings.fallback_lng,
        )
        passenger = passenger_item_from_request(
            request,
            notes=notes,
            default_country_code=self.settings.default_country_code,
        )
        return await self.client.create_order(graph, passenger)

    async def amend_booking(self, amendment: AmendmentRequest) -> AmendmentResult:
        """Apply changes via in-place update, falling back to cancel-and-rebook.

        Args:
            amendment: Target identifiers and requested changes.

        Returns:
            AmendmentResult; ``state`` is ``partially_failed`` when the
            original was cancelled and no replacement exists.
        """
        coordinator = AmendmentCoordinator(
            self.client,
            self.submit,
            company_id=self.settings.booker_company_id,
            token_provider=None if self.settings.mock_booking else self.token_provider,
        )
        return await coordinator.run(amendment)

    async def cancel_booking(
        self,
        order_id: str | None,
        job_id: str | None = None,
        reason: str | None = None,
    ) -> CancelResult:
        """Cancel a booking by order id (preferred) or job id.

        Args:
            order_id: Hex order id.
            job_id: Numeric job id, used only without an order id.
            reason: Cancellation reason.

        Returns:
            CancelResult; an unknown order counts as already cancelled.
        """
        reference = resolve_order_reference(order_id, job_id)
        if isinstance(reference, BookingError):
            return CancelResult(
                outcome=UpstreamOutcome.ERROR,
                order_id=order_id or job_id or "",
                error=reference,
            )
        return await self.client.cancel_order(
            reference.api_id,
            sanitize_text(reason, 500) or DEFAULT_CANCEL_REASON,
        )

    async def get_booking_status(
        self,
        order_id: str | None,
        job_id: str | None = None,
    ) -> StatusResult:
        """Look up the current status of a booking.

        Args:
            order_id: Hex order id.
            job_id: Numeric job id, used only without an order id.

        Returns:
            StatusResult with a normalized status.
        """
        reference = resolve_order_reference(order_id, job_id)
        if isinstance(reference, BookingError):
            return StatusResult(
                outcome=UpstreamOutcome.ERROR,
                order_id=order_id or job_id or "",
                error=reference,
            )
        return await self.client.get_status(reference.api_id)

    async def book_return_trip(
        self,
        outbound: OrderIdentity,
        request: BookingRequest,
        return_at: datetime | str,
    ) -> ReturnTripResult:
        """Book the reversed leg of a confirmed outbound order.

        Never raises for upstream failures; those come back as a warning.
        """
        try:
            return await self.return_linker.book(outbound, request, return_at)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception(
                "return_trip_unexpected_error",
                extra={"outbound_order_id": outbound.order_id},
            )
            return ReturnTripResult(warning=f"Return trip booking failed: {exc}")

    def _schedule_return(
        self,
        outbound: OrderIdentity,
        request: BookingRequest,
        return_at: datetime,
    ) -> None:
        task = asyncio.create_task(self.book_return_trip(outbound, request, return_at))
        self._background.add(task)
        task.add_done_callback(self._on_return_done)

    def _on_return_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        result = task.result()
        logger.info(
            "background_return_trip_done",
            extra={
                "return_order_id": result.identity.order_id if result.identity else None,
                "warning": result.warning,
            },
        )

    async def drain(self) -> None:
        """Wait for background return-trip tasks to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)


def _sanitized(location: Location) -> Location:
    return location.model_copy(update={"address": sanitize_text(location.address, 200)})
