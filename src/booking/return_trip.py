"""Return-trip linker: books the reversed leg of a confirmed outbound order."""

from __future__ import annotations

import logging
from datetime import datetime

from src.config.settings import Settings
from src.services.booker_client import OrderAdapter, passenger_item_from_request
from src.services.route_graph import build_return_graph
from src.shared.booking import BookingRequest
from src.shared.codec import to_epoch_seconds
from src.shared.notes import build_return_notes
from src.shared.response_models import OrderIdentity, ReturnTripResult
from src.shared.types import UpstreamOutcome

logger = logging.getLogger(__name__)


class ReturnTripLinker:
    """Submits the return leg as an independent order.

    Failures never propagate: they come back as a warning on an
    otherwise empty ``ReturnTripResult``.
    """

    def __init__(self, settings: Settings, client: OrderAdapter) -> None:
        """Initialize ReturnTripLinker.

        Args:
            settings: Application settings.
            client: Order adapter the return leg is submitted through.
        """
        self.settings = settings
        self.client = client

    async def book(
        self,
        outbound: OrderIdentity,
        request: BookingRequest,
        return_at: datetime | str,
    ) -> ReturnTripResult:
        """Book the return trip for a confirmed outbound order.

        Args:
            outbound: Identity of the confirmed outbound order.
            request: The outbound booking request (route and passenger).
            return_at: Return pickup instant.

        Returns:
            ReturnTripResult with the return identity, or a warning.
        """
        try:
            return_epoch = to_epoch_seconds(return_at)
        except ValueError:
            return self._warn(outbound, f"Invalid return time: {return_at}")

        notes = build_return_notes(outbound.order_id)
        graph = build_return_graph(
            outbound_pickup=request.pickup,
            outbound_dropoff=request.dropoff,
            return_epoch=return_epoch,
            notes=notes,
            fallback_lat=self.settings.fallback_lat,
            fallback_lng=self.settings.fallback_lng,
        )
        passenger = passenger_item_from_request(
            request,
            notes=notes,
            default_country_code=self.settings.default_country_code,
        )
        created = await self.client.create_order(graph, passenger)
        if created.outcome != UpstreamOutcome.SUCCESS or created.identity is None:
            reason = created.error.message if created.error else "unknown error"
            return self._warn(outbound, f"Return trip booking failed: {reason}")

        logger.info(
            "return_trip_booked",
            extra={
                "outbound_order_id": outbound.order_id,
                "return_order_id": created.identity.order_id,
            },
        )
        return ReturnTripResult(identity=created.identity)

    def _warn(self, outbound: OrderIdentity, warning: str) -> ReturnTripResult:
        logger.warning(
            "return_trip_failed",
            extra={"outbound_order_id": outbound.order_id, "warning": warning},
        )
        return ReturnTripResult(warning=warning)
