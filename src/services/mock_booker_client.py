"""Mock Booker client for local development and demos.

Enabled with ``MOCK_BOOKING=true``. Returns deterministic fake data
without touching the network or the token endpoint.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from src.config.settings import Settings
from src.services.booker_client import BookerClient, OrderAdapter, PassengerItem
from src.services.route_graph import RouteGraph
from src.services.token_provider import TokenProvider
from src.shared.response_models import (
    CancelResult,
    CreateOrderResult,
    OrderIdentity,
    StatusResult,
    UpdateResult,
)
from src.shared.types import BookingStatus, UpstreamOutcome

logger = logging.getLogger(__name__)


class MockBookerClient:
    """Mock order adapter returning fake identifiers.

    Orders created here are remembered so status and cancel behave
    consistently within one process.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize MockBookerClient.

        Args:
            settings: Application settings (for document shape only).
        """
        self.settings = settings
        self._orders: dict[str, BookingStatus] = {}
        self._next_job = 100000

    def build_order_document(
        self,
        graph: RouteGraph,
        passenger: PassengerItem,
    ) -> dict[str, Any]:
        """Same document shape as the real adapter."""
        return {
            "order": {
                "company_id": self.settings.booker_company_id,
                "provider_id": self.settings.effective_provider_id,
                "items": [passenger.to_wire()],
                "route": graph.to_wire(),
            },
        }

    async def create_order(
        self,
        graph: RouteGraph,
        passenger: PassengerItem,
    ) -> CreateOrderResult:
        """Pretend to submit an order.

        Args:
            graph: Route graph.
            passenger: Passenger item.

        Returns:
            CreateOrderResult with a fake hex order id and numeric job id.
        """
        order_id = uuid.uuid4().hex[:16]
        self._next_job += 1
        job_id = str(self._next_job)
        self._orders[order_id] = BookingStatus.PENDING
        logger.info(
            "mock_order_created",
            extra={"order_id": order_id, "job_id": job_id, "nodes": len(graph.nodes)},
        )
        return CreateOrderResult(
            outcome=UpstreamOutcome.SUCCESS,
            identity=OrderIdentity(order_id=order_id, job_id=job_id),
        )

    async def get_status(self, order_id: str) -> StatusResult:
        """Report the remembered status, NOT_FOUND for unknown ids."""
        status = self._orders.get(order_id)
        if status is None:
            return StatusResult(outcome=UpstreamOutcome.NOT_FOUND, order_id=order_id)
        outcome = (
            UpstreamOutcome.CANCELLED
            if status == BookingStatus.CANCELLED
            else UpstreamOutcome.SUCCESS
        )
        return StatusResult(
            outcome=outcome,
            order_id=order_id,
            status=status,
            upstream_state=status.value,
        )

    async def cancel_order(self, order_id: str, reason: str = "") -> CancelResult:
        """Mark a remembered order cancelled. Unknown ids are already gone."""
        if order_id not in self._orders:
            return CancelResult(
                outcome=UpstreamOutcome.CANCELLED,
                order_id=order_id,
                already_gone=True,
                message="Booking not found or already cancelled",
            )
        self._orders[order_id] = BookingStatus.CANCELLED
        return CancelResult(
            outcome=UpstreamOutcome.CANCELLED,
            order_id=order_id,
            message="Booking cancelled successfully",
        )

    async def update_order(
        self,
        order_id: str,
        changes: dict[str, Any],
        *,
        method: str = "PUT",
    ) -> UpdateResult:
        """Accept in-place updates for remembered orders only."""
        if self._orders.get(order_id) in (None, BookingStatus.CANCELLED):
            return UpdateResult(accepted=False, method=method, status_code=404)
        return UpdateResult(
            accepted=True,
            method=method,
            status_code=200,
            body={"order_id": order_id, "updated": sorted(changes)},
        )


def get_booker_client(
    settings: Settings,
    token_provider: TokenProvider,
) -> OrderAdapter:
    """Return the mock client when ``mock_booking`` is on, else the real one.

    Args:
        settings: Application settings.
        token_provider: Shared bearer token provider.

    Returns:
        An order adapter.
    """
    if settings.mock_booking:
        logger.info("using_mock_booker_client")
        return MockBookerClient(settings)
    return BookerClient(settings, token_provider)
