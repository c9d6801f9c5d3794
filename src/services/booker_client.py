"""Booker API order adapter: create, status, cancel, and in-place update.

Builds the order document (passenger item plus route graph) and runs
each call through one exchange path that attaches the bearer token,
applies the request timeout, and converts every failure into a typed
``BookingError`` via the error classifier.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from src.config.settings import Settings
from src.services.error_classifier import (
    classify_failure,
    classify_transport_error,
    looks_like_html,
    parse_json_body,
)
from src.services.order_identity import parse_order_identity
from src.services.route_graph import RouteGraph
from src.services.token_provider import TokenProvider
from src.shared.booking import BookingRequest
from src.shared.codec import normalize_phone, sanitize_text
from src.shared.errors import CredentialUnavailableError
from src.shared.response_models import (
    BookingError,
    CancelResult,
    CreateOrderResult,
    DriverInfo,
    StatusResult,
    UpdateResult,
)
from src.shared.types import BookingStatus, ErrorKind, UpstreamOutcome

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Cancelled by customer via web booking"

_STATE_MAP: dict[str, BookingStatus] = {
    "pending": BookingStatus.PENDING,
    "new": BookingStatus.PENDING,
    "booked": BookingStatus.PENDING,
    "scheduled": BookingStatus.PENDING,
    "queued": BookingStatus.PENDING,
    "waiting": BookingStatus.PENDING,
    "assigned": BookingStatus.ASSIGNED,
    "accepted": BookingStatus.ASSIGNED,
    "dispatched": BookingStatus.ASSIGNED,
    "allocated": BookingStatus.ASSIGNED,
    "on_the_way": BookingStatus.EN_ROUTE,
    "en_route": BookingStatus.EN_ROUTE,
    "enroute": BookingStatus.EN_ROUTE,
    "driving": BookingStatus.EN_ROUTE,
    "approaching": BookingStatus.EN_ROUTE,
    "arrived": BookingStatus.ARRIVED,
    "at_pickup": BookingStatus.ARRIVED,
    "in_progress": BookingStatus.IN_PROGRESS,
    "inprogress": BookingStatus.IN_PROGRESS,
    "on_board": BookingStatus.IN_PROGRESS,
    "passenger_on_board": BookingStatus.IN_PROGRESS,
    "started": BookingStatus.IN_PROGRESS,
    "completed": BookingStatus.COMPLETED,
    "complete": BookingStatus.COMPLETED,
    "finished": BookingStatus.COMPLETED,
    "done": BookingStatus.COMPLETED,
    "cancelled": BookingStatus.CANCELLED,
    "canceled": BookingStatus.CANCELLED,
    "aborted": BookingStatus.CANCELLED,
    "rejected": BookingStatus.CANCELLED,
}


def map_job_state(state: str | None) -> BookingStatus:
    """Map an upstream job state to the fixed status vocabulary.

    Args:
        state: Upstream state string, any case and separator style.

    Returns:
        BookingStatus, UNKNOWN for unrecognized states.
    """
    if not state:
        return BookingStatus.UNKNOWN
    key = state.strip().lower().replace("-", "_").replace(" ", "_")
    return _STATE_MAP.get(key, BookingStatus.UNKNOWN)


@dataclass
class PassengerItem:
    """The single passenger item of an order.

    Attributes:
        name: Passenger display name.
        phone: E.164 phone number.
        email: Optional email.
        seats: Seats required.
        bags: Luggage count.
        wheelchairs: Wheelchair spaces required.
        account_id: Customer account to bill, None for a cash guest booking.
        notes: Driver notes for the item.
    """

    name: str
    phone: str
    email: str = ""
    seats: int = 1
    bags: int = 0
    wheelchairs: int = 0
    account_id: int | None = None
    notes: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the Booker ``passengers`` item."""
        item: dict[str, Any] = {
            "@type": "passengers",
            "seq": 0,
            "passenger": {"name": self.name, "phone": self.phone, "email": self.email},
            "client_id": None,
            "account": (
                {"id": self.account_id, "extra": None}
                if self.account_id is not None
                else None
            ),
            "require": {"seats": self.seats, "wc": self.wheelchairs, "bags": self.bags},
            "pay_info": [{"@t": 0, "data": None}],
        }
        if self.notes:
            item["info"] = {"all": self.notes}
        return item


def passenger_item_from_request(
    request: BookingRequest,
    *,
    notes: str,
    default_country_code: str,
) -> PassengerItem:
    """Build a sanitized passenger item from a booking request.

    Args:
        request: Booking request.
        notes: Merged notes for the item.
        default_country_code: Calling code for phone normalization.

    Returns:
        PassengerItem ready for submission.
    """
    phone = normalize_phone(sanitize_text(request.passenger.phone, 20), default_country_code)
    return PassengerItem(
        name=sanitize_text(request.passenger.name, 100) or "Passenger",
        phone=phone,
        email=sanitize_text(request.passenger.email, 100),
        seats=max(request.seats, 1),
        bags=max(request.luggage, 0),
        account_id=request.account_id,
        notes=notes,
    )


@dataclass
class _Exchange:
    """One completed HTTP exchange with its parsed body."""

    status: int
    raw: str
    parsed_ok: bool
    parsed: Any = field(default=None)

    @property
    def is_success(self) -> bool:
        """True for any 2xx status."""
        return 200 <= self.status < 300


class OrderAdapter(Protocol):
    """Order operations shared by the live and mock Booker clients."""

    def build_order_document(
        self,
        graph: RouteGraph,
        passenger: PassengerItem,
    ) -> dict[str, Any]: ...

    async def create_order(
        self,
        graph: RouteGraph,
        passenger: PassengerItem,
    ) -> CreateOrderResult: ...

    async def get_status(self, order_id: str) -> StatusResult: ...

    async def cancel_order(self, order_id: str, reason: str = ...) -> CancelResult: ...

    async def update_order(
        self,
        order_id: str,
        changes: dict[str, Any],
        *,
        method: str = ...,
    ) -> UpdateResult: ...


class BookerClient:
    """Order adapter for the Booker API.

    Attributes:
        settings: Application settings.
        token_provider: Shared bearer token provider.
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: TokenProvider,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize BookerClient.

        Args:
            settings: Application settings.
            token_provider: Shared bearer token provider.
            transport: Optional httpx transport (tests inject a mock).
        """
        self.settings = settings
        self.token_provider = token_provider
        self._transport = transport

    def build_order_document(
        self,
        graph: RouteGraph,
        passenger: PassengerItem,
    ) -> dict[str, Any]:
        """Assemble the full create-order document.

        Args:
            graph: Route graph (nodes and legs).
            passenger: Passenger item.

        Returns:
            JSON-ready order document.
        """
        order: dict[str, Any] = {
            "company_id": self.settings.booker_company_id,
            "provider_id": self.settings.effective_provider_id,
            "items": [passenger.to_wire()],
            "route": graph.to_wire(),
        }
        if passenger.notes:
            order["info"] = {"all": passenger.notes}
        return {"order": order}

    async def create_order(
        self,
        graph: RouteGraph,
        passenger: PassengerItem,
    ) -> CreateOrderResult:
        """Submit a new order.

        Args:
            graph: Route graph.
            passenger: Passenger item.

        Returns:
            CreateOrderResult with both identifiers on success.
        """
        document = self.build_order_document(graph, passenger)
        logger.debug("booker_order_payload", extra={"payload": document})
        exchange = await self._exchange("POST", "/order", json=document)
        if isinstance(exchange, BookingError):
            return CreateOrderResult(outcome=UpstreamOutcome.ERROR, error=exchange)

        if not exchange.is_success or looks_like_html(exchange.raw) or not exchange.parsed_ok:
            error = self._classify(exchange)
            logger.warning(
                "booker_order_failed",
                extra={"status": exchange.status, "kind": error.kind.value},
            )
            return CreateOrderResult(outcome=UpstreamOutcome.ERROR, error=error)

        identity = parse_order_identity(exchange.parsed)
        if isinstance(identity, BookingError):
            if self.settings.expose_upstream_details:
                identity.details = exchange.parsed
            return CreateOrderResult(outcome=UpstreamOutcome.ERROR, error=identity)

        logger.info(
            "booker_order_created",
            extra={"order_id": identity.order_id, "job_id": identity.job_id},
        )
        return CreateOrderResult(
            outcome=UpstreamOutcome.SUCCESS,
            identity=identity,
            raw=exchange.parsed if self.settings.expose_upstream_details else None,
        )

    async def get_status(self, order_id: str) -> StatusResult:
        """Look up the current job state of an order.

        A 404 is a valid not-found outcome: the upstream removes
        cancelled and expired jobs.

        Args:
            order_id: Order identifier.

        Returns:
            StatusResult with a normalized status.
        """
        exchange = await self._exchange("GET", f"/order/{order_id}/status")
        if isinstance(exchange, BookingError):
            return StatusResult(outcome=UpstreamOutcome.ERROR, order_id=order_id, error=exchange)
        if exchange.status == 404:
            return StatusResult(outcome=UpstreamOutcome.NOT_FOUND, order_id=order_id)
        if not exchange.is_success or looks_like_html(exchange.raw) or not exchange.parsed_ok:
            return StatusResult(
                outcome=UpstreamOutcome.ERROR,
                order_id=order_id,
                error=self._classify(exchange),
            )

        body = exchange.parsed if isinstance(exchange.parsed, dict) else {}
        order_status = body.get("order_status") if isinstance(body.get("order_status"), dict) else {}
        upstream_state = (
            _nested(order_status, "job", "state")
            or _nested(order_status, "state", "state")
            or body.get("status")
            or "pending"
        )
        status = map_job_state(str(upstream_state))
        outcome = (
            UpstreamOutcome.CANCELLED
            if status == BookingStatus.CANCELLED
            else UpstreamOutcome.SUCCESS
        )
        return StatusResult(
            outcome=outcome,
            order_id=order_id,
            status=status,
            upstream_state=str(upstream_state),
            driver=_driver_info(order_status),
        )

    async def cancel_order(
        self,
        order_id: str,
        reason: str = DEFAULT_CANCEL_REASON,
    ) -> CancelResult:
        """Cancel an order. A 404 is idempotent success.

        Args:
            order_id: Order identifier (hex order id preferred).
            reason: Cancellation reason sent upstream.

        Returns:
            CancelResult with outcome CANCELLED on success.
        """
        payload = {"company_id": self.settings.booker_company_id, "reason": reason}
        exchange = await self._exchange("POST", f"/order/{order_id}/cancel", json=payload)
        if isinstance(exchange, BookingError):
            return CancelResult(outcome=UpstreamOutcome.ERROR, order_id=order_id, error=exchange)
        if exchange.status == 404:
            logger.info("booker_cancel_already_gone", extra={"order_id": order_id})
            return CancelResult(
                outcome=UpstreamOutcome.CANCELLED,
                order_id=order_id,
                already_gone=True,
                message="Booking not found or already cancelled",
            )
        if not exchange.is_success or looks_like_html(exchange.raw):
            error = self._classify(exchange)
            logger.warning(
                "booker_cancel_failed",
                extra={"order_id": order_id, "status": exchange.status},
            )
            return CancelResult(outcome=UpstreamOutcome.ERROR, order_id=order_id, error=error)

        message = "Booking cancelled successfully"
        if isinstance(exchange.parsed, dict) and isinstance(exchange.parsed.get("message"), str):
            message = exchange.parsed["message"]
        logger.info("booker_order_cancelled", extra={"order_id": order_id})
        return CancelResult(outcome=UpstreamOutcome.CANCELLED, order_id=order_id, message=message)

    async def update_order(
        self,
        order_id: str,
        changes: dict[str, Any],
        *,
        method: str = "PUT",
    ) -> UpdateResult:
        """Attempt an in-place update. Not guaranteed to be supported.

        Accepted only on a 2xx status with a JSON body; an HTML page
        or an empty body with 2xx is not an acceptance.

        Args:
            order_id: Order identifier.
            changes: Changed fields only.
            method: ``PUT`` or ``PATCH``.

        Returns:
            UpdateResult with ``accepted`` set on success.
        """
        exchange = await self._exchange(method, f"/order/{order_id}", json=changes)
        if isinstance(exchange, BookingError):
            return UpdateResult(accepted=False, method=method, error=exchange)
        accepted = (
            exchange.is_success
            and not looks_like_html(exchange.raw)
            and exchange.parsed_ok
            and exchange.parsed is not None
        )
        logger.info(
            "booker_update_attempted",
            extra={"order_id": order_id, "method": method, "status": exchange.status, "accepted": accepted},
        )
        if accepted:
            return UpdateResult(
                accepted=True,
                method=method,
                status_code=exchange.status,
                body=exchange.parsed,
            )
        return UpdateResult(
            accepted=False,
            method=method,
            status_code=exchange.status,
            error=self._classify(exchange),
        )

    async def _exchange(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> _Exchange | BookingError:
        """Send one authenticated request and read the body.

        Args:
            method: HTTP method.
            path: Path under the Booker base URL.
            json: Optional JSON body.

        Returns:
            _Exchange on any HTTP response, BookingError when no
            response was received.
        """
        try:
            token = await self.token_provider.get_token()
        except CredentialUnavailableError as exc:
            return BookingError(
                kind=ErrorKind.CREDENTIAL_UNAVAILABLE,
                message=exc.message,
                status_code=exc.status_code,
            )

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "x-api-key": self.settings.booker_api_key,
        }
        url = f"{self.settings.booker_base_url}{path}"
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.booker_request_timeout_seconds,
            ) as client:
                response = await client.request(method, url, json=json, headers=headers)
        except httpx.TransportError as exc:
            error = classify_transport_error(exc)
            logger.warning(
                "booker_transport_error",
                extra={"path": path, "cause": error.cause},
            )
            return error

        if response.status_code == 401:
            self.token_provider.invalidate()
        raw = response.text
        parsed_ok, parsed = parse_json_body(raw)
        return _Exchange(status=response.status_code, raw=raw, parsed_ok=parsed_ok, parsed=parsed)

    def _classify(self, exchange: _Exchange) -> BookingError:
        return classify_failure(
            exchange.status,
            exchange.raw,
            exchange.parsed,
            parsed_ok=exchange.parsed_ok,
            include_details=self.settings.expose_upstream_details,
        )


def _nested(source: dict, *keys: str) -> Any:
    current: Any = source
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _driver_info(order_status: dict) -> DriverInfo | None:
    resource = order_status.get("resource")
    if not isinstance(resource, dict):
        return None
    eta = order_status.get("eta_minutes") or resource.get("eta")
    return DriverInfo(
        name=resource.get("name") or resource.get("driver_name"),
        phone=resource.get("phone"),
        vehicle_reg=resource.get("vehicle_reg") or resource.get("registration"),
        vehicle_model=resource.get("vehicle_model") or resource.get("vehicle"),
        eta_minutes=_eta_minutes(eta),
    )


def _eta_minutes(value: Any) -> int | None:
    # json.loads accepts Infinity and NaN
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return int(value)
