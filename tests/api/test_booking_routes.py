"""Tests for booking HTTP endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.booking.service import BookingService
from src.config.settings import Settings
from src.shared.response_models import (
    BookingError,
    CancelResult,
    CreateOrderResult,
    OrderIdentity,
    StatusResult,
    UpdateResult,
)
from src.shared.types import BookingStatus, ErrorKind, UpstreamOutcome

BOOKING = {
    "passenger": {"name": "Jane Doe", "phone": "07700 900123", "email": "jane@example.com"},
    "pickup": {"address": "Weighbridge Place", "lat": 49.1833, "lng": -2.1066},
    "dropoff": {"address": "Jersey Airport", "lat": 49.2079, "lng": -2.1955},
}


@pytest.fixture
def upstream() -> AsyncMock:
    """Order adapter double shared by the service under test."""
    return AsyncMock()


@pytest.fixture
def client(settings: Settings, upstream: AsyncMock):
    """TestClient over an app whose service talks to ``upstream``.

    ``mock_booking`` is on so amendments skip the credential check.
    """
    settings.mock_booking = True
    service = BookingService(settings, MagicMock(), client=upstream)
    with TestClient(create_app(settings=settings, booking_service=service)) as test_client:
        yield test_client


def _created(order_id: str, job_id: str) -> CreateOrderResult:
    return CreateOrderResult(
        outcome=UpstreamOutcome.SUCCESS,
        identity=OrderIdentity(order_id=order_id, job_id=job_id),
    )


class TestBookRoute:
    """POST /api/book."""

    def test_success(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.create_order.return_value = _created("5f3a9c", "1234")
        response = client.post("/api/book", json=BOOKING)
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["order_id"] == "5f3a9c"
        assert body["job_id"] == "1234"

    def test_missing_fields_400(self, client: TestClient, upstream: AsyncMock) -> None:
        response = client.post("/api/book", json={**BOOKING, "dropoff": {"address": ""}})
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationFailed"
        upstream.create_order.assert_not_awaited()

    @pytest.mark.parametrize(
        ("kind", "status"),
        [
            (ErrorKind.AUTHENTICATION_FAILED, 401),
            (ErrorKind.ACCESS_DENIED, 403),
            (ErrorKind.MALFORMED_RESPONSE, 502),
            (ErrorKind.UPSTREAM_INTERNAL_ERROR, 502),
            (ErrorKind.SERVICE_UNAVAILABLE, 503),
            (ErrorKind.TRANSPORT_ERROR, 503),
            (ErrorKind.CREDENTIAL_UNAVAILABLE, 503),
        ],
    )
    def test_error_kinds_map_to_status(
        self, client: TestClient, upstream: AsyncMock, kind: ErrorKind, status: int,
    ) -> None:
        upstream.create_order.return_value = CreateOrderResult(
            outcome=UpstreamOutcome.ERROR,
            error=BookingError(kind=kind, message="nope", details={"raw": "x"}),
        )
        response = client.post("/api/book", json=BOOKING)
        assert response.status_code == status
        body = response.json()
        assert body == {"ok": False, "error": kind.value, "message": "nope", "details": {"raw": "x"}}

    def test_return_trip_warning(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.create_order.side_effect = [
            _created("out1", "1"),
            CreateOrderResult(
                outcome=UpstreamOutcome.ERROR,
                error=BookingError(kind=ErrorKind.TRANSPORT_ERROR, message="timed out"),
            ),
        ]
        payload = {**BOOKING, "return_trip": True, "return_at": "2025-12-12T18:30:00Z"}
        response = client.post("/api/book", json=payload)
        assert response.status_code == 200
        body = response.json()
        assert body["order_id"] == "out1"
        assert "return_order_id" not in body
        assert body["warning"] == "Return trip booking failed: timed out"


class TestAmendRoute:
    """POST/GET /api/amend."""

    def test_capabilities(self, client: TestClient) -> None:
        body = client.get("/api/amend").json()
        assert body["supported"] is True
        assert body["methods"] == ["direct-update", "cancel-and-rebook"]

    def test_direct_update(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.update_order.return_value = UpdateResult(
            accepted=True, method="PUT", status_code=200, body={},
        )
        response = client.post("/api/amend", json={"order_id": "5f3a9c", "notes": "Gate 2"})
        assert response.status_code == 200
        assert response.json()["method"] == "direct-update"

    def test_partially_failed_is_409(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.update_order.return_value = UpdateResult(accepted=False, method="PUT", status_code=405)
        upstream.cancel_order.return_value = CancelResult(
            outcome=UpstreamOutcome.CANCELLED, order_id="5f3a9c",
        )
        upstream.create_order.return_value = CreateOrderResult(
            outcome=UpstreamOutcome.ERROR,
            error=BookingError(kind=ErrorKind.UPSTREAM_SERVER_ERROR, message="500", status_code=500),
        )
        response = client.post("/api/amend", json={"order_id": "5f3a9c", **BOOKING})
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "PartiallyFailed"
        assert body["state"] == "partially_failed"
        assert body["original_order_id"] == "5f3a9c"
        assert body["original_cancelled"] is True
        assert body["requires_manual_recovery"] is True

    def test_missing_identifier_400(self, client: TestClient) -> None:
        response = client.post("/api/amend", json={"notes": "x"})
        assert response.status_code == 400
        assert response.json()["error"] == "MissingIdentifier"


class TestCancelRoute:
    """POST/DELETE /api/cancel."""

    def test_post(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.cancel_order.return_value = CancelResult(
            outcome=UpstreamOutcome.CANCELLED, order_id="5f3a9c", message="Booking cancelled successfully",
        )
        response = client.post("/api/cancel", json={"order_id": "5f3a9c", "reason": "Changed plans"})
        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "order_id": "5f3a9c",
            "already_gone": False,
            "message": "Booking cancelled successfully",
        }

    def test_delete_already_gone(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.cancel_order.return_value = CancelResult(
            outcome=UpstreamOutcome.CANCELLED, order_id="5f3a9c", already_gone=True,
        )
        response = client.delete("/api/cancel", params={"order_id": "5f3a9c"})
        assert response.status_code == 200
        assert response.json()["already_gone"] is True

    def test_missing_identifier(self, client: TestClient) -> None:
        response = client.post("/api/cancel", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "MissingIdentifier"


class TestStatusRoute:
    """GET/POST /api/status."""

    def test_get_by_booking_id(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.get_status.return_value = StatusResult(
            outcome=UpstreamOutcome.SUCCESS, order_id="5f3a9c", status=BookingStatus.EN_ROUTE,
        )
        response = client.get("/api/status", params={"booking_id": "5f3a9c"})
        assert response.status_code == 200
        assert response.json()["status"] == "enRoute"
        upstream.get_status.assert_awaited_once_with("5f3a9c")

    def test_post_not_found(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.get_status.return_value = StatusResult(
            outcome=UpstreamOutcome.NOT_FOUND, order_id="5f3a9c",
        )
        response = client.post("/api/status", json={"order_id": "5f3a9c"})
        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "not_found"
        assert body["ok"] is True

    def test_upstream_error(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.get_status.return_value = StatusResult(
            outcome=UpstreamOutcome.ERROR,
            order_id="5f3a9c",
            error=BookingError(kind=ErrorKind.AUTHENTICATION_FAILED, message="bad key"),
        )
        response = client.get("/api/status", params={"booking_id": "5f3a9c"})
        assert response.status_code == 401


class TestReturnTripRoute:
    """POST /api/return-trip."""

    def test_success(self, client: TestClient, upstream: AsyncMock) -> None:
        upstream.create_order.return_value = _created("ret2", "2")
        payload = {"order_id": "out1", "booking": BOOKING, "return_at": "2025-12-12T18:30:00Z"}
        response = client.post("/api/return-trip", json=payload)
        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "order_id": "out1",
            "return_order_id": "ret2",
            "return_job_id": "2",
        }
