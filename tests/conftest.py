"""Shared test fixtures for the Booker orchestrator test suite."""

import base64
import json

import pytest

from src.config.settings import Settings
from src.shared.booking import BookingRequest, Location, Passenger


def make_token(claims: dict) -> str:
    """Build an unsigned three-segment token carrying ``claims``.

    Args:
        claims: Payload claims.

    Returns:
        Token string ``header.payload.signature``.
    """
    def segment(data: dict) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{segment({'alg': 'HS256'})}.{segment(claims)}.sig"


@pytest.fixture
def settings() -> Settings:
    """Provide test settings with safe defaults.

    Returns:
        Settings configured for testing (no real API calls).
    """
    return Settings(
        _env_file=None,
        booker_api_domain="booker.test",
        booker_api_key="test-api-key",
        booker_company_id=8284,
        booker_provider_id=0,
        environment="test",
        mock_booking=False,
        return_trip_in_background=False,
    )


@pytest.fixture
def booking_request() -> BookingRequest:
    """A complete ASAP booking from St Helier to the airport."""
    return BookingRequest(
        passenger=Passenger(name="Jane Doe", phone="07700 900123", email="jane@example.com"),
        pickup=Location(address="Weighbridge Place, St Helier", lat=49.1833, lng=-2.1066),
        dropoff=Location(address="Jersey Airport", lat=49.2079, lng=-2.1955),
    )


@pytest.fixture
def token_factory():
    """Provide ``make_token`` to tests that need signed-looking tokens."""
    return make_token
