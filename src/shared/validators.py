"""Shared input validators for booking requests and identifiers."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from src.shared.codec import has_coordinates
from src.shared.types import TimingIntent

if TYPE_CHECKING:
    from src.shared.booking import BookingRequest

_HEX_ORDER_ID = re.compile(r"[0-9a-fA-F]+")
_NUMERIC_JOB_ID = re.compile(r"\d+")


def validate_phone(phone: str) -> bool:
    """Validate a phone number has at least 10 digits.

    Args:
        phone: Raw phone input.

    Returns:
        True if the phone has at least 10 digits.
    """
    digits = re.sub(r"\D", "", phone)
    return len(digits) >= 10


def is_hex_order_id(value: str | None) -> bool:
    """Check whether an identifier looks like an opaque hex order id.

    Purely numeric strings are job ids, not order ids, even though
    they are valid hex.

    Args:
        value: Candidate identifier.

    Returns:
        True for a non-numeric hex string.
    """
    if not value:
        return False
    return bool(_HEX_ORDER_ID.fullmatch(value)) and not _NUMERIC_JOB_ID.fullmatch(value)


def missing_booking_fields(request: BookingRequest) -> list[str]:
    """List required booking fields that are absent.

    Coordinates are not required: pickup and dropoff fall back to the
    regional default when geocoding failed.

    Args:
        request: Booking request to check.

    Returns:
        Dotted field names, empty when the request is complete.
    """
    missing: list[str] = []
    if not request.pickup.address.strip():
        missing.append("pickup.address")
    if not request.dropoff.address.strip():
        missing.append("dropoff.address")
    if not request.passenger.name.strip():
        missing.append("passenger.name")
    if not request.passenger.phone.strip():
        missing.append("passenger.phone")
    if request.seats < 1:
        missing.append("seats")
    if request.timing.intent == TimingIntent.SCHEDULED and request.timing.at is None:
        missing.append("timing.at")
    if request.return_trip and request.return_at is None:
        missing.append("return_at")
    return missing


def count_droppable_stops(request: BookingRequest) -> int:
    """Count stops that will be dropped for lacking address or coordinates."""
    return sum(
        1
        for stop in request.stops
        if not stop.address.strip() or not has_coordinates(stop.lat, stop.lng)
    )
