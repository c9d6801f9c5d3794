"""Merged driver notes attached to the pickup node and passenger item."""

from __future__ import annotations

from datetime import datetime

from src.shared.booking import BookingRequest, CorporateReference
from src.shared.codec import sanitize_text
from src.shared.types import VehicleClass

NOTES_SEPARATOR = " | "
MAX_NOTES_LENGTH = 500


def build_booking_notes(request: BookingRequest) -> str:
    """Build the merged notes line for an outbound booking.

    Args:
        request: Booking request.

    Returns:
        Notes parts joined with `` | ``, empty when there is nothing to say.
    """
    parts: list[str] = []
    if request.vehicle_class == VehicleClass.LUXURY:
        parts.append("EXECUTIVE SERVICE - Premium V-Class")
    if request.flight_number:
        parts.append(f"Flight: {sanitize_text(request.flight_number, 20)}")
    if request.airport_pickup:
        parts.append("Airport Pickup")
    if request.luggage > 0:
        plural = "s" if request.luggage > 1 else ""
        parts.append(f"Luggage: {request.luggage} bag{plural}")
    if request.corporate is not None or request.account_id is not None:
        corporate_line = _corporate_line(request.corporate, request.account_id)
        if corporate_line:
            parts.append(corporate_line)
    if request.notes:
        parts.append(sanitize_text(request.notes, MAX_NOTES_LENGTH))
    if request.return_trip and request.return_at is not None:
        parts.append(f"Return booked: {format_return_time(request.return_at)}")
    return NOTES_SEPARATOR.join(p for p in parts if p)


def build_return_notes(outbound_order_id: str) -> str:
    """Notes for the return leg, carrying the outbound back-reference."""
    return f"RETURN TRIP{NOTES_SEPARATOR}Original booking: {outbound_order_id}"


def format_return_time(when: datetime) -> str:
    """Format a return time for humans, e.g. ``Fri 12 Dec 18:30``."""
    return f"{when:%a} {when.day} {when:%b %H:%M}"


def _corporate_line(
    corporate: CorporateReference | None,
    account_id: int | None,
) -> str:
    fields: list[str] = []
    if corporate is not None:
        if corporate.company_name:
            fields.append(f"Company: {sanitize_text(corporate.company_name, 100)}")
        if corporate.contact_person:
            fields.append(f"Contact: {sanitize_text(corporate.contact_person, 100)}")
        if corporate.po_number:
            fields.append(f"PO: {sanitize_text(corporate.po_number, 50)}")
        if corporate.cost_centre:
            fields.append(f"Cost Centre: {sanitize_text(corporate.cost_centre, 50)}")
    if account_id is not None:
        fields.append(f"Account ID: {account_id}")
    return NOTES_SEPARATOR.join(fields)
