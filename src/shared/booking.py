"""Pydantic request models handed to the engine by its collaborators."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.shared.types import TimingIntent, VehicleClass


class Location(BaseModel):
    """An address with optional geocoded coordinates."""

    address: str = ""
    lat: float | None = None
    lng: float | None = None


class Passenger(BaseModel):
    """Passenger identity as supplied by the booking form."""

    name: str = ""
    phone: str = ""
    email: str = ""


class Timing(BaseModel):
    """Pickup timing intent.

    Attributes:
        intent: ``asap`` or ``scheduled``.
        at: Target pickup instant, required when scheduled.
    """

    intent: TimingIntent = TimingIntent.ASAP
    at: datetime | None = None


class CorporateReference(BaseModel):
    """Billing references appended to the booking notes."""

    company_name: str = ""
    contact_person: str = ""
    po_number: str = ""
    cost_centre: str = ""


class BookingRequest(BaseModel):
    """Normalized booking request for a single outbound trip."""

    passenger: Passenger
    pickup: Location
    dropoff: Location
    stops: list[Location] = Field(default_factory=list)
    seats: int = 1
    luggage: int = 0
    timing: Timing = Field(default_factory=Timing)
    notes: str = ""
    vehicle_class: VehicleClass = VehicleClass.STANDARD
    flight_number: str = ""
    airport_pickup: bool = False
    account_id: int | None = None
    corporate: CorporateReference | None = None
    return_trip: bool = False
    return_at: datetime | None = None


class AmendmentRequest(BaseModel):
    """Changes to an existing booking.

    At least one of ``order_id`` / ``job_id`` identifies the target.
    Unset fields are left out of the in-place update payload.
    """

    order_id: str | None = None
    job_id: str | None = None
    passenger: Passenger | None = None
    pickup: Location | None = None
    dropoff: Location | None = None
    stops: list[Location] = Field(default_factory=list)
    pickup_at: datetime | None = None
    seats: int | None = None
    luggage: int | None = None
    notes: str | None = None

    def to_booking_request(self) -> BookingRequest | None:
        """Build the full replacement booking used by cancel-and-rebook.

        Returns:
            A BookingRequest, or None when pickup, dropoff, or the
            passenger is missing.
        """
        if self.pickup is None or self.dropoff is None or self.passenger is None:
            return None
        timing = (
            Timing(intent=TimingIntent.SCHEDULED, at=self.pickup_at)
            if self.pickup_at
            else Timing()
        )
        return BookingRequest(
            passenger=self.passenger,
            pickup=self.pickup,
            dropoff=self.dropoff,
            stops=list(self.stops),
            seats=self.seats or 1,
            luggage=self.luggage or 0,
            timing=timing,
            notes=self.notes or "",
        )
