"""Shared types, enums, and constants used across the application."""

import enum


class TimingIntent(str, enum.Enum):
    """When the passenger wants to be picked up."""

    ASAP = "asap"
    SCHEDULED = "scheduled"


class PassengerAction(str, enum.Enum):
    """Passenger action attached to a route node."""

    ENTER = "enter"
    EXIT = "exit"
    WAYPOINT = "waypoint"
    VIA = "via"


class StopActionMode(str, enum.Enum):
    """How intermediate stops are marked on the route graph."""

    WAYPOINT = "waypoint"
    VIA = "via"


class BookingStatus(str, enum.Enum):
    """Normalized job state vocabulary."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    EN_ROUTE = "enRoute"
    ARRIVED = "arrived"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class UpstreamOutcome(str, enum.Enum):
    """Outcome variant of a single upstream call."""

    SUCCESS = "success"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"
    ERROR = "error"


class ErrorKind(str, enum.Enum):
    """Typed failure taxonomy surfaced to callers."""

    VALIDATION_FAILED = "ValidationFailed"
    MISSING_IDENTIFIER = "MissingIdentifier"
    CREDENTIAL_UNAVAILABLE = "CredentialUnavailable"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    ACCESS_DENIED = "AccessDenied"
    NOT_FOUND = "NotFound"
    MALFORMED_RESPONSE = "MalformedResponse"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    UPSTREAM_INTERNAL_ERROR = "UpstreamInternalError"
    UPSTREAM_SERVER_ERROR = "UpstreamServerError"
    TRANSPORT_ERROR = "TransportError"
    PARTIALLY_FAILED = "PartiallyFailed"


class AmendmentState(str, enum.Enum):
    """Amendment coordinator state."""

    INIT = "init"
    TRY_DIRECT_UPDATE = "try_direct_update"
    TRY_PATCH = "try_patch"
    CANCEL_ORIGINAL = "cancel_original"
    REBOOK_NEW = "rebook_new"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class AmendmentMethod(str, enum.Enum):
    """Strategy that completed an amendment."""

    DIRECT_UPDATE = "direct-update"
    CANCEL_AND_REBOOK = "cancel-and-rebook"


class VehicleClass(str, enum.Enum):
    """Requested vehicle class."""

    STANDARD = "standard"
    LUXURY = "luxury"


TERMINAL_AMENDMENT_STATES = frozenset({
    AmendmentState.SUCCEEDED,
    AmendmentState.PARTIALLY_FAILED,
    AmendmentState.FAILED,
})
