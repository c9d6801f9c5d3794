"""Exceptions raised inside the Booker engine.

Upstream failures are returned as ``BookingError`` results rather than
raised. The one exception is credential acquisition, which is raised by
the token provider and converted at the order adapter boundary.
"""


class BookerEngineError(Exception):
    """Base class for Booker engine exceptions."""


class CredentialUnavailableError(BookerEngineError):
    """A bearer token could not be obtained from the token endpoint."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidTransitionError(BookerEngineError):
    """The amendment state machine reached an undefined transition."""
