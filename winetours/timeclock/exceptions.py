"""Exceptions for the driver time clock."""

from winetours.exceptions import StateConflictError, ValidationError


class ShiftAlreadyOpen(StateConflictError):
    """The booking already has an open time record."""

    def __init__(self, time_record):
        super().__init__(
            f"Booking {time_record.booking_id} already clocked in by {time_record.driver}",
            entity_id=time_record.pk,
        )


class ShiftAlreadyCompleted(StateConflictError):
    """The booking already has a completed time record."""


class ShiftAlreadyClosed(StateConflictError):
    """The time record was already clocked out."""

    def __init__(self, time_record):
        super().__init__(
            f"Time record {time_record.pk} was already clocked out",
            field="clock_out_time",
            entity_id=time_record.pk,
        )


class InvalidClockTime(ValidationError):
    """Clock-out is not after clock-in."""
