"""Exceptions for bookings and hour-sync."""

from winetours.exceptions import EligibilityError, StateConflictError, ValidationError


class BookingNotFound(ValidationError):
    """No booking with this id."""

    def __init__(self, booking_id):
        super().__init__(f"Booking {booking_id} not found", entity_id=booking_id)


class InvalidBookingState(StateConflictError):
    """The booking is not in a state that allows this action."""


class InvoiceAlreadyFinalized(StateConflictError):
    """Hours cannot change once the final invoice was sent."""

    def __init__(self, booking):
        super().__init__(
            f"Final invoice for {booking.booking_number} was already sent; "
            "adjust the invoice instead of the hours",
            field="actual_hours",
            entity_id=booking.pk,
        )


class TimeRecordIncomplete(EligibilityError):
    """The time record has no clock-out yet."""

    def __init__(self, time_record):
        super().__init__(
            f"Time record {time_record.pk} is not clocked out",
            field="clock_out_time",
            entity_id=time_record.pk,
        )
