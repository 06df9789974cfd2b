"""Time clock services.

Provides:
- get_open_record: The booking's open time record, if any
- clock_in: Open a time record for a booking
- clock_out: Close it and emit time_record_completed on commit
"""

import logging

from django.db import transaction
from django.utils import timezone

from winetours.bookings.exceptions import InvalidBookingState
from winetours.bookings.models import Booking, BookingStatus

from .events import emit_time_record_completed
from .exceptions import InvalidClockTime, ShiftAlreadyClosed, ShiftAlreadyCompleted, ShiftAlreadyOpen
from .models import TimeRecord

logger = logging.getLogger(__name__)


def get_open_record(booking) -> TimeRecord | None:
    return TimeRecord.objects.filter(booking=booking, clock_out_time__isnull=True).first()


@transaction.atomic
def clock_in(booking, driver: str, *, at=None, correction: bool = False, notes: str = "") -> TimeRecord:
    """
    Clock a driver in for a booking.

    A booking normally has one time record. A second one is only opened with
    correction=True.

    Raises:
        InvalidBookingState: Booking is cancelled
        ShiftAlreadyOpen: A record for the booking is still open
        ShiftAlreadyCompleted: A completed record exists and correction is False
    """
    booking = Booking.objects.select_for_update().get(pk=booking.pk)
    if booking.status == BookingStatus.CANCELLED:
        raise InvalidBookingState(
            f"Booking {booking.booking_number} is cancelled", entity_id=booking.pk
        )

    open_record = get_open_record(booking)
    if open_record is not None:
        raise ShiftAlreadyOpen(open_record)

    if not correction and TimeRecord.objects.filter(booking=booking).exists():
        raise ShiftAlreadyCompleted(
            f"Booking {booking.booking_number} already has a completed time record",
            entity_id=booking.pk,
        )

    at = at or timezone.now()
    record = TimeRecord.objects.create(
        booking=booking,
        driver=driver,
        service_date=booking.tour_date,
        clock_in_time=at,
        is_correction=correction,
        notes=notes,
    )
    logger.info("Driver %s clocked in for %s", driver, booking.booking_number)
    return record


def clock_out(time_record_id, *, at=None) -> TimeRecord:
    """
    Clock out a time record.

    The completion event is sent after the transaction commits.

    Raises:
        ShiftAlreadyClosed: The record was already clocked out
        InvalidClockTime: at is not after clock-in
    """
    with transaction.atomic():
        record = TimeRecord.objects.select_for_update().get(pk=time_record_id)
        if record.clock_out_time is not None:
            raise ShiftAlreadyClosed(record)

        at = at or timezone.now()
        if at <= record.clock_in_time:
            raise InvalidClockTime(
                "Clock-out must be after clock-in", field="clock_out_time", entity_id=record.pk
            )

        record.clock_out_time = at
        record.save(update_fields=["clock_out_time", "updated_at"])
        transaction.on_commit(lambda: emit_time_record_completed(record))

    logger.info("Time record %s closed: %s hours", record.pk, record.duration_hours)
    return record
