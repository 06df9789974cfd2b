"""Hour-sync reconciler.

Copies a completed time record's hours onto its booking and marks the booking
ready for final invoicing. Consumes time_record_completed events and is safe
under re-delivery:

- the first completed record for a booking writes actual_hours
  (compare-and-swap on actual_hours IS NULL)
- an HourSyncApplication marker per (booking, time_record) absorbs repeats
- it never creates or sends invoices

Corrections after the fact go through correct_actual_hours().
"""

import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

from django.db import transaction
from django.utils import timezone

from winetours.audit.api import log as audit_log
from winetours.conf import get_setting
from winetours.exceptions import ValidationError
from winetours.timeclock.events import completion_event_id
from winetours.timeclock.models import TimeRecord

from .exceptions import BookingNotFound, InvoiceAlreadyFinalized, TimeRecordIncomplete
from .models import Booking, BookingStatus, HourSyncApplication

logger = logging.getLogger(__name__)


class HourSyncResult(NamedTuple):
    """Outcome of one reconcile() call."""

    actual_hours_applied: bool
    ready_for_final_invoice: bool
    duplicate: bool
    actual_hours: Decimal | None = None


def final_payment_due(completed_at):
    return completed_at + timedelta(hours=get_setting("FINAL_PAYMENT_DUE_HOURS"))


def reconcile(time_record: TimeRecord, *, event_id: str | None = None) -> HourSyncResult:
    """
    Apply a completed time record to its booking.

    Args:
        time_record: A clocked-out TimeRecord
        event_id: Id of the delivering event (defaults to the record's
            completion event id)

    Returns:
        HourSyncResult; duplicate=True when this record was already processed

    Raises:
        TimeRecordIncomplete: The record has no clock-out
    """
    if time_record.clock_out_time is None:
        raise TimeRecordIncomplete(time_record)

    hours = time_record.duration_hours
    event_id = event_id or completion_event_id(time_record)

    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=time_record.booking_id)

        seen = HourSyncApplication.objects.filter(
            booking=booking, time_record_id=time_record.pk
        ).exists()
        if seen or HourSyncApplication.objects.filter(event_id=event_id).exists():
            logger.info(
                "Hour-sync for time record %s already processed; ignoring %s",
                time_record.pk,
                event_id,
            )
            return HourSyncResult(
                actual_hours_applied=False,
                ready_for_final_invoice=booking.ready_for_final_invoice,
                duplicate=True,
                actual_hours=booking.actual_hours,
            )

        applied = False
        if booking.status == BookingStatus.CANCELLED:
            logger.warning(
                "Time record %s closed on cancelled booking %s; hours not applied",
                time_record.pk,
                booking.booking_number,
            )
        elif booking.actual_hours is None:
            completed_at = time_record.clock_out_time
            applied = Booking.objects.filter(
                pk=booking.pk,
                actual_hours__isnull=True,
            ).update(
                actual_hours=hours,
                ready_for_final_invoice=True,
                status=BookingStatus.COMPLETED,
                completed_at=completed_at,
                final_payment_due_at=booking.final_payment_due_at or final_payment_due(completed_at),
                updated_at=timezone.now(),
            ) == 1
        else:
            logger.info(
                "Booking %s already has %s hours; time record %s recorded without applying",
                booking.booking_number,
                booking.actual_hours,
                time_record.pk,
            )

        HourSyncApplication.objects.create(
            booking=booking,
            time_record=time_record,
            event_id=event_id,
            hours=hours,
            applied=applied,
        )

        booking.refresh_from_db()
        if applied:
            audit_log(
                action="hour_sync_applied",
                obj=booking,
                actor=time_record.driver,
                changes={"actual_hours": {"old": None, "new": hours}},
                metadata={"time_record_id": time_record.pk, "event_id": event_id},
                is_system=True,
            )
            logger.info(
                "Applied %s hours to %s; ready for final invoice",
                hours,
                booking.booking_number,
            )

    return HourSyncResult(
        actual_hours_applied=applied,
        ready_for_final_invoice=booking.ready_for_final_invoice,
        duplicate=False,
        actual_hours=booking.actual_hours,
    )


def handle_time_record_completed(event) -> HourSyncResult:
    """Consume a TimeRecordCompleted event."""
    time_record = TimeRecord.objects.get(pk=event.time_record_id)
    return reconcile(time_record, event_id=event.event_id)


def correct_actual_hours(booking_id, new_hours, *, actor: str, reason: str) -> Booking:
    """
    Override a booking's actual hours.

    Re-opens ready_for_final_invoice so the corrected figure is billed.

    Raises:
        ValidationError: Missing actor/reason or non-positive hours
        BookingNotFound: Unknown booking
        InvoiceAlreadyFinalized: The final invoice was already sent
    """
    if not actor:
        raise ValidationError("Hour corrections require an actor", field="actor")
    if not reason or not reason.strip():
        raise ValidationError("Hour corrections require a reason", field="reason")
    try:
        new_hours = Decimal(str(new_hours)).quantize(Decimal("0.01"))
    except InvalidOperation as e:
        raise ValidationError(f"Invalid hours {new_hours!r}", field="actual_hours") from e
    if new_hours <= 0:
        raise ValidationError("Hours must be positive", field="actual_hours")

    with transaction.atomic():
        try:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound(booking_id)

        if booking.final_invoice_sent:
            raise InvoiceAlreadyFinalized(booking)
        if booking.status == BookingStatus.CANCELLED:
            raise ValidationError(
                f"Booking {booking.booking_number} is cancelled", entity_id=booking.pk
            )

        old_hours = booking.actual_hours
        now = timezone.now()
        booking.actual_hours = new_hours
        booking.ready_for_final_invoice = True
        booking.status = BookingStatus.COMPLETED
        if booking.completed_at is None:
            booking.completed_at = now
        if booking.final_payment_due_at is None:
            booking.final_payment_due_at = final_payment_due(booking.completed_at)
        booking.save()

        audit_log(
            action="hours_correction",
            obj=booking,
            actor=actor,
            changes={"actual_hours": {"old": old_hours, "new": new_hours}},
            metadata={"reason": reason.strip()},
            sensitivity="high",
        )

    logger.info(
        "%s corrected hours on %s from %s to %s",
        actor,
        booking.booking_number,
        old_hours,
        new_hours,
    )
    return booking
