"""Tests for the hour-sync reconciler."""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest

from winetours.audit.models import AuditLog
from winetours.bookings.exceptions import InvoiceAlreadyFinalized, TimeRecordIncomplete
from winetours.bookings.models import Booking, BookingStatus, HourSyncApplication
from winetours.bookings.reconciler import correct_actual_hours, handle_time_record_completed, reconcile
from winetours.bookings.services import cancel_booking
from winetours.exceptions import ValidationError
from winetours.invoicing.models import Invoice, InvoiceKind
from winetours.invoicing.services import approve_and_send
from winetours.timeclock.events import completion_event
from winetours.timeclock.services import clock_in, clock_out

START = datetime(2025, 6, 14, 17, 0, tzinfo=dt_timezone.utc)


def work_shift(booking, hours, *, correction=False):
    """Clock a driver in and out; returns the closed record."""
    record = clock_in(booking, "driver@example.com", at=START, correction=correction)
    return clock_out(record.pk, at=START + timedelta(hours=hours))


@pytest.mark.django_db
class TestReconcile:
    """Applying completed time records."""

    def test_clock_out_applies_hours(self, booking, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            record = work_shift(booking, 7.5)

        booking.refresh_from_db()
        assert booking.actual_hours == Decimal("7.50")
        assert booking.ready_for_final_invoice is True
        assert booking.status == BookingStatus.COMPLETED
        assert booking.completed_at == record.clock_out_time
        assert booking.final_payment_due_at == record.clock_out_time + timedelta(hours=48)

        marker = HourSyncApplication.objects.get()
        assert marker.applied is True
        assert marker.event_id == f"time-record-{record.pk}-completed"
        assert AuditLog.objects.filter(action="hour_sync_applied").count() == 1

    def test_redelivery_is_a_duplicate_no_op(self, booking, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            record = work_shift(booking, 7.5)

        event = completion_event(record)
        first = handle_time_record_completed(event)
        second = handle_time_record_completed(event)

        for result in (first, second):
            assert result.duplicate is True
            assert result.actual_hours_applied is False
            assert result.ready_for_final_invoice is True
        assert HourSyncApplication.objects.count() == 1
        assert AuditLog.objects.filter(action="hour_sync_applied").count() == 1

    def test_same_record_under_new_event_id_is_duplicate(self, booking):
        record = work_shift(booking, 6)
        assert reconcile(record).actual_hours_applied is True

        result = reconcile(record, event_id="queue-redelivery-42")

        assert result.duplicate is True
        assert HourSyncApplication.objects.count() == 1

    def test_first_write_wins(self, booking):
        """A correction-workflow record does not overwrite synced hours."""
        first = work_shift(booking, 6)
        reconcile(first)
        second = work_shift(booking, 9, correction=True)

        result = reconcile(second)

        assert result.duplicate is False
        assert result.actual_hours_applied is False
        assert result.actual_hours == Decimal("6.00")
        assert HourSyncApplication.objects.filter(applied=False).count() == 1

    def test_incomplete_record_is_not_eligible(self, booking):
        record = clock_in(booking, "driver@example.com", at=START)
        with pytest.raises(TimeRecordIncomplete) as exc_info:
            reconcile(record)
        assert exc_info.value.kind == "eligibility"

    def test_never_creates_invoices(self, booking):
        reconcile(work_shift(booking, 7))
        assert not Invoice.objects.filter(kind=InvoiceKind.FINAL).exists()

    def test_cancelled_booking_gets_no_hours(self, booking):
        record = clock_in(booking, "driver@example.com", at=START)
        cancel_booking(booking.pk, cancelled_by="office@example.com")
        record = clock_out(record.pk, at=START + timedelta(hours=5))

        result = reconcile(record)

        booking.refresh_from_db()
        assert result.actual_hours_applied is False
        assert booking.actual_hours is None
        assert booking.status == BookingStatus.CANCELLED


@pytest.mark.django_db
class TestCorrectActualHours:
    """Authorized override path."""

    def test_correction_is_audited(self, booking):
        reconcile(work_shift(booking, 7.5))

        corrected = correct_actual_hours(
            booking.pk, "8.25", actor="ops@example.com", reason="Driver forgot to clock out at winery"
        )

        assert corrected.actual_hours == Decimal("8.25")
        assert corrected.ready_for_final_invoice is True
        entry = AuditLog.objects.get(action="hours_correction")
        assert entry.actor_display == "ops@example.com"
        assert entry.changes["actual_hours"] == {"old": "7.50", "new": "8.25"}
        assert entry.metadata["reason"] == "Driver forgot to clock out at winery"

    def test_correction_without_time_record_completes_booking(self, booking):
        corrected = correct_actual_hours(booking.pk, 6, actor="ops@example.com", reason="Paper timesheet")

        assert corrected.status == BookingStatus.COMPLETED
        assert corrected.completed_at is not None
        assert corrected.final_payment_due_at == corrected.completed_at + timedelta(hours=48)

    def test_correction_after_final_invoice_is_rejected(self, booking):
        reconcile(work_shift(booking, 7.5))
        approve_and_send(booking.pk, "owner@example.com")

        with pytest.raises(InvoiceAlreadyFinalized):
            correct_actual_hours(booking.pk, "8", actor="ops@example.com", reason="late fix")

        assert Booking.objects.get(pk=booking.pk).actual_hours == Decimal("7.50")

    @pytest.mark.parametrize("hours, actor, reason", [
        ("0", "ops@example.com", "zero"),
        ("6", "", "no actor"),
        ("6", "ops@example.com", ""),
    ])
    def test_invalid_corrections(self, booking, hours, actor, reason):
        with pytest.raises(ValidationError):
            correct_actual_hours(booking.pk, hours, actor=actor, reason=reason)
