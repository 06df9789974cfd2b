"""Tests for overdue payment reminders."""

from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO

import pytest
from django.core.management import call_command
from freezegun import freeze_time

from winetours.audit.models import AuditLog
from winetours.bookings.reconciler import reconcile
from winetours.exceptions import ConfigurationError
from winetours.invoicing.models import PaymentReminder, ReminderUrgency
from winetours.invoicing.reminders import reminder_tiers, send_payment_reminders, urgency_for
from winetours.invoicing.selectors import overdue_final_invoices
from winetours.invoicing.services import approve_and_send, record_payment, void_invoice
from winetours.timeclock.services import clock_in, clock_out

START = datetime(2025, 6, 14, 17, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def final_invoice(booking):
    """SENT final invoice for a 7 hour tour, due 48 hours after completion."""
    record = clock_in(booking, "driver@example.com", at=START)
    reconcile(clock_out(record.pk, at=START + timedelta(hours=7)))
    return approve_and_send(booking.pk, "owner@example.com")


def run_reminders(invoice, days, capture, hours=1):
    """Run the reminder job the given number of days after the invoice fell due."""
    with capture(execute=True):
        return send_payment_reminders(now=invoice.due_at + timedelta(days=days, hours=hours))


class TestReminderTiers:
    """Tier configuration and lookup."""

    @pytest.mark.parametrize(
        "days,urgency",
        [
            (0, "friendly"),
            (2, "friendly"),
            (3, "firm"),
            (6, "firm"),
            (7, "urgent"),
            (13, "urgent"),
            (14, "final"),
            (90, "final"),
        ],
    )
    def test_lower_bounds_are_inclusive(self, days, urgency):
        assert urgency_for(days) == urgency

    def test_default_tiers(self):
        assert reminder_tiers() == [(14, "final"), (7, "urgent"), (3, "firm"), (0, "friendly")]

    @pytest.mark.parametrize(
        "tiers",
        [
            ({"days_overdue": 0, "urgency": "friendly"}, {"days_overdue": 5, "urgency": "final"}),
            ({"days_overdue": 5, "urgency": "final"},),
            ({"days_overdue": 0, "urgency": "angry"},),
            ({"days_overdue": -1, "urgency": "friendly"},),
            (),
        ],
    )
    def test_bad_configuration_is_rejected(self, settings, tiers):
        settings.WINETOURS = {**settings.WINETOURS, "PAYMENT_REMINDER_TIERS": tiers}
        with pytest.raises(ConfigurationError):
            reminder_tiers()


@pytest.mark.django_db
class TestSendPaymentReminders:
    """Escalating reminders for unpaid final invoices."""

    def test_nothing_before_due(self, final_invoice, django_capture_on_commit_callbacks, outbox):
        outbox.clear()
        sent = run_reminders(final_invoice, days=0, hours=-1, capture=django_capture_on_commit_callbacks)

        assert sent == []
        assert outbox == []

    def test_friendly_reminder_once(self, final_invoice, django_capture_on_commit_callbacks, outbox):
        outbox.clear()

        first = run_reminders(final_invoice, 0, django_capture_on_commit_callbacks)
        again = run_reminders(final_invoice, 1, django_capture_on_commit_callbacks)

        assert [r.urgency for r in first] == [ReminderUrgency.FRIENDLY]
        assert again == []
        assert len(outbox) == 1
        message = outbox[0]
        assert message["to"] == "dana@example.com"
        assert message["template_id"] == "payment_reminder"
        assert message["payload"]["invoice_number"] == final_invoice.invoice_number
        assert message["payload"]["urgency"] == "friendly"
        assert message["payload"]["amount_due"] == str(final_invoice.amount_due)
        assert AuditLog.objects.filter(action="payment_reminder_sent").count() == 1

    def test_escalates_through_each_tier(self, final_invoice, django_capture_on_commit_callbacks, outbox):
        for day in range(0, 21):
            run_reminders(final_invoice, day, django_capture_on_commit_callbacks)

        reminders = PaymentReminder.objects.filter(invoice=final_invoice).order_by("sent_at")
        assert [(r.urgency, r.days_overdue) for r in reminders] == [
            ("friendly", 0),
            ("firm", 3),
            ("urgent", 7),
            ("final", 14),
        ]

    def test_final_tier_copies_operations(self, final_invoice, django_capture_on_commit_callbacks, outbox):
        outbox.clear()

        run_reminders(final_invoice, 14, django_capture_on_commit_callbacks)

        assert [m["to"] for m in outbox] == ["dana@example.com", "office@example.com"]
        assert {m["payload"]["urgency"] for m in outbox} == {"final"}

    def test_missed_days_send_only_highest_tier(self, final_invoice, django_capture_on_commit_callbacks):
        sent = run_reminders(final_invoice, 8, django_capture_on_commit_callbacks)

        assert [r.urgency for r in sent] == ["urgent"]
        assert PaymentReminder.objects.count() == 1

    def test_paid_invoice_gets_no_reminder(self, final_invoice, django_capture_on_commit_callbacks, outbox):
        record_payment(final_invoice.pk, "tok_visa")
        outbox.clear()

        sent = run_reminders(final_invoice, 5, django_capture_on_commit_callbacks)

        assert sent == []
        assert outbox == []

    def test_voided_invoice_gets_no_reminder(self, final_invoice, django_capture_on_commit_callbacks):
        void_invoice(final_invoice.pk, actor="owner@example.com", reason="Comped tour")

        assert run_reminders(final_invoice, 5, django_capture_on_commit_callbacks) == []

    def test_deposit_invoices_are_not_reminded(self, accepted):
        later = accepted.deposit_invoice.due_at + timedelta(days=30)

        assert not overdue_final_invoices(later).exists()
        assert send_payment_reminders(now=later) == []


@pytest.mark.django_db
class TestSendPaymentRemindersCommand:
    def test_reports_reminders_sent(self, final_invoice):
        out = StringIO()
        with freeze_time(final_invoice.due_at + timedelta(days=3, hours=1)):
            call_command("send_payment_reminders", stdout=out)

        assert "Sent 1 payment reminder(s): 1 firm" in out.getvalue()

    def test_reports_nothing_due(self, final_invoice):
        out = StringIO()
        with freeze_time(final_invoice.due_at - timedelta(hours=1)):
            call_command("send_payment_reminders", stdout=out)

        assert "No payment reminders due" in out.getvalue()
