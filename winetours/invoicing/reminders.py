"""Overdue payment reminders for final invoices.

Reminders escalate friendly -> firm -> urgent -> final as an invoice stays
unpaid past its due_at. Tiers come from the PAYMENT_REMINDER_TIERS setting:

    >= 14 days overdue -> final (copied to OPERATIONS_EMAIL)
    7-13 days          -> urgent
    3-6 days           -> firm
    0-2 days           -> friendly

Each tier is sent at most once per invoice. A run sends only the highest
tier reached, so a job that missed days does not send a burst of reminders.
Payment status is re-read under the invoice row lock before anything is
sent.
"""

import logging

from django.db import transaction
from django.utils import timezone

from winetours.audit.api import log as audit_log
from winetours.conf import get_setting
from winetours.exceptions import ConfigurationError
from winetours.notifications.services import PAYMENT_REMINDER, notify

from .models import Invoice, InvoiceKind, InvoiceStatus, PaymentReminder, ReminderUrgency
from .selectors import overdue_final_invoices

logger = logging.getLogger(__name__)


def reminder_tiers() -> list[tuple[int, str]]:
    """
    Configured tiers as (days_overdue, urgency), descending.

    Raises:
        ConfigurationError: Malformed, unordered, unknown urgency, or no 0-day floor
    """
    tiers = get_setting("PAYMENT_REMINDER_TIERS")
    parsed: list[tuple[int, str]] = []
    for i, tier in enumerate(tiers or ()):
        days = tier.get("days_overdue") if isinstance(tier, dict) else None
        urgency = tier.get("urgency") if isinstance(tier, dict) else None
        if not isinstance(days, int) or days < 0:
            raise ConfigurationError(f"PAYMENT_REMINDER_TIERS[{i}]: days_overdue must be an integer >= 0")
        if urgency not in ReminderUrgency.values:
            raise ConfigurationError(f"PAYMENT_REMINDER_TIERS[{i}]: unknown urgency {urgency!r}")
        if parsed and days >= parsed[-1][0]:
            raise ConfigurationError("PAYMENT_REMINDER_TIERS must be in descending order by days_overdue")
        parsed.append((days, urgency))
    if not parsed or parsed[-1][0] != 0:
        raise ConfigurationError("PAYMENT_REMINDER_TIERS must end with a days_overdue 0 tier")
    return parsed


def urgency_for(days_overdue: int, tiers=None) -> str:
    """Urgency of the highest tier reached after days_overdue full days."""
    for days, urgency in tiers or reminder_tiers():
        if days_overdue >= days:
            return urgency
    raise ConfigurationError("No reminder tier applies")


def _send_one(invoice_id, tiers, now) -> PaymentReminder | None:
    with transaction.atomic():
        invoice = (
            Invoice.objects.select_for_update()
            .select_related("booking")
            .get(pk=invoice_id)
        )
        # Paid or voided since the selector ran
        if (
            invoice.kind != InvoiceKind.FINAL
            or invoice.status != InvoiceStatus.SENT
            or invoice.amount_due <= 0
        ):
            return None

        days_overdue = (now - invoice.due_at).days
        urgency = urgency_for(days_overdue, tiers)
        if invoice.payment_reminders.filter(urgency=urgency).exists():
            return None

        booking = invoice.booking
        reminder = PaymentReminder.objects.create(
            invoice=invoice,
            urgency=urgency,
            days_overdue=days_overdue,
            amount_due=invoice.amount_due,
            recipient=booking.customer_email,
            sent_at=now,
        )

        audit_log(
            action="payment_reminder_sent",
            obj=invoice,
            metadata={
                "urgency": urgency,
                "days_overdue": days_overdue,
                "amount_due": invoice.amount_due,
                "recipient": booking.customer_email,
            },
            is_system=True,
        )

        payload = {
            "invoice_number": invoice.invoice_number,
            "booking_number": booking.booking_number,
            "customer_name": booking.customer_name,
            "tour_date": booking.tour_date.isoformat(),
            "urgency": urgency,
            "days_overdue": days_overdue,
            "amount_due": str(invoice.amount_due),
            "due_at": invoice.due_at.isoformat(),
        }
        recipients = [booking.customer_email]
        operations = get_setting("OPERATIONS_EMAIL")
        if urgency == ReminderUrgency.FINAL and operations:
            recipients.append(operations)

        def send():
            for to in recipients:
                notify(to, PAYMENT_REMINDER, payload)

        transaction.on_commit(send)

    logger.info(
        "Sent %s payment reminder for %s (%s days overdue, %s due)",
        urgency,
        invoice.invoice_number,
        days_overdue,
        invoice.amount_due,
    )
    return reminder


def send_payment_reminders(now=None) -> list[PaymentReminder]:
    """
    Send the due reminder for every overdue final invoice.

    Safe to run repeatedly; intended for a daily job.

    Returns:
        The reminders sent by this run
    """
    now = now or timezone.now()
    tiers = reminder_tiers()
    sent = []
    for invoice_id in overdue_final_invoices(now).values_list("pk", flat=True):
        reminder = _send_one(invoice_id, tiers, now)
        if reminder is not None:
            sent.append(reminder)
    return sent
