"""Read-side queries for invoicing."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from django.db.models import F
from django.utils import timezone

from winetours.bookings.models import Booking, BookingStatus

from .models import Invoice, InvoiceKind, InvoiceStatus


class ApprovalCandidate(NamedTuple):
    """A booking waiting for final invoice approval."""

    booking: Booking
    hours_since_completion: Decimal
    due_at: datetime
    is_due: bool


def approval_queue(now=None) -> list[ApprovalCandidate]:
    """
    Bookings ready for final invoicing, oldest completion first.

    is_due is True once the final payment due time (completion plus the
    grace period, or an override) has passed.
    """
    now = now or timezone.now()
    bookings = (
        Booking.objects.filter(
            status=BookingStatus.COMPLETED,
            ready_for_final_invoice=True,
            final_invoice_sent=False,
        )
        .select_related("proposal")
        .order_by("completed_at", "id")
    )

    queue = []
    for booking in bookings:
        elapsed = Decimal(int((now - booking.completed_at).total_seconds())) / Decimal(3600)
        queue.append(ApprovalCandidate(
            booking=booking,
            hours_since_completion=elapsed.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            due_at=booking.final_payment_due_at,
            is_due=now >= booking.final_payment_due_at,
        ))
    return queue


def overdue_final_invoices(now=None):
    """SENT final invoices past due_at with something left to collect, oldest due first."""
    now = now or timezone.now()
    return (
        Invoice.objects.filter(
            kind=InvoiceKind.FINAL,
            status=InvoiceStatus.SENT,
            due_at__lte=now,
        )
        .exclude(booking__status=BookingStatus.CANCELLED)
        .annotate(total_due=F("amount") + F("tip_amount"))
        .filter(total_due__gt=0)
        .select_related("booking")
        .order_by("due_at", "id")
    )
