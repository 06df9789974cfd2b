"""Booking services.

Functions:
- create_bookings_from_proposal(): One booking per item of an accepted proposal
- create_booking(): Direct booking from a quote, without a proposal
- cancel_booking(): Cancel and compute the refund on what was paid
"""

import logging
from decimal import Decimal
from typing import NamedTuple

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from winetours.audit.api import log as audit_log
from winetours.cancellations.policy import CancellationRefund, compute_cancellation_refund
from winetours.conf import get_setting
from winetours.exceptions import ValidationError
from winetours.invoicing.models import Invoice, InvoiceStatus
from winetours.invoicing.services import issue_deposit_invoice
from winetours.notifications.services import BOOKING_CANCELLED, notify
from winetours.rates.engine import Quote, allocate, round_money
from winetours.rates.models import RateTableVersion
from winetours.rates.services import load_rate_table
from winetours.sequence.services import next_number

from .exceptions import BookingNotFound, InvalidBookingState
from .models import Booking, BookingStatus

logger = logging.getLogger(__name__)


class CustomerInfo(NamedTuple):
    name: str
    email: str
    phone: str = ""


class CancellationResult(NamedTuple):
    booking: Booking
    refund: CancellationRefund
    paid_amount: Decimal
    refund_amount: Decimal


def allocate_booking_number(on=None) -> str:
    return next_number("booking", prefix=get_setting("BOOKING_PREFIX"), on=on)


def create_bookings_from_proposal(proposal, acceptance) -> list[Booking]:
    """
    Create one booking per service item of an accepted proposal.

    Runs inside the acceptance transaction. Each booking's estimate is its
    item's total; the acceptance's deposit and gratuity are split across
    the bookings in proportion to item totals, so the shares sum to the
    accepted figures. A price override on an item becomes that booking's
    effective hourly rate.
    """
    items = list(proposal.service_items.order_by("position", "id"))
    if not items:
        raise ValidationError("Proposal has no service items", entity_id=proposal.pk)
    rate_table = load_rate_table(proposal.rate_table_version)

    weights = [item.total for item in items]
    deposits = allocate(acceptance.deposit_amount, weights)
    gratuities = allocate(acceptance.gratuity_amount, weights)

    bookings = []
    for item, deposit, gratuity in zip(items, deposits, gratuities):
        hourly_rate = item.hourly_rate
        if item.price_override is not None and hourly_rate is not None:
            hourly_rate = round_money(item.subtotal / item.billable_hours)

        booking = Booking.objects.create(
            booking_number=allocate_booking_number(),
            proposal=proposal,
            service_item=item,
            rate_table_version=proposal.rate_table_version,
            customer_name=acceptance.contact_name,
            customer_email=acceptance.contact_email,
            customer_phone=acceptance.contact_phone,
            tour_date=item.tour_date,
            tour_type=item.tour_type,
            party_size=item.party_size,
            lunch_included=item.lunch_included,
            estimated_hours=item.hours,
            hourly_rate=hourly_rate,
            tax_rate=rate_table.tax_rate,
            estimated_total=item.total,
            deposit_amount=deposit,
            gratuity_amount=gratuity,
            created_by=acceptance.accepted_by,
        )
        bookings.append(booking)

    logger.info(
        "%d booking(s) created from %s: %s",
        len(bookings),
        proposal.proposal_number,
        ", ".join(b.booking_number for b in bookings),
    )
    return bookings


def create_booking(
    customer: CustomerInfo,
    quote: Quote,
    *,
    created_by: str,
    deposit_amount: Decimal | None = None,
    gratuity_amount: Decimal = Decimal("0"),
    issue_deposit: bool = True,
) -> Booking:
    """
    Book a tour directly from a quote.

    The quote must carry the rate table version it was priced against. The
    deposit defaults to the version's deposit percentage of the quote total.
    With issue_deposit, the deposit invoice is issued in the same transaction.
    """
    if not customer.name or not customer.email:
        raise ValidationError("Customer name and email are required", field="customer")
    if quote.rate_table_version is None:
        raise ValidationError("Quote is not bound to a rate table version", field="quote")
    if gratuity_amount < 0:
        raise ValidationError("Gratuity cannot be negative", field="gratuity_amount")

    version = RateTableVersion.objects.get(pk=quote.rate_table_version)
    rate_table = load_rate_table(version)
    if deposit_amount is None:
        deposit_amount = round_money(quote.total * rate_table.default_deposit_pct)
    elif deposit_amount < 0:
        raise ValidationError("Deposit cannot be negative", field="deposit_amount")

    with transaction.atomic():
        booking = Booking.objects.create(
            booking_number=allocate_booking_number(),
            rate_table_version=version,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            tour_date=quote.tour_date,
            tour_type=quote.tour_type.value,
            party_size=quote.party_size,
            lunch_included=quote.lunch_included,
            estimated_hours=quote.hours,
            hourly_rate=quote.hourly_rate,
            tax_rate=rate_table.tax_rate,
            estimated_total=quote.total,
            deposit_amount=deposit_amount,
            gratuity_amount=gratuity_amount,
            created_by=created_by,
        )
        if issue_deposit:
            issue_deposit_invoice(booking)

    logger.info("Booking %s created directly by %s", booking.booking_number, created_by)
    return booking


def cancel_booking(
    booking_id,
    *,
    cancelled_by: str,
    reason: str = "customer",
    notes: str = "",
    cancellation_date=None,
) -> CancellationResult:
    """
    Cancel a booking and compute the refund on what the customer has paid.

    Unpaid invoices are voided. The refund itself is paid out by finance;
    this records the amount owed.

    Raises:
        BookingNotFound: Unknown booking
        InvalidBookingState: Already cancelled, or completed
        ValidationError: Special reason without a configured refund
    """
    if not cancelled_by:
        raise ValidationError("Cancellations require an actor", field="cancelled_by")
    cancellation_date = cancellation_date or timezone.now()

    with transaction.atomic():
        try:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound(booking_id)

        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidBookingState(
                f"Cannot cancel booking {booking.booking_number} in status {booking.status}",
                field="status",
                entity_id=booking.pk,
            )

        refund = compute_cancellation_refund(booking.tour_date, cancellation_date, reason=reason)
        paid = round_money(
            Invoice.objects.filter(booking=booking, status=InvoiceStatus.PAID)
            .aggregate(total=Sum("amount"))["total"]
            or Decimal("0")
        )
        refund_amount = refund.apply_to(paid)

        voided = Invoice.objects.filter(
            booking=booking,
            status__in=[InvoiceStatus.DRAFT, InvoiceStatus.SENT],
        ).update(status=InvoiceStatus.VOID)

        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = timezone.now()
        booking.cancelled_by = cancelled_by
        booking.cancellation_reason = notes or reason
        booking.refund_percent = refund.refund_pct
        booking.refund_amount = refund_amount
        booking.ready_for_final_invoice = False
        booking.save()

        audit_log(
            action="booking_cancelled",
            obj=booking,
            actor=cancelled_by,
            changes={"status": {"old": BookingStatus.CONFIRMED, "new": BookingStatus.CANCELLED}},
            metadata={
                "reason": reason,
                "notes": notes,
                "notice_days": refund.notice_days,
                "refund_percent": refund.refund_pct,
                "paid_amount": paid,
                "refund_amount": refund_amount,
                "voided_invoices": voided,
            },
            sensitivity="high",
        )

        payload = {
            "booking_number": booking.booking_number,
            "tour_date": booking.tour_date.isoformat(),
            "refund_percent": refund.refund_pct,
            "refund_amount": str(refund_amount),
        }
        transaction.on_commit(lambda: notify(booking.customer_email, BOOKING_CANCELLED, payload))

    logger.info(
        "Booking %s cancelled by %s with %s days notice: %s%% of %s refunded",
        booking.booking_number,
        cancelled_by,
        refund.notice_days,
        refund.refund_pct,
        paid,
    )
    return CancellationResult(
        booking=booking,
        refund=refund,
        paid_amount=paid,
        refund_amount=refund_amount,
    )
