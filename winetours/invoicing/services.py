"""Invoice lifecycle services.

Functions:
- issue_deposit_invoice(): Deposit invoice, inside the acceptance transaction
- final_invoice_breakdown(): What the final invoice charges (pure)
- approve_and_send(): The only way a final invoice is created
- force_final_payment_due(): Make the final payment due now
- record_payment(): Charge through the payment gateway
- void_invoice(): Void an unpaid invoice

Invoice numbers come from winetours.sequence inside the transaction that
inserts the invoice, so a rollback leaves no gap.
"""

import logging
from decimal import Decimal
from typing import NamedTuple

from django.db import IntegrityError as DatabaseIntegrityError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from winetours.audit.api import log as audit_log
from winetours.bookings.exceptions import BookingNotFound
from winetours.bookings.models import Booking, BookingStatus
from winetours.conf import get_setting
from winetours.exceptions import ValidationError
from winetours.idempotency.services import find_processed, mark_processed
from winetours.notifications.services import FINAL_INVOICE, notify
from winetours.payments.gateway import get_gateway
from winetours.rates.engine import price_with_tax, round_money
from winetours.sequence.services import next_number

from .exceptions import (
    BookingNotInvoiceable,
    DepositInvoiceExists,
    FinalInvoiceAlreadySent,
    FinalInvoiceNotReady,
    InvoiceNotFound,
    InvoiceNumberCollision,
    InvoiceStateError,
    PaymentDeclined,
)
from .models import Invoice, InvoiceKind, InvoiceStatus

logger = logging.getLogger(__name__)

APPROVAL_SCOPE = "final_invoice_approval"


class FinalInvoiceBreakdown(NamedTuple):
    """How a final invoice amount was reached."""

    hours: Decimal | None
    hourly_rate: Decimal | None
    subtotal: Decimal | None
    tax: Decimal | None
    charge_total: Decimal
    deposit_paid: Decimal
    amount: Decimal
    tip_amount: Decimal

    def as_dict(self) -> dict:
        return {k: (str(v) if v is not None else None) for k, v in self._asdict().items()}


def allocate_invoice_number(on=None) -> str:
    return next_number("invoice", prefix=get_setting("INVOICE_PREFIX"), on=on)


def _create_invoice(booking, kind: str, **fields) -> Invoice:
    number = allocate_invoice_number()
    if Invoice.objects.filter(invoice_number=number).exists():
        logger.critical("Allocated invoice number %s already exists", number)
        raise InvoiceNumberCollision(number)
    try:
        with transaction.atomic():
            return Invoice.objects.create(
                invoice_number=number,
                booking=booking,
                kind=kind,
                **fields,
            )
    except DatabaseIntegrityError as e:
        if Invoice.objects.filter(invoice_number=number).exists():
            logger.critical("Invoice number %s collided on insert", number)
            raise InvoiceNumberCollision(number) from e
        raise


def issue_deposit_invoice(booking: Booking, *, issued_by: str = "system") -> Invoice:
    """
    Issue the deposit invoice for a booking, already SENT.

    Must run inside the transaction that created the booking.

    Raises:
        DepositInvoiceExists: The booking already has one
    """
    if Invoice.objects.filter(booking=booking, kind=InvoiceKind.DEPOSIT).exists():
        raise DepositInvoiceExists(booking)

    now = timezone.now()
    invoice = _create_invoice(
        booking,
        InvoiceKind.DEPOSIT,
        amount=booking.deposit_amount,
        status=InvoiceStatus.SENT,
        sent_at=now,
        due_at=now,
        approved_by=issued_by,
    )
    logger.info(
        "Deposit invoice %s for %s: %s",
        invoice.invoice_number,
        booking.booking_number,
        invoice.amount,
    )
    return invoice


def deposit_paid(booking: Booking) -> Decimal:
    """Sum of PAID deposit invoices for the booking."""
    total = Invoice.objects.filter(
        booking=booking,
        kind=InvoiceKind.DEPOSIT,
        status=InvoiceStatus.PAID,
    ).aggregate(total=Sum("amount"))["total"]
    return round_money(total or Decimal("0"))


def final_invoice_breakdown(booking: Booking, paid: Decimal) -> FinalInvoiceBreakdown:
    """
    Compute the final invoice.

    Hourly tours: round(actual_hours * hourly_rate, 2) plus tax at the
    booking's rate (half-up), less the paid deposit. Per-person tours bill
    the estimated total less the paid deposit. Gratuity is carried separately.
    """
    if booking.hourly_rate is None:
        charge_total = booking.estimated_total
        hours = subtotal = tax = None
    else:
        hours = booking.actual_hours
        subtotal = round_money(hours * booking.hourly_rate)
        tax, charge_total = price_with_tax(subtotal, booking.tax_rate)

    return FinalInvoiceBreakdown(
        hours=hours,
        hourly_rate=booking.hourly_rate,
        subtotal=subtotal,
        tax=tax,
        charge_total=charge_total,
        deposit_paid=paid,
        amount=round_money(charge_total - paid),
        tip_amount=booking.gratuity_amount,
    )


def approve_and_send(booking_id, approver: str, *, event_id: str | None = None) -> Invoice:
    """
    Approve a booking's final invoice and send it.

    Eligibility is re-checked under the booking row lock; the invoice, its
    number and the booking flags are written in one transaction; the email
    goes out after commit.

    Args:
        booking_id: Booking to invoice
        approver: Identity approving the invoice
        event_id: Id of the approval event; a re-delivered event returns the
            invoice it already produced

    Raises:
        ValidationError: Missing approver
        BookingNotFound: Unknown booking
        FinalInvoiceAlreadySent: A final invoice exists
        BookingNotInvoiceable: Booking was cancelled
        FinalInvoiceNotReady: Hours not synced yet
    """
    if not approver:
        raise ValidationError("Final invoice approval requires an approver", field="approver")

    with transaction.atomic():
        try:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound(booking_id)

        # Checked under the booking lock: a concurrent delivery of the same
        # event waits above and then sees the committed marker.
        if event_id:
            marker = find_processed(APPROVAL_SCOPE, event_id)
            if marker is not None:
                logger.info("Approval event %s already processed", event_id)
                return Invoice.objects.get(pk=marker.result_id)

        if booking.final_invoice_sent or Invoice.objects.filter(
            booking=booking, kind=InvoiceKind.FINAL
        ).exists():
            raise FinalInvoiceAlreadySent(booking)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingNotInvoiceable(
                f"Booking {booking.booking_number} is cancelled", entity_id=booking.pk
            )
        if not booking.ready_for_final_invoice or booking.actual_hours is None:
            raise FinalInvoiceNotReady(booking)

        breakdown = final_invoice_breakdown(booking, deposit_paid(booking))
        now = timezone.now()
        invoice = _create_invoice(
            booking,
            InvoiceKind.FINAL,
            amount=breakdown.amount,
            tip_amount=breakdown.tip_amount,
            status=InvoiceStatus.SENT,
                sent_at=now,
            due_at=booking.final_payment_due_at or now,
            approved_by=approver,
            breakdown=breakdown.as_dict(),
        )

        flipped = Booking.objects.filter(pk=booking.pk, final_invoice_sent=False).update(
            final_invoice_sent=True,
            final_invoice_approved_by=approver,
            updated_at=now,
        )
        if flipped != 1:
            raise FinalInvoiceAlreadySent(booking)

        if event_id:
            mark_processed(APPROVAL_SCOPE, event_id, result_id=invoice.pk)

        audit_log(
            action="final_invoice_approved",
            obj=invoice,
            actor=approver,
            changes={"final_invoice_sent": {"old": False, "new": True}},
            metadata={"booking": booking.booking_number, **breakdown.as_dict()},
            sensitivity="high",
        )

        payload = {
            "invoice_number": invoice.invoice_number,
            "booking_number": booking.booking_number,
            "tour_date": booking.tour_date.isoformat(),
            "amount": str(invoice.amount),
            "tip_amount": str(invoice.tip_amount),
            "amount_due": str(invoice.amount_due),
            "due_at": invoice.due_at.isoformat(),
        }
        transaction.on_commit(lambda: notify(booking.customer_email, FINAL_INVOICE, payload))

    logger.info(
        "Final invoice %s for %s approved by %s: %s",
        invoice.invoice_number,
        booking.booking_number,
        approver,
        invoice.amount_due,
    )
    return invoice


def force_final_payment_due(booking_id, *, actor: str) -> Booking:
    """Make the booking's final payment due immediately instead of after the grace period."""
    if not actor:
        raise ValidationError("Overrides require an actor", field="actor")

    with transaction.atomic():
        try:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingNotInvoiceable(
                f"Booking {booking.booking_number} is cancelled", entity_id=booking.pk
            )

        now = timezone.now()
        old_due = booking.final_payment_due_at
        booking.final_payment_due_at = now
        booking.save(update_fields=["final_payment_due_at", "updated_at"])
        Invoice.objects.filter(
            booking=booking,
            kind=InvoiceKind.FINAL,
            status=InvoiceStatus.SENT,
        ).update(due_at=now)

        audit_log(
            action="final_payment_due_override",
            obj=booking,
            actor=actor,
            changes={"final_payment_due_at": {"old": old_due, "new": now}},
        )

    logger.info("%s made final payment for %s due now", actor, booking.booking_number)
    return booking


def record_payment(invoice_id, payment_method_token: str, *, gateway=None) -> Invoice:
    """
    Collect payment for a SENT invoice.

    A decline leaves the invoice exactly as it was.

    Raises:
        InvoiceNotFound: Unknown invoice
        InvoiceStateError: Invoice is not SENT
        PaymentDeclined: The gateway declined the charge
    """
    gateway = gateway or get_gateway()

    with transaction.atomic():
        try:
            invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
        except Invoice.DoesNotExist:
            raise InvoiceNotFound(invoice_id)
        if invoice.status != InvoiceStatus.SENT:
            raise InvoiceStateError(invoice, "pay")

        amount_due = invoice.amount_due
        if amount_due > 0:
            result = gateway.charge(amount_due, payment_method_token)
            if not result.authorized:
                logger.warning(
                    "Payment of %s for %s declined: %s",
                    amount_due,
                    invoice.invoice_number,
                    result.decline_reason,
                )
                raise PaymentDeclined(invoice, result.decline_reason)
            reference = result.reference
        else:
            reference = "no-charge"

        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = timezone.now()
        invoice.payment_reference = reference
        invoice.save(update_fields=["status", "paid_at", "payment_reference", "updated_at"])

        audit_log(
            action="invoice_paid",
            obj=invoice,
            changes={"status": {"old": InvoiceStatus.SENT, "new": InvoiceStatus.PAID}},
            metadata={"amount": amount_due, "payment_reference": reference},
            is_system=True,
        )

    logger.info("Invoice %s paid (%s)", invoice.invoice_number, reference)
    return invoice


def void_invoice(invoice_id, *, actor: str, reason: str) -> Invoice:
    """
    Void an unpaid invoice. Its number stays used.

    Voiding a final invoice does not re-open final invoicing for the booking.

    Raises:
        ValidationError: Missing actor or reason
        InvoiceNotFound: Unknown invoice
        InvoiceStateError: Invoice is PAID or already VOID
    """
    if not actor:
        raise ValidationError("Voiding requires an actor", field="actor")
    if not reason or not reason.strip():
        raise ValidationError("Voiding requires a reason", field="reason")

    with transaction.atomic():
        try:
            invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
        except Invoice.DoesNotExist:
            raise InvoiceNotFound(invoice_id)
        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.VOID):
            raise InvoiceStateError(invoice, "void")

        old_status = invoice.status
        invoice.status = InvoiceStatus.VOID
        invoice.voided_at = timezone.now()
        invoice.save(update_fields=["status", "voided_at", "updated_at"])

        audit_log(
            action="invoice_voided",
            obj=invoice,
            actor=actor,
            changes={"status": {"old": old_status, "new": InvoiceStatus.VOID}},
            metadata={"reason": reason.strip()},
            sensitivity="high",
        )

    logger.info("%s voided invoice %s", actor, invoice.invoice_number)
    return invoice
