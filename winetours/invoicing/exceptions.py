"""Exceptions for invoicing."""

from winetours.exceptions import EligibilityError, IntegrityError, StateConflictError, ValidationError


class InvoiceNotFound(ValidationError):
    """No invoice with this id."""

    def __init__(self, invoice_id):
        super().__init__(f"Invoice {invoice_id} not found", entity_id=invoice_id)


class FinalInvoiceAlreadySent(StateConflictError):
    """The booking already has a final invoice."""

    def __init__(self, booking):
        super().__init__(
            f"Final invoice for {booking.booking_number} was already sent",
            entity_id=booking.pk,
        )


class DepositInvoiceExists(StateConflictError):
    """The booking already has a deposit invoice."""

    def __init__(self, booking):
        super().__init__(
            f"Deposit invoice for {booking.booking_number} already exists",
            entity_id=booking.pk,
        )


class FinalInvoiceNotReady(EligibilityError):
    """Hours have not been synced for the booking yet."""

    def __init__(self, booking):
        super().__init__(
            f"Booking {booking.booking_number} is not ready for final invoicing",
            field="ready_for_final_invoice",
            entity_id=booking.pk,
        )


class BookingNotInvoiceable(StateConflictError):
    """The booking was cancelled."""


class InvoiceStateError(StateConflictError):
    """The invoice is not in a state that allows this action."""

    def __init__(self, invoice, action: str):
        self.status = invoice.status
        super().__init__(
            f"Cannot {action} invoice {invoice.invoice_number} in status {invoice.status}",
            field="status",
            entity_id=invoice.pk,
        )


class PaymentDeclined(StateConflictError):
    """The payment collaborator declined the charge."""

    def __init__(self, invoice, decline_reason: str = ""):
        self.decline_reason = decline_reason
        super().__init__(
            f"Payment for {invoice.invoice_number} was declined"
            + (f": {decline_reason}" if decline_reason else ""),
            entity_id=invoice.pk,
        )


class InvoiceNumberCollision(IntegrityError):
    """An allocated invoice number is already in use."""

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(
            f"Invoice number {invoice_number} is already in use; numbering sequence is corrupt",
            field="invoice_number",
        )
