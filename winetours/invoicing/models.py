"""Invoice model."""

from django.db import models

from winetours.basemodels import TimeStampedModel


class InvoiceKind(models.TextChoices):
    DEPOSIT = "DEPOSIT", "Deposit"
    FINAL = "FINAL", "Final"


class InvoiceStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SENT = "SENT", "Sent"
    PAID = "PAID", "Paid"
    VOID = "VOID", "Void"


class Invoice(TimeStampedModel):
    """
    Deposit or final invoice for a booking.

    Key invariants:
    - At most one DEPOSIT and one FINAL per booking (database unique)
    - invoice_number is unique and never reused, voided invoices included
    - ``amount`` excludes gratuity, which is carried in ``tip_amount``
    """

    invoice_number = models.CharField(max_length=40, unique=True)
    booking = models.ForeignKey(
        "winetours_bookings.Booking",
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    kind = models.CharField(max_length=10, choices=InvoiceKind.choices)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount due; negative on a final invoice means a credit",
    )
    tip_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(
        max_length=10,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.DRAFT,
        db_index=True,
    )

    sent_at = models.DateTimeField(null=True, blank=True)
    due_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)

    approved_by = models.CharField(max_length=200, blank=True)
    payment_reference = models.CharField(max_length=200, blank=True)
    breakdown = models.JSONField(default=dict, blank=True)

    class Meta(TimeStampedModel.Meta):
        db_table = "invoices"
        ordering = ["invoice_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "kind"],
                name="invoice_one_per_kind_per_booking",
            ),
            models.CheckConstraint(
                condition=models.Q(tip_amount__gte=0),
                name="invoice_tip_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.invoice_number} {self.kind} {self.amount} ({self.status})"

    @property
    def amount_due(self):
        return self.amount + self.tip_amount


class ReminderUrgency(models.TextChoices):
    FRIENDLY = "friendly", "Friendly"
    FIRM = "firm", "Firm"
    URGENT = "urgent", "Urgent"
    FINAL = "final", "Final"


class PaymentReminder(TimeStampedModel):
    """
    An overdue-payment reminder sent for a final invoice.

    One row per (invoice, urgency): each escalation tier goes out at most once.
    """

    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="payment_reminders",
    )
    urgency = models.CharField(max_length=10, choices=ReminderUrgency.choices)
    days_overdue = models.PositiveIntegerField()
    amount_due = models.DecimalField(max_digits=12, decimal_places=2)
    recipient = models.EmailField()
    sent_at = models.DateTimeField()

    class Meta(TimeStampedModel.Meta):
        db_table = "payment_reminders"
        ordering = ["invoice", "sent_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["invoice", "urgency"],
                name="payment_reminder_once_per_tier",
            ),
        ]

    def __str__(self):
        return f"{self.invoice_id} {self.urgency} ({self.days_overdue}d overdue)"
