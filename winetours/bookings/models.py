"""Booking models.

Write through services only:
- bookings.services: create_bookings_from_proposal(), create_booking(), cancel_booking()
- bookings.reconciler: reconcile(), correct_actual_hours()
- invoicing.services: approve_and_send(), force_final_payment_due()
"""

from django.db import models

from winetours.basemodels import TimeStampedModel


class BookingStatus(models.TextChoices):
    CONFIRMED = "CONFIRMED", "Confirmed"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class Booking(TimeStampedModel):
    """
    A confirmed tour.

    Pricing inputs (hourly_rate, tax_rate) are copied from the
    rate table version at quote time, so later rate edits never reprice it.

    Key invariants:
    - actual_hours is written once by hour-sync; later changes go through
      correct_actual_hours() and are audit logged
    - final_invoice_sent flips to True exactly once
    """

    booking_number = models.CharField(max_length=40, unique=True)
    proposal = models.ForeignKey(
        "winetours_proposals.Proposal",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    service_item = models.OneToOneField(
        "winetours_proposals.ProposalServiceItem",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="booking",
        help_text="Proposal line this booking fulfils",
    )
    rate_table_version = models.ForeignKey(
        "winetours_rates.RateTableVersion",
        on_delete=models.PROTECT,
        related_name="bookings",
    )

    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=40, blank=True)

    tour_date = models.DateField(db_index=True)
    tour_type = models.CharField(max_length=20)
    party_size = models.PositiveIntegerField()
    lunch_included = models.BooleanField(default=False)
    estimated_hours = models.DecimalField(max_digits=5, decimal_places=2)
    actual_hours = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)

    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    tax_rate = models.DecimalField(max_digits=6, decimal_places=4)
    estimated_total = models.DecimalField(max_digits=12, decimal_places=2)
    deposit_amount = models.DecimalField(max_digits=12, decimal_places=2)
    gratuity_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    status = models.CharField(
        max_length=20,
        choices=BookingStatus.choices,
        default=BookingStatus.CONFIRMED,
        db_index=True,
    )
    ready_for_final_invoice = models.BooleanField(default=False)
    final_invoice_sent = models.BooleanField(default=False)
    final_invoice_approved_by = models.CharField(max_length=200, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    final_payment_due_at = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=200, blank=True)
    cancellation_reason = models.TextField(blank=True)
    refund_percent = models.PositiveSmallIntegerField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    created_by = models.CharField(max_length=200, blank=True)

    class Meta(TimeStampedModel.Meta):
        db_table = "bookings"
        ordering = ["tour_date", "id"]
        indexes = [
            models.Index(fields=["ready_for_final_invoice", "final_invoice_sent"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(actual_hours__isnull=True) | models.Q(actual_hours__gt=0),
                name="booking_actual_hours_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(deposit_amount__gte=0) & models.Q(gratuity_amount__gte=0),
                name="booking_amounts_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.booking_number} {self.customer_name} {self.tour_date}"


class HourSyncApplication(TimeStampedModel):
    """
    Marker that a time record's hours were processed for a booking.

    ``applied`` is False when the booking already had hours from another
    record; the marker still absorbs re-delivery of the same event.
    """

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="hour_sync_applications",
    )
    time_record = models.ForeignKey(
        "winetours_timeclock.TimeRecord",
        on_delete=models.PROTECT,
        related_name="hour_sync_applications",
    )
    event_id = models.CharField(max_length=200, unique=True)
    hours = models.DecimalField(max_digits=5, decimal_places=2)
    applied = models.BooleanField()

    class Meta(TimeStampedModel.Meta):
        db_table = "hour_sync_applications"
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "time_record"],
                name="hour_sync_once_per_time_record",
            ),
        ]

    def __str__(self):
        return f"{self.event_id} -> {self.booking_id}"
