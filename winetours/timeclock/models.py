"""Time record model."""

from decimal import ROUND_HALF_UP, Decimal

from django.db import models

from winetours.basemodels import TimeStampedModel


class TimeRecord(TimeStampedModel):
    """
    A driver's clock-in / clock-out for one booking.

    Key invariants:
    - One open record (clock_out_time IS NULL) per booking
    - clock_out_time > clock_in_time once set
    - Clock-out is final; completion emits time_record_completed
    """

    booking = models.ForeignKey(
        "winetours_bookings.Booking",
        on_delete=models.PROTECT,
        related_name="time_records",
    )
    driver = models.CharField(max_length=200)
    service_date = models.DateField()
    clock_in_time = models.DateTimeField()
    clock_out_time = models.DateTimeField(null=True, blank=True)
    is_correction = models.BooleanField(
        default=False,
        help_text="Extra record opened through the correction workflow",
    )
    notes = models.TextField(blank=True)

    class Meta(TimeStampedModel.Meta):
        db_table = "time_records"
        ordering = ["clock_in_time", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=models.Q(clock_out_time__isnull=True),
                name="time_record_one_open_per_booking",
            ),
            models.CheckConstraint(
                condition=models.Q(clock_out_time__isnull=True)
                | models.Q(clock_out_time__gt=models.F("clock_in_time")),
                name="time_record_clock_out_after_clock_in",
            ),
        ]

    def __str__(self):
        state = "open" if self.clock_out_time is None else "closed"
        return f"TimeRecord({self.driver}, {self.service_date}, {state})"

    @property
    def duration_hours(self) -> Decimal | None:
        """Worked time in decimal hours, rounded half-up to 2 places."""
        if self.clock_out_time is None:
            return None
        seconds = Decimal(int((self.clock_out_time - self.clock_in_time).total_seconds()))
        return (seconds / Decimal(3600)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
