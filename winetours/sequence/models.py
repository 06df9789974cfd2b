"""Number sequence model."""

from django.db import models

from winetours.basemodels import TimeStampedModel


class NumberSequence(TimeStampedModel):
    """
    One row per numbering scope, e.g. ``invoice:2025``.

    ``next_value`` is the number the next allocation hands out. It is only
    incremented inside the transaction that inserts the numbered row, so a
    rollback returns the number to the pool and the run stays gapless.

    Usage:
        from winetours.sequence.services import next_number

        with transaction.atomic():
            number = next_number("invoice", prefix="INV")
            Invoice.objects.create(invoice_number=number, ...)
    """

    scope_key = models.CharField(
        max_length=80,
        unique=True,
        help_text="Numbering scope, e.g. 'invoice:2025'",
    )
    prefix = models.CharField(
        max_length=20,
        help_text="Prefix for formatted value, e.g. 'INV'",
    )
    next_value = models.PositiveBigIntegerField(
        default=1,
        help_text="Value handed out by the next allocation",
    )

    class Meta(TimeStampedModel.Meta):
        db_table = "number_sequences"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(next_value__gte=1),
                name="number_sequence_next_value_positive",
            ),
        ]

    def __str__(self):
        return f"{self.scope_key}: next={self.next_value}"

    @property
    def last_issued(self) -> int:
        """Most recently allocated value (0 if none)."""
        return self.next_value - 1
