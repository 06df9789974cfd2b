"""IdempotencyKey model."""

from django.db import models


class IdempotencyKey(models.Model):
    """
    Marks an event as processed so re-delivery becomes a no-op.

    The key is written in the same transaction as the effect it guards.
    If that transaction rolls back, the key disappears with it and the
    event can be processed again.

    Usage:
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking_id)
            if find_processed("final_invoice_approval", event_id):
                return existing_result
            ... do the work ...
            mark_processed("final_invoice_approval", event_id, result_id=invoice.pk)
    """

    scope = models.CharField(
        max_length=100,
        help_text="Operation scope, e.g. 'final_invoice_approval'",
    )
    key = models.CharField(
        max_length=255,
        help_text="Event id or derived idempotency key",
    )
    result_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="ID of the record the operation produced",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
        constraints = [
            models.UniqueConstraint(fields=["scope", "key"], name="unique_idempotency_scope_key"),
        ]

    def __str__(self):
        return f"{self.scope}:{self.key}"
