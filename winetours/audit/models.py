"""Audit log model.

NOTE: Audit logs are append-only. No soft delete, no updates.
"""
import uuid

from django.db import models

from winetours.exceptions import IntegrityError


class AuditLogImmutableError(IntegrityError):
    """Raised when code tries to modify a saved audit record."""


class AuditLog(models.Model):
    """Immutable audit log entry.

    Records who changed which money-relevant field, when and why.
    Actors are identity strings supplied by the caller's session provider.
    """

    SENSITIVITY_CHOICES = [
        ("normal", "Normal"),
        ("high", "High"),
        ("critical", "Critical"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    actor_display = models.CharField(
        max_length=200,
        blank=True,
        help_text="Identity of the actor (blank for system actions)",
    )
    action = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Action type: rate_table_update, hours_correction, invoice_approved, etc.",
    )

    model_label = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text='Model label in app.model format (e.g., "winetours_bookings.booking")',
    )
    object_id = models.CharField(
        max_length=50,
        blank=True,
        help_text="Primary key of affected object",
    )
    object_repr = models.CharField(
        max_length=200,
        blank=True,
        help_text="String representation of object at time of action",
    )

    changes = models.JSONField(
        default=dict,
        blank=True,
        help_text='Before/after field changes: {"field": {"old": x, "new": y}}',
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional context (reason, event id, ...)",
    )

    sensitivity = models.CharField(
        max_length=20,
        choices=SENSITIVITY_CHOICES,
        default="normal",
    )
    is_system = models.BooleanField(
        default=False,
        help_text="True when the action was performed by the system",
    )

    class Meta:
        db_table = "audit_log"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["model_label", "object_id"]),
        ]

    def __str__(self):
        actor = self.actor_display or "system"
        return f"{self.action} by {actor} on {self.model_label}:{self.object_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditLogImmutableError(f"Audit log {self.pk} cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditLogImmutableError(f"Audit log {self.pk} cannot be deleted")
