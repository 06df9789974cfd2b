"""Rate table versions.

Versions are append-only. An administrative edit publishes a new version;
existing proposals and bookings keep pointing at the version they were
quoted against.

Write through services only:
- update_rate_table()
"""

from django.db import models
from django.utils import timezone

from winetours.basemodels import TimeStampedModel

from .exceptions import ImmutableRateTableVersion


class RateTableVersionQuerySet(models.QuerySet):
    """Custom queryset for RateTableVersion."""

    def as_of(self, timestamp):
        """Versions already in effect at timestamp, newest first."""
        return self.filter(effective_from__lte=timestamp).order_by("-effective_from", "-id")


class RateTableVersion(TimeStampedModel):
    """
    Immutable snapshot of the rate sheet.

    The payload is the JSON form parsed by winetours.rates.schema. It is
    validated (including tier coverage) before a version is written.
    """

    effective_from = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="When this version starts pricing new quotes",
    )
    payload = models.JSONField(
        help_text="Rate sheet payload (tiers, minimum hours, tax, deposit, shared tours)",
    )
    created_by = models.CharField(
        max_length=200,
        help_text="Identity of the editor who published this version",
    )
    reason = models.TextField(
        help_text="Why the rates changed",
    )
    objects = RateTableVersionQuerySet.as_manager()

    class Meta(TimeStampedModel.Meta):
        db_table = "rate_table_versions"
        ordering = ["-effective_from", "-id"]

    def save(self, *args, **kwargs):
        """Enforce immutability - versions are ledger records."""
        if not self._state.adding:
            raise ImmutableRateTableVersion(self.pk)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"Rate table v{self.pk} (from {self.effective_from:%Y-%m-%d})"
