"""Abstract base models shared by the winetours apps.

Usage:
    from winetours.basemodels import TimeStampedModel

    class Invoice(TimeStampedModel):
        ...

        class Meta(TimeStampedModel.Meta):
            db_table = "invoices"
"""

from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model with created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
