"""Django app configuration for winetours.idempotency."""

from django.apps import AppConfig


class IdempotencyConfig(AppConfig):
    """App configuration for idempotency markers."""

    name = "winetours.idempotency"
    label = "winetours_idempotency"
    verbose_name = "Idempotency Keys"
    default_auto_field = "django.db.models.BigAutoField"
