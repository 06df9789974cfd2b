"""Django app configuration for winetours.rates."""

from django.apps import AppConfig


class RatesConfig(AppConfig):
    """App configuration for rate tables."""

    name = "winetours.rates"
    label = "winetours_rates"
    verbose_name = "Rate Tables"
    default_auto_field = "django.db.models.BigAutoField"
