"""Django app configuration for winetours.invoicing."""

from django.apps import AppConfig


class InvoicingConfig(AppConfig):
    """App configuration for invoicing."""

    name = "winetours.invoicing"
    label = "winetours_invoicing"
    verbose_name = "Invoicing"
    default_auto_field = "django.db.models.BigAutoField"
