"""Django app configuration for winetours.sequence."""

from django.apps import AppConfig


class SequenceConfig(AppConfig):
    """App configuration for number sequences."""

    name = "winetours.sequence"
    label = "winetours_sequence"
    verbose_name = "Number Sequences"
    default_auto_field = "django.db.models.BigAutoField"
