"""Django app configuration for winetours.timeclock."""

from django.apps import AppConfig


class TimeclockConfig(AppConfig):
    """App configuration for the driver time clock."""

    name = "winetours.timeclock"
    label = "winetours_timeclock"
    verbose_name = "Time Clock"
    default_auto_field = "django.db.models.BigAutoField"
