"""Django app configuration for winetours.bookings."""

from django.apps import AppConfig


class BookingsConfig(AppConfig):
    """App configuration for bookings."""

    name = "winetours.bookings"
    label = "winetours_bookings"
    verbose_name = "Bookings"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from winetours.timeclock.events import time_record_completed

        from .handlers import on_time_record_completed

        time_record_completed.connect(
            on_time_record_completed,
            dispatch_uid="winetours.bookings.hour_sync",
        )
