"""Signal receivers for bookings."""

from .reconciler import handle_time_record_completed


def on_time_record_completed(sender, event, **kwargs):
    """Apply driver hours when a time record is clocked out."""
    return handle_time_record_completed(event)
