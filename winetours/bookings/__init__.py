"""Bookings and the hour-sync reconciler."""
