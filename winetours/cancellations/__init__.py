"""Cancellation refund calculator."""
