"""Notification dispatcher collaborator."""
