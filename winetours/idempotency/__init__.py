"""Processed-event markers for at-least-once delivery."""
