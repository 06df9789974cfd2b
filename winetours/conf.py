"""Configuration for the winetours engine.

All settings live in the ``WINETOURS`` dict in Django settings. Missing keys
fall back to ``DEFAULTS``.
"""

from django.conf import settings

from winetours.exceptions import ConfigurationError


DEFAULTS = {
    # Human-readable number prefixes (PREFIX-YY-NNNNN)
    "INVOICE_PREFIX": "INV",
    "PROPOSAL_PREFIX": "PROP",
    "BOOKING_PREFIX": "BK",
    "SEQUENCE_PAD_WIDTH": 5,
    # Final payment is due this many hours after tour completion
    "FINAL_PAYMENT_DUE_HOURS": 48,
    "PROPOSAL_VALID_DAYS": 30,
    "GRATUITY_PRESETS": (15, 20, 25),
    # Refund tiers, descending by days_before; lower bound inclusive
    "CANCELLATION_TIERS": (
        {"days_before": 40, "refund_percent": 100},
        {"days_before": 20, "refund_percent": 50},
        {"days_before": 10, "refund_percent": 25},
        {"days_before": 0, "refund_percent": 0},
    ),
    # Refund percentage per special reason (weather, emergency). Unset until
    # the business decides; cancellations with an unconfigured reason fail.
    "SPECIAL_CANCELLATION_REFUND_PCT": {},
    "NOTIFICATION_DISPATCHER": "winetours.notifications.providers.ConsoleDispatcher",
    "PAYMENT_GATEWAY": "winetours.payments.gateway.FakePaymentGateway",
    # Receives a copy of final-tier payment reminders
    "OPERATIONS_EMAIL": "",
    # Overdue reminder tiers, descending by days past due_at; lower bound
    # inclusive. Each tier is sent at most once per invoice.
    "PAYMENT_REMINDER_TIERS": (
        {"days_overdue": 14, "urgency": "final"},
        {"days_overdue": 7, "urgency": "urgent"},
        {"days_overdue": 3, "urgency": "firm"},
        {"days_overdue": 0, "urgency": "friendly"},
    ),
}


def get_setting(name: str):
    """Return a WINETOURS setting, falling back to the default.

    Raises:
        ConfigurationError: If the name is not a known setting
    """
    if name not in DEFAULTS:
        raise ConfigurationError(f"Unknown WINETOURS setting: {name}")
    overrides = getattr(settings, "WINETOURS", None) or {}
    return overrides.get(name, DEFAULTS[name])
