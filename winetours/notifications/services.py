"""Notification services.

Notifications for acceptances, final invoices, cancellations and overdue
payment reminders are sent from transaction.on_commit() callbacks so nothing
goes out for a rolled-back change. Failures are logged and returned, never
retried here.
"""

import logging

from django.utils.module_loading import import_string

from winetours.conf import get_setting
from winetours.exceptions import ConfigurationError

from .providers import BaseDispatcher, SendResult

logger = logging.getLogger(__name__)

PROPOSAL_SENT = "proposal_sent"
PROPOSAL_ACCEPTED = "proposal_accepted"
FINAL_INVOICE = "final_invoice"
BOOKING_CANCELLED = "booking_cancelled"
PAYMENT_REMINDER = "payment_reminder"


def get_dispatcher() -> BaseDispatcher:
    """Instantiate the configured NOTIFICATION_DISPATCHER."""
    path = get_setting("NOTIFICATION_DISPATCHER")
    try:
        dispatcher_class = import_string(path)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import notification dispatcher {path!r}") from e
    return dispatcher_class()


def notify(to: str, template_id: str, payload: dict) -> SendResult:
    """Send a notification through the configured dispatcher.

    Returns:
        SendResult; a dispatcher exception is logged and reported as failed
    """
    dispatcher = get_dispatcher()
    if not to:
        logger.warning("Notification %s has no recipient; not sent", template_id)
        return SendResult.failed(provider=dispatcher.provider_name, error="No recipient")

    try:
        result = dispatcher.send(to, template_id, payload)
    except Exception as e:
        logger.exception("Dispatcher %s raised sending %s to %s", dispatcher.provider_name, template_id, to)
        return SendResult.failed(provider=dispatcher.provider_name, error=str(e))

    if result.success:
        logger.info("Queued %s to %s (%s)", template_id, to, result.message_id)
    else:
        logger.warning("Failed to queue %s to %s: %s", template_id, to, result.error)
    return result
