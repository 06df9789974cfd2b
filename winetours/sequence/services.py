"""Sequence services for gapless number allocation."""

import logging
from datetime import date
from typing import NamedTuple

from django.db import IntegrityError as DatabaseIntegrityError
from django.db import transaction
from django.utils import timezone

from winetours.conf import get_setting

from .exceptions import SequenceError, SequenceOutsideTransaction
from .models import NumberSequence

logger = logging.getLogger(__name__)


class ParsedNumber(NamedTuple):
    """Components of a formatted sequence number."""

    prefix: str
    year: int
    value: int


def scope_key_for(scope: str, on: date) -> str:
    """Return the per-year scope key, e.g. 'invoice:2025'."""
    return f"{scope}:{on.year}"


def format_number(prefix: str, year: int, value: int, pad_width: int | None = None) -> str:
    """
    Format a sequence value as PREFIX-YY-NNNNN.

    Examples:
        format_number("INV", 2025, 42) == "INV-25-00042"
    """
    width = pad_width if pad_width is not None else get_setting("SEQUENCE_PAD_WIDTH")
    return f"{prefix}-{year % 100:02d}-{str(value).zfill(width)}"


def parse_number(number: str) -> ParsedNumber:
    """Split a formatted number back into prefix, two-digit year and value."""
    try:
        prefix, yy, value = number.rsplit("-", 2)
        return ParsedNumber(prefix=prefix, year=int(yy), value=int(value))
    except ValueError as e:
        raise SequenceError(f"Not a sequence number: {number!r}") from e


def next_number(
    scope: str,
    *,
    prefix: str,
    on: date | None = None,
    pad_width: int | None = None,
) -> str:
    """
    Allocate the next number in a per-year scope.

    Must run inside the transaction that inserts the numbered row. The
    sequence row is locked with select_for_update() until that transaction
    ends, so concurrent allocations in the same scope serialize and a
    rollback un-allocates the number.

    Args:
        scope: Sequence scope (e.g. 'invoice', 'booking')
        prefix: Prefix for the formatted value (e.g. 'INV')
        on: Date that decides the year scope (defaults to today, local time)
        pad_width: Zero-padding width (defaults to SEQUENCE_PAD_WIDTH)

    Returns:
        The formatted number, e.g. "INV-25-00001"

    Raises:
        SequenceOutsideTransaction: If called in autocommit mode
    """
    on = on or timezone.localdate()
    scope_key = scope_key_for(scope, on)

    if not transaction.get_connection().in_atomic_block:
        raise SequenceOutsideTransaction(scope_key)

    try:
        seq = NumberSequence.objects.select_for_update().get(scope_key=scope_key)
    except NumberSequence.DoesNotExist:
        try:
            with transaction.atomic():
                seq = NumberSequence.objects.create(scope_key=scope_key, prefix=prefix)
        except DatabaseIntegrityError:
            # Another transaction created the scope first; wait for its lock.
            seq = NumberSequence.objects.select_for_update().get(scope_key=scope_key)
        logger.info("Opened numbering scope %s", scope_key)

    value = seq.next_value
    seq.next_value = value + 1
    seq.save(update_fields=["next_value", "updated_at"])

    return format_number(seq.prefix, on.year, value, pad_width)
