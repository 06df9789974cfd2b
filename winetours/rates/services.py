"""Rate table services.

Functions:
- get_active_version(): Version in effect at a timestamp
- load_rate_table(): Parse a version into a typed RateTable
- get_active_rate_table(): Shortcut for the two above
- update_rate_table(): Publish a new version (the only write path)
"""

import logging

from django.db import transaction
from django.utils import timezone

from winetours.audit.api import log as audit_log
from winetours.exceptions import ValidationError

from .exceptions import NoActiveRateTable, RateTableInvalid
from .models import RateTableVersion
from .schema import RateTable, parse_rate_table

logger = logging.getLogger(__name__)


def get_active_version(as_of=None) -> RateTableVersion:
    """Return the rate table version in effect at as_of (default: now).

    Raises:
        NoActiveRateTable: If no version is in effect
    """
    as_of = as_of or timezone.now()
    version = RateTableVersion.objects.as_of(as_of).first()
    if version is None:
        raise NoActiveRateTable(f"No rate table in effect at {as_of.isoformat()}")
    return version


def load_rate_table(version: RateTableVersion) -> RateTable:
    """Parse a stored version into a RateTable.

    A stored version that no longer parses means the table was corrupted
    after publication; this is logged as critical and re-raised.
    """
    try:
        return parse_rate_table(version.payload, version_id=version.pk)
    except RateTableInvalid:
        logger.critical("Stored rate table version %s failed validation", version.pk)
        raise


def get_active_rate_table(as_of=None) -> RateTable:
    """Return the typed rate table in effect at as_of (default: now)."""
    return load_rate_table(get_active_version(as_of))


def update_rate_table(new_payload: dict, editor: str, reason: str, *, effective_from=None) -> int:
    """
    Publish a new rate table version.

    Always additive: the previous version stays untouched and keeps pricing
    anything quoted against it.

    Args:
        new_payload: Full rate sheet payload
        editor: Identity of the person making the edit
        reason: Why the rates changed
        effective_from: When the version starts pricing (default: now)

    Returns:
        The new version id

    Raises:
        ValidationError: editor or reason missing
        RateTableInvalid / RateTableCoverageError: payload rejected
    """
    if not editor:
        raise ValidationError("Rate edits require an editor identity", field="editor")
    if not reason or not reason.strip():
        raise ValidationError("Rate edits require a reason", field="reason")

    rate_table = parse_rate_table(new_payload)
    normalized = rate_table.to_payload()

    with transaction.atomic():
        # Serialize concurrent edits on the newest version row
        previous = RateTableVersion.objects.select_for_update().order_by("-id").first()

        version = RateTableVersion.objects.create(
            effective_from=effective_from or timezone.now(),
            payload=normalized,
            created_by=editor,
            reason=reason.strip(),
        )

        audit_log(
            action="rate_table_update",
            obj=version,
            actor=editor,
            changes={
                "payload": {
                    "old": previous.payload if previous else None,
                    "new": normalized,
                },
            },
            metadata={
                "reason": reason.strip(),
                "previous_version_id": previous.pk if previous else None,
            },
            sensitivity="high",
        )

    logger.info("Rate table version %s published by %s", version.pk, editor)
    return version.pk

