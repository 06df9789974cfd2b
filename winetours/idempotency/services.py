"""Idempotency marker services."""

from django.db import transaction

from .models import IdempotencyKey


def find_processed(scope: str, key: str) -> IdempotencyKey | None:
    """Return the marker for (scope, key) if the event was already processed."""
    return IdempotencyKey.objects.filter(scope=scope, key=key).first()


def mark_processed(scope: str, key: str, *, result_id="") -> IdempotencyKey:
    """
    Record that (scope, key) was processed.

    Must be called inside the transaction that performs the guarded effect.
    The (scope, key) unique constraint makes a concurrent duplicate fail at
    insert time, rolling back its effect.
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("mark_processed() must run inside transaction.atomic()")
    return IdempotencyKey.objects.create(
        scope=scope,
        key=key,
        result_id=str(result_id) if result_id else "",
    )
