"""Public API for audit logging."""
from decimal import Decimal

from .models import AuditLog


def _jsonable(value):
    """Convert Decimals and dates inside change dicts to strings."""
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal) or hasattr(value, "isoformat"):
        return str(value)
    return value


def log(
    action,
    obj=None,
    actor="",
    changes=None,
    metadata=None,
    sensitivity="normal",
    is_system=False,
):
    """Log an audit event.

    Args:
        action: Action type (rate_table_update, hours_correction, ...)
        obj: Model instance the action affected (optional)
        actor: Identity string of whoever performed the action
        changes: Dict of field changes: {"field": {"old": x, "new": y}}
        metadata: Additional context as dict
        sensitivity: normal, high, or critical
        is_system: True if action performed by the system

    Returns:
        AuditLog instance
    """
    model_label = ""
    object_id = ""
    object_repr = ""
    if obj is not None:
        model_label = f"{obj._meta.app_label}.{obj._meta.model_name}"
        object_id = str(obj.pk) if obj.pk else ""
        object_repr = str(obj)[:200]

    return AuditLog.objects.create(
        action=action,
        model_label=model_label,
        object_id=object_id,
        object_repr=object_repr,
        actor_display=(actor or "")[:200],
        changes=_jsonable(changes or {}),
        metadata=_jsonable(metadata or {}),
        sensitivity=sensitivity,
        is_system=is_system,
    )


def history(obj):
    """Return audit entries for a model instance, newest first."""
    return AuditLog.objects.filter(
        model_label=f"{obj._meta.app_label}.{obj._meta.model_name}",
        object_id=str(obj.pk),
    )
