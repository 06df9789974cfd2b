"""Django app configuration for winetours.audit."""

from django.apps import AppConfig


class AuditConfig(AppConfig):
    """App configuration for the audit log."""

    name = "winetours.audit"
    label = "winetours_audit"
    verbose_name = "Audit Log"
    default_auto_field = "django.db.models.BigAutoField"
