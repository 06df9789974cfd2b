"""Django app configuration for winetours.proposals."""

from django.apps import AppConfig


class ProposalsConfig(AppConfig):
    """App configuration for proposals."""

    name = "winetours.proposals"
    label = "winetours_proposals"
    verbose_name = "Proposals"
    default_auto_field = "django.db.models.BigAutoField"
