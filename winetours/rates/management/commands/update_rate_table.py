"""Management command to publish a new rate table version."""

import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_datetime

from winetours.exceptions import WineToursError
from winetours.rates.schema import DEFAULT_RATE_PAYLOAD
from winetours.rates.services import update_rate_table


class Command(BaseCommand):
    help = "Publish a new rate table version from a JSON payload (never edits in place)"

    def add_arguments(self, parser):
        source = parser.add_mutually_exclusive_group(required=True)
        source.add_argument(
            "--file",
            type=Path,
            help="Path to the JSON rate payload",
        )
        source.add_argument(
            "--default",
            action="store_true",
            help="Publish the built-in rate sheet",
        )
        parser.add_argument("--editor", required=True, help="Identity of the editor")
        parser.add_argument("--reason", required=True, help="Why the rates changed")
        parser.add_argument(
            "--effective-from",
            help="ISO timestamp when the version starts pricing (default: now)",
        )

    def handle(self, *args, **options):
        if options["default"]:
            payload = DEFAULT_RATE_PAYLOAD
        else:
            try:
                payload = json.loads(options["file"].read_text())
            except (OSError, json.JSONDecodeError) as e:
                raise CommandError(f"Cannot read rate payload: {e}") from e

        effective_from = None
        if options.get("effective_from"):
            effective_from = parse_datetime(options["effective_from"])
            if effective_from is None:
                raise CommandError("--effective-from must be an ISO timestamp")

        try:
            version_id = update_rate_table(
                payload,
                options["editor"],
                options["reason"],
                effective_from=effective_from,
            )
        except WineToursError as e:
            raise CommandError(str(e)) from e

        self.stdout.write(self.style.SUCCESS(f"Published rate table version {version_id}"))
