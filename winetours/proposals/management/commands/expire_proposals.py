"""Management command to expire proposals past their validity window."""

from django.core.management.base import BaseCommand

from winetours.proposals.services import expire_proposals


class Command(BaseCommand):
    help = "Mark SENT proposals whose valid_until has passed as EXPIRED"

    def handle(self, *args, **options):
        count = expire_proposals()
        if count:
            self.stdout.write(self.style.SUCCESS(f"Expired {count} proposal(s)"))
        else:
            self.stdout.write("No proposals to expire")
